"""
Verification Client - the authoritative second source of truth.

An IPN is advisory: it can be replayed or forged far more easily than a
server-to-server call. Every fulfillment decision is therefore keyed on the
response of POST /v1/payment/verify, never on the callback body.

Retry rules:
    - transport errors and HTTP 5xx → exponential backoff (RetryPolicy)
    - HTTP 4xx (bad token, auth)     → permanent, no retry
    - overall deadline exceeded      → abandon, VerificationUnavailableError
"""
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from config import settings
from domain.constants import VERIFY_PATH
from domain.errors import VerificationRejectedError, VerificationUnavailableError
from exceptions import GatewayClientError, GatewayServerError, GatewayTransportError
from models import VerifiedStatus
from services.gateway_client import GatewayClient
from services.ingestion_metrics import IngestionMetrics, get_ingestion_metrics
from services.retry_policy import RetryPolicy

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (GatewayTransportError, GatewayServerError)


class VerificationClient:
    """Calls the verify endpoint with bounded retries and bounded concurrency."""

    def __init__(
        self,
        gateway: GatewayClient,
        policy: RetryPolicy,
        max_concurrency: int = 8,
        deadline_seconds: Optional[float] = 30.0,
        metrics: Optional[IngestionMetrics] = None,
    ):
        self.gateway = gateway
        self.policy = policy
        self.deadline_seconds = deadline_seconds
        self.metrics = metrics or get_ingestion_metrics()
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def verify_token(self, token: str) -> VerifiedStatus:
        """
        Fetch the authoritative status for a payment token.

        Raises:
            VerificationRejectedError: gateway answered 4xx
            VerificationUnavailableError: retries exhausted or deadline hit
            UnknownStatusCodeError: gateway returned a status outside the closed set
        """
        async with self._semaphore:
            try:
                if self.deadline_seconds:
                    data = await asyncio.wait_for(
                        self._call_with_retry(token), timeout=self.deadline_seconds
                    )
                else:
                    data = await self._call_with_retry(token)
            except GatewayClientError as e:
                self.metrics.verify_rejections += 1
                logger.warning(f"  Verify rejected for token {token[:12]}...: HTTP {e.status_code}")
                raise VerificationRejectedError(
                    f"Gateway rejected verification (HTTP {e.status_code})",
                    details={"status_code": e.status_code},
                )
            except RETRYABLE_ERRORS as e:
                self.metrics.verify_failures += 1
                logger.error(
                    f"  ❌ Verify failed after {self.policy.max_attempts} attempts "
                    f"for token {token[:12]}...: {e}"
                )
                raise VerificationUnavailableError(details={"reason": str(e)})
            except asyncio.TimeoutError:
                self.metrics.verify_failures += 1
                logger.error(
                    f"  ❌ Verify abandoned after {self.deadline_seconds}s deadline "
                    f"for token {token[:12]}..."
                )
                raise VerificationUnavailableError(details={"reason": "deadline exceeded"})

        return self._parse(data, token)

    async def _call_with_retry(self, token: str) -> dict:
        def _on_retry(attempt: int, error: BaseException, delay: float) -> None:
            self.metrics.verify_retries += 1
            logger.warning(
                f"  Verify attempt {attempt}/{self.policy.max_attempts} failed "
                f"({error}); retrying in {delay:.3f}s"
            )

        return await self.policy.run(
            lambda: self.gateway.post_json(VERIFY_PATH, {"token": token}),
            retry_on=RETRYABLE_ERRORS,
            on_retry=_on_retry,
        )

    def _parse(self, data: dict, token: str) -> VerifiedStatus:
        body = data.get("body")
        if not isinstance(body, dict):
            self.metrics.verify_failures += 1
            raise VerificationUnavailableError(
                "Gateway verify response missing body",
                details={"token": token},
            )
        body.setdefault("token", token)
        try:
            return VerifiedStatus.model_validate(body)
        except PydanticValidationError as e:
            self.metrics.verify_failures += 1
            logger.error(f"  Malformed verify response for token {token[:12]}...: {e}")
            raise VerificationUnavailableError(
                "Gateway verify response malformed",
                details={"token": token},
            )


def build_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.verify_max_attempts,
        base_delay=settings.verify_base_delay_seconds,
        multiplier=settings.verify_backoff_multiplier,
        max_delay=settings.verify_max_delay_seconds,
        jitter=settings.verify_jitter,
    )


def build_verification_client(gateway: GatewayClient) -> VerificationClient:
    return VerificationClient(
        gateway=gateway,
        policy=build_retry_policy(),
        max_concurrency=settings.verify_max_concurrency,
        deadline_seconds=settings.verify_deadline_seconds,
    )
