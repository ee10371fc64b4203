"""
Verified Status Ingestion Engine

Pipeline for one IPN callback:
    1. HMAC signature over the raw body   → InvalidSignatureError (fail closed)
    2. Parse the claim                     → MalformedPayloadError
    3. Parse OrderStatus                   → UnknownStatusCodeError
    4. Verify the token with the gateway   → VerificationUnavailableError (503)
    5. Apply the *verified* status to the ledger under a per-order lock
    6. Fire on_fulfilled / on_finalized_negative at most once

The callback's own OrderStatus is only a hint for logging. The decision is
keyed on the verify response, which is a server-to-server call and cannot be
replayed by whoever can reach the callback URL.

Hooks run after the ledger commit while the per-order lock is still held:
a crash or a hook exception can lose a hook call, never duplicate one.
"""
import json
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from domain.enums import IngestOutcome, StatusCode, is_fulfillment_trigger, is_terminal_negative
from domain.errors import (
    InvalidSignatureError,
    LedgerBusyError,
    MalformedPayloadError,
    UnknownStatusCodeError,
    VerificationRejectedError,
    VerificationUnavailableError,
)
from models import InboundClaim, IngestResult, VerifiedStatus
from services import reconcile_service, signature_service
from services.fulfillment_hooks import FulfillmentHooks
from services.ingestion_metrics import IngestionMetrics, get_ingestion_metrics
from services.ledger_service import OrderLedger, TransitionAction
from services.verification_client import VerificationClient

logger = logging.getLogger(__name__)

_OUTCOMES = {
    TransitionAction.FULFILL: IngestOutcome.FULFILLED,
    TransitionAction.FINALIZE_NEGATIVE: IngestOutcome.FINALIZED_NEGATIVE,
    TransitionAction.PROGRESS: IngestOutcome.PROGRESSED,
    TransitionAction.DUPLICATE: IngestOutcome.DUPLICATE_IGNORED,
}


def _peek(raw_body: bytes) -> dict:
    """Best-effort, untrusted field extraction for audit logs only."""
    try:
        data = json.loads(raw_body)
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}
    return {
        "orderId": data.get("OrderId"),
        "token": data.get("Token"),
        "rawStatus": data.get("OrderStatus"),
    }


class IngestionEngine:
    """Authenticates, verifies and applies gateway callbacks exactly once."""

    def __init__(
        self,
        secret: bytes,
        verifier: VerificationClient,
        ledger: OrderLedger,
        hooks: FulfillmentHooks,
        session_factory: async_sessionmaker[AsyncSession],
        metrics: Optional[IngestionMetrics] = None,
    ):
        self.secret = secret
        self.verifier = verifier
        self.ledger = ledger
        self.hooks = hooks
        self._session_factory = session_factory
        self.metrics = metrics or get_ingestion_metrics()

    # ── Entry point ─────────────────────────────────────────────────

    async def ingest(self, raw_body: bytes, signature_header: Optional[str]) -> IngestResult:
        """Process one callback. raw_body must be the bytes exactly as received."""
        self.metrics.record_received()

        if not signature_service.verify(raw_body, signature_header or "", self.secret):
            self.metrics.rejected_signature += 1
            self._audit_reject("invalid_signature", signature_valid=False, **_peek(raw_body))
            raise InvalidSignatureError()

        claim = self._parse_claim(raw_body, signature_header)

        try:
            claimed_status = StatusCode.parse(claim.order_status)
        except UnknownStatusCodeError:
            self.metrics.rejected_status += 1
            self._audit_reject(
                "unknown_status",
                signature_valid=True,
                orderId=claim.order_id,
                token=claim.token,
                rawStatus=claim.order_status,
            )
            raise

        logger.info(
            f"  📩 IPN: order={claim.order_id} token={claim.token[:12]}... "
            f"claimed={claimed_status.name} "
            f"data={[item.key for item in claim.additional_data]}"
        )
        return await self.confirm_token(
            claim.token,
            claimed_order_id=claim.order_id,
            payment_id=claim.payment_id,
            claimed_status=claimed_status,
        )

    async def confirm_token(
        self,
        token: str,
        claimed_order_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        claimed_status: Optional[StatusCode] = None,
    ) -> IngestResult:
        """
        Verify a token with the gateway and apply the verified status.

        Also used by the reconciliation sweep, which has no fresh callback.
        """
        try:
            verified = await self.verifier.verify_token(token)
        except VerificationUnavailableError as e:
            await reconcile_service.record_unconfirmed(
                self._session_factory,
                token=token,
                order_id=claimed_order_id,
                raw_status=int(claimed_status) if claimed_status is not None else None,
                error=e.message,
            )
            logger.error(
                f"  🚨 OPERATOR ALERT: unconfirmed claim for order={claimed_order_id} "
                f"token={token[:12]}... - verify unavailable, order left unconfirmed"
            )
            raise
        except UnknownStatusCodeError as e:
            self.metrics.rejected_status += 1
            self._audit_reject(
                "unknown_verified_status",
                signature_valid=True,
                orderId=claimed_order_id,
                token=token,
                rawStatus=e.raw_status,
            )
            raise
        except VerificationRejectedError:
            self._audit_reject(
                "verify_rejected",
                signature_valid=True,
                orderId=claimed_order_id,
                token=token,
                rawStatus=int(claimed_status) if claimed_status is not None else None,
            )
            raise

        if claimed_order_id and verified.order_id != claimed_order_id:
            logger.warning(
                f"  ⚠️ Callback order {claimed_order_id} does not match verified order "
                f"{verified.order_id} for token {token[:12]}...; using verified order"
            )
        if claimed_status is not None and claimed_status != verified.order_status:
            logger.info(
                f"  Callback claimed {claimed_status.name}, gateway verified "
                f"{verified.order_status.name} for order {verified.order_id}"
            )

        try:
            result = await self._apply(verified, payment_id)
        except LedgerBusyError as e:
            await reconcile_service.record_unconfirmed(
                self._session_factory,
                token=token,
                order_id=verified.order_id,
                raw_status=int(verified.order_status),
                error=e.message,
            )
            self._audit_reject(
                "ledger_busy",
                signature_valid=True,
                orderId=verified.order_id,
                token=token,
                rawStatus=int(claimed_status) if claimed_status is not None else None,
            )
            raise
        await reconcile_service.resolve_unconfirmed(self._session_factory, token)
        return result

    # ── Internals ───────────────────────────────────────────────────

    def _parse_claim(self, raw_body: bytes, signature_header: Optional[str]) -> InboundClaim:
        try:
            data = json.loads(raw_body)
        except ValueError:
            self._reject_payload("body is not valid JSON", raw_body)
        if not isinstance(data, dict):
            self._reject_payload("body is not a JSON object", raw_body)
        try:
            return InboundClaim.model_validate(
                {**data, "raw_body": raw_body, "signature_header": signature_header or ""}
            )
        except PydanticValidationError as e:
            self._reject_payload(f"{e.error_count()} invalid field(s)", raw_body)

    def _reject_payload(self, reason: str, raw_body: bytes):
        self.metrics.rejected_payload += 1
        self._audit_reject("malformed_payload", signature_valid=True, **_peek(raw_body))
        raise MalformedPayloadError(f"Malformed callback payload: {reason}")

    async def _apply(self, verified: VerifiedStatus, payment_id: Optional[str]) -> IngestResult:
        order_id = verified.order_id
        status = verified.order_status

        async with self.ledger.hold(order_id):
            decision = await self.ledger.apply(
                order_id, status, token=verified.token, payment_id=payment_id
            )

            if decision.action is TransitionAction.FULFILL:
                logger.info(f"  ✅ Order {order_id} FULFILLED ({status.name}, token={verified.token[:12]}...)")
                await self._fire_hook("on_fulfilled", order_id)
            elif decision.action is TransitionAction.FINALIZE_NEGATIVE:
                logger.info(f"  ⛔ Order {order_id} FINALIZED NEGATIVE ({status.name})")
                await self._fire_hook("on_finalized_negative", order_id, status)
            elif decision.action is TransitionAction.DUPLICATE:
                logger.info(
                    f"  DuplicateIgnored: order={order_id} status={status.name} ({decision.reason})"
                )
                if is_fulfillment_trigger(status) and decision.previous_status is not None \
                        and is_terminal_negative(decision.previous_status):
                    logger.error(
                        f"  🚨 OPERATOR ALERT: gateway verified {status.name} for order {order_id} "
                        f"after it was finalized as {decision.previous_status.name}"
                    )

        outcome = _OUTCOMES[decision.action]
        self.metrics.record_outcome(outcome)
        return IngestResult(outcome=outcome, order_id=order_id, status=status, token=verified.token)

    async def _fire_hook(self, name: str, *args) -> None:
        try:
            await getattr(self.hooks, name)(*args)
        except Exception as e:
            self.metrics.hook_failures += 1
            logger.error(
                f"  🚨 OPERATOR ALERT: {name} hook failed for order {args[0]}: {e}. "
                f"Ledger already committed; the hook will not be re-fired.",
                exc_info=True,
            )

    def _audit_reject(self, reason: str, signature_valid: bool, orderId=None, token=None, rawStatus=None) -> None:
        logger.warning(
            f"  ✋ Callback rejected ({reason}): orderId={orderId} token={token} "
            f"providedSignatureValid={signature_valid} rawStatus={rawStatus}"
        )
