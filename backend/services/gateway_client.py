"""
Thin HTTP transport for the gateway's REST API.

Maps httpx outcomes onto the exception classes in exceptions.py so callers
can decide what is retryable:
    connect error / timeout  → GatewayTransportError
    HTTP 5xx / non-JSON body → GatewayServerError
    HTTP 4xx                 → GatewayClientError
"""
import logging
from typing import Optional

import httpx

from config import settings
from domain.constants import API_KEY_HEADER
from exceptions import GatewayClientError, GatewayServerError, GatewayTransportError

logger = logging.getLogger(__name__)


class GatewayClient:
    """POSTs JSON to the gateway and returns the decoded response."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-create the shared AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def post_json(self, path: str, payload: dict) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers[API_KEY_HEADER] = self.api_key

        try:
            response = await self.client.post(url, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise GatewayTransportError(f"{type(e).__name__} calling {path}: {e}") from e

        if response.status_code >= 500:
            raise GatewayServerError(response.status_code, response.text[:500])
        if response.status_code >= 400:
            raise GatewayClientError(response.status_code, response.text[:500])

        try:
            data = response.json()
        except ValueError:
            raise GatewayServerError(response.status_code, "non-JSON response body")
        if not isinstance(data, dict):
            raise GatewayServerError(response.status_code, "response body is not a JSON object")
        return data

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def build_gateway_client(http_client: Optional[httpx.AsyncClient] = None) -> GatewayClient:
    return GatewayClient(
        base_url=settings.gateway_base_url,
        api_key=settings.gateway_api_key,
        timeout=settings.verify_timeout_seconds,
        http_client=http_client,
    )
