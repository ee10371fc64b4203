"""
Shared FastAPI dependencies.

Builds the long-lived collaborators once per process (gateway client,
ingestion engine) so routers can depend on them and tests can override
them through app.dependency_overrides.
"""

from __future__ import annotations

from typing import Optional

from config import settings
from database import async_session
from services.fulfillment_hooks import FulfillmentHooks, LoggingFulfillmentHooks
from services.gateway_client import GatewayClient, build_gateway_client
from services.ingestion_service import IngestionEngine
from services.ledger_service import OrderLedger
from services.verification_client import build_verification_client

_gateway: Optional[GatewayClient] = None
_engine: Optional[IngestionEngine] = None
_hooks: FulfillmentHooks = LoggingFulfillmentHooks()


def set_fulfillment_hooks(hooks: FulfillmentHooks) -> None:
    """Install the merchant's business hooks. Rebuilds the engine on next use."""
    global _hooks, _engine
    _hooks = hooks
    _engine = None


def get_gateway_client() -> GatewayClient:
    global _gateway
    if _gateway is None:
        _gateway = build_gateway_client()
    return _gateway


def get_order_ledger() -> OrderLedger:
    return get_ingestion_engine().ledger


def get_ingestion_engine() -> IngestionEngine:
    global _engine
    if _engine is None:
        _engine = IngestionEngine(
            secret=settings.merchant_secret_bytes,
            verifier=build_verification_client(get_gateway_client()),
            ledger=OrderLedger(
                async_session,
                conflict_retries=settings.ledger_conflict_retries,
                allow_transient_regression=settings.allow_transient_regression,
            ),
            hooks=_hooks,
            session_factory=async_session,
        )
    return _engine


async def close_gateway_client() -> None:
    """Shutdown hook: release the shared HTTP connection pool."""
    global _gateway, _engine
    if _gateway is not None:
        await _gateway.aclose()
    _gateway = None
    _engine = None
