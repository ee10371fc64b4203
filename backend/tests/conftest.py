"""
Pytest configuration and shared fixtures for the IPN service tests.

Provides a file-backed SQLite ledger per test, a scriptable gateway stub
served through httpx.MockTransport, a fake sleep for retry timing, and
recording fulfillment hooks.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import asyncio
import json
from typing import AsyncGenerator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from config import settings
from database import Base
from domain.constants import REQUEST_PATH, SIGNATURE_HEADER, VERIFY_PATH
from services.gateway_client import GatewayClient
from services.ingestion_metrics import IngestionMetrics
from services.ingestion_service import IngestionEngine
from services.ledger_service import OrderLedger
from services.retry_policy import RetryPolicy
from services.signature_service import sign
from services.verification_client import VerificationClient

# ── Test Configuration ───────────────────────────────────────────────

TEST_SECRET = "test-merchant-secret-for-pytest-only"
settings.merchant_secret = TEST_SECRET
settings.gateway_base_url = "https://gateway.test"
settings.gateway_api_key = "test-api-key"

GATEWAY_URL = "https://gateway.test"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """
    Fresh SQLite ledger file per test.

    A file (not :memory:) so concurrent sessions get their own connections,
    as they would against the real database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Gateway Stub ─────────────────────────────────────────────────────


class GatewayStub:
    """
    Scriptable fake of the gateway REST API.

    - set_status(token, order_id, status): what verify returns by default
    - script(token, *steps): one-shot responses consumed before the default;
      a step is an HTTP status code (int), an exception to raise, or a raw
      JSON dict returned with 200
    """

    def __init__(self):
        self.statuses: dict[str, tuple[str, int]] = {}
        self.scripts: dict[str, list] = {}
        self.verify_calls: list[str] = []
        self.request_calls: list[dict] = []
        self.request_status: int = 200
        self.api_keys: list[str | None] = []

    def set_status(self, token: str, order_id: str, status) -> None:
        self.statuses[token] = (order_id, int(status))

    def script(self, token: str, *steps) -> None:
        self.scripts.setdefault(token, []).extend(steps)

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content or b"{}")
        self.api_keys.append(request.headers.get("X-API-KEY"))

        if request.url.path == VERIFY_PATH:
            token = payload.get("token")
            self.verify_calls.append(token)
            steps = self.scripts.get(token)
            if steps:
                step = steps.pop(0)
                if isinstance(step, Exception):
                    raise step
                if isinstance(step, int):
                    return httpx.Response(step, json={"error": f"scripted {step}"})
                return httpx.Response(200, json=step)
            if token not in self.statuses:
                return httpx.Response(404, json={"error": "unknown token"})
            order_id, status = self.statuses[token]
            return httpx.Response(200, json={
                "body": {
                    "token": token,
                    "orderId": order_id,
                    "orderStatus": status,
                    "additionalData": [{"key": "network", "value": "TRON"}],
                }
            })

        if request.url.path == REQUEST_PATH:
            self.request_calls.append(payload)
            if self.request_status != 200:
                return httpx.Response(self.request_status, json={"error": "scripted"})
            return httpx.Response(200, json={"body": {"token": f"tok-{payload['orderId']}"}})

        return httpx.Response(404, json={"error": "no such endpoint"})


@pytest.fixture
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture
async def gateway_client(gateway_stub) -> AsyncGenerator[GatewayClient, None]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(gateway_stub.handler))
    client = GatewayClient(GATEWAY_URL, api_key="test-api-key", http_client=http_client)
    yield client
    await http_client.aclose()


# ── Retry / Metrics / Hooks ──────────────────────────────────────────


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def metrics() -> IngestionMetrics:
    return IngestionMetrics()


class RecordingHooks:
    """Fulfillment hooks that record calls; optional delay widens race windows."""

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.delay = delay
        self.fail = fail
        self.fulfilled: list[str] = []
        self.finalized: list[tuple[str, int]] = []

    async def on_fulfilled(self, order_id: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.fulfilled.append(order_id)
        if self.fail:
            raise RuntimeError("warehouse API down")

    async def on_finalized_negative(self, order_id: str, status) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finalized.append((order_id, int(status)))


@pytest.fixture
def hooks() -> RecordingHooks:
    return RecordingHooks()


@pytest.fixture
def retry_policy(fake_sleep) -> RetryPolicy:
    """Default backoff schedule without jitter so delays are exact."""
    return RetryPolicy(max_attempts=5, base_delay=0.2, multiplier=2.0, max_delay=5.0, jitter=0.0, sleep=fake_sleep)


@pytest.fixture
def verifier(gateway_client, retry_policy, metrics) -> VerificationClient:
    return VerificationClient(gateway_client, retry_policy, max_concurrency=4, deadline_seconds=5.0, metrics=metrics)


@pytest.fixture
def ledger(session_factory, metrics) -> OrderLedger:
    return OrderLedger(session_factory, conflict_retries=5, metrics=metrics)


@pytest.fixture
def engine(verifier, ledger, hooks, session_factory, metrics) -> IngestionEngine:
    return IngestionEngine(
        secret=TEST_SECRET.encode("utf-8"),
        verifier=verifier,
        ledger=ledger,
        hooks=hooks,
        session_factory=session_factory,
        metrics=metrics,
    )


# ── Callback Helpers ─────────────────────────────────────────────────


def make_callback(token: str, order_id: str, status=7, payment_id: str = "PAY-1",
                  additional_data=None, secret: str = TEST_SECRET) -> tuple[bytes, str]:
    """Raw callback body as the gateway sends it, plus its signature header value."""
    body = json.dumps({
        "Token": token,
        "PaymentId": payment_id,
        "OrderId": order_id,
        "OrderStatus": int(status) if not isinstance(status, str) else status,
        "AdditionalData": additional_data or [{"key": "coin", "value": "USDT"}],
    }).encode("utf-8")
    return body, sign(body, secret.encode("utf-8"))


def signed_headers(signature: str) -> dict:
    return {"Content-Type": "application/json", SIGNATURE_HEADER: signature}
