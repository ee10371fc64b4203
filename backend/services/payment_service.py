"""
Payment request service - opens a payment session at the gateway.

Thin collaborator of the ingestion engine: it obtains the opaque token the
customer is redirected with and stores it next to the merchant order id so
later callbacks can be correlated.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import PaymentRequest
from domain.constants import REQUEST_PATH
from domain.enums import RiskSpeed
from domain.errors import GatewayRequestError, PaymentRequestConflictError
from exceptions import GatewayClientError, GatewayServerError, GatewayTransportError
from services.gateway_client import GatewayClient

logger = logging.getLogger(__name__)


def _extract_token(data: dict) -> str | None:
    body = data.get("body")
    if isinstance(body, str):
        return body
    if isinstance(body, dict):
        return body.get("token")
    return None


def _payment_link(token: str) -> dict:
    return {
        "token": token,
        "paymentUrl": f"{settings.gateway_payment_url.rstrip('/')}/{token}",
    }


def _reuse_existing(
    existing: PaymentRequest,
    fiat_amount: float,
    fiat_currency: str,
    return_url: str,
    risk_speed: RiskSpeed,
) -> dict:
    same_terms = (
        existing.fiat_amount == fiat_amount
        and existing.fiat_currency == fiat_currency
        and existing.return_url == return_url
        and existing.risk_speed == int(risk_speed)
    )
    if not same_terms:
        logger.warning(f"  Payment request for order {existing.order_id} repeated with different terms")
        raise PaymentRequestConflictError(existing.order_id, details={"token": existing.token})
    logger.info(f"  💳 Payment already requested for order {existing.order_id}; reusing token")
    return _payment_link(existing.token)


async def request_payment(
    *,
    gateway: GatewayClient,
    db: AsyncSession,
    order_id: str,
    fiat_amount: float,
    fiat_currency: str,
    return_url: str,
    risk_speed: RiskSpeed = RiskSpeed.NORMAL,
) -> dict:
    """
    Ask the gateway for a payment token and persist the request.

    Not retried: the request call is not idempotent on the gateway side.
    A repeated request for an order that already has a session returns the
    stored token when the terms match and raises PaymentRequestConflictError
    otherwise; the gateway is only called for new orders.

    Returns:
        dict: {token, paymentUrl}
    """
    existing = await get_payment_request(order_id, db)
    if existing is not None:
        return _reuse_existing(existing, fiat_amount, fiat_currency, return_url, risk_speed)

    payload = {
        "fiatAmount": fiat_amount,
        "fiatCurrency": fiat_currency,
        "returnUrl": return_url,
        "orderId": order_id,
        "riskSpeed": int(risk_speed),
    }

    try:
        data = await gateway.post_json(REQUEST_PATH, payload)
    except (GatewayTransportError, GatewayServerError) as e:
        logger.error(f"  ❌ Payment request failed for order {order_id}: {e}")
        raise GatewayRequestError("Payment gateway unavailable. Try again later.")
    except GatewayClientError as e:
        logger.warning(f"  Payment request rejected for order {order_id}: HTTP {e.status_code}")
        raise GatewayRequestError(
            f"Payment gateway rejected the request (HTTP {e.status_code})",
            details={"status_code": e.status_code},
        )

    token = _extract_token(data)
    if not token:
        raise GatewayRequestError("Payment gateway returned no token")

    db.add(PaymentRequest(
        order_id=order_id,
        token=token,
        fiat_amount=fiat_amount,
        fiat_currency=fiat_currency,
        return_url=return_url,
        risk_speed=int(risk_speed),
    ))
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent request for the same order (or token) committed first
        await db.rollback()
        logger.warning(f"  Payment request for order {order_id} lost a race; session {token[:12]}... orphaned")
        raise PaymentRequestConflictError(order_id, details={"reason": "concurrent request"})

    logger.info(
        f"  💳 Payment requested: order={order_id} "
        f"({fiat_amount} {fiat_currency}, risk={risk_speed.name}) token={token[:12]}..."
    )

    return _payment_link(token)


async def get_payment_request(order_id: str, db: AsyncSession) -> PaymentRequest | None:
    result = await db.execute(select(PaymentRequest).where(PaymentRequest.order_id == order_id))
    return result.scalar_one_or_none()
