"""
Payment Routes

Endpoints:
    POST /payments/request          - open a payment session, returns token + redirect URL
    GET  /payments/order/{order_id} - ledger state of one order
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_gateway_client, get_order_ledger
from domain.errors import NotFoundError
from domain.responses import success_response
from models import CreatePaymentRequest, CreatePaymentResponse
from services import payment_service
from services.gateway_client import GatewayClient
from services.ledger_service import OrderLedger, to_snapshot
from utils.validators import validate_order_id, validated_order_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/request")
async def create_payment_request(
    req: CreatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: GatewayClient = Depends(get_gateway_client),
):
    """
    Request a payment token from the gateway for a merchant order.

    Repeating the request returns the same session; different terms for an
    order that already has one are a 409.
    """
    validate_order_id(req.order_id)
    result = await payment_service.request_payment(
        gateway=gateway,
        db=db,
        order_id=req.order_id,
        fiat_amount=req.fiat_amount,
        fiat_currency=req.fiat_currency,
        return_url=req.return_url,
        risk_speed=req.risk_speed,
    )
    await db.commit()

    response = CreatePaymentResponse(token=result["token"], paymentUrl=result["paymentUrl"])
    return success_response(response.model_dump(by_alias=True))


@router.get("/order/{order_id}")
async def get_order(
    order_id: str = Depends(validated_order_id),
    ledger: OrderLedger = Depends(get_order_ledger),
):
    """Ledger snapshot and transition history for one order."""
    record = await ledger.get(order_id)
    if record is None:
        raise NotFoundError("Order", order_id)

    events = await ledger.history(order_id)
    snapshot = to_snapshot(record)
    snapshot["history"] = [
        {
            "kind": e.kind,
            "fromStatus": e.from_status,
            "toStatus": e.to_status,
            "at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in events
    ]
    return success_response(snapshot)
