"""
IPN Routes - gateway callback receiver.

Endpoints:
    POST /ipn/callback - Instant Payment Notification from the gateway
    GET  /ipn/metrics  - ingestion counters

Response codes tell the gateway what to do next:
    200 - applied or duplicate; do not resend
    400 / 401 - rejected permanently (bad payload, unknown status, bad signature)
    503 - verification unavailable; safe to redeliver
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from deps import get_ingestion_engine
from domain.constants import SIGNATURE_HEADER
from domain.responses import callback_ack, success_response
from services.ingestion_metrics import get_ingestion_metrics
from services.ingestion_service import IngestionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ipn", tags=["ipn"])


@router.post("/callback")
async def ipn_callback(
    request: Request,
    signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
    engine: IngestionEngine = Depends(get_ingestion_engine),
):
    """
    Receive one IPN.

    The raw body is read before any JSON parsing: the HMAC covers the exact
    bytes the gateway sent.
    """
    raw_body = await request.body()
    result = await engine.ingest(raw_body, signature)
    return callback_ack(result.outcome.value, result.order_id, result.status.name)


@router.get("/metrics")
async def ipn_metrics():
    """Current ingestion counters."""
    return success_response(get_ingestion_metrics().to_dict())
