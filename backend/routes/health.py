"""
Health check endpoint.

Reports ledger database reachability and how many signed callbacks are
parked as unconfirmed, so a monitoring probe can page on a verify outage
that outlived the gateway's redelivery window.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from db_models import UnconfirmedClaim

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    try:
        pending = await db.scalar(
            select(func.count()).select_from(UnconfirmedClaim).where(UnconfirmedClaim.resolved_at.is_(None))
        )
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: ledger database unreachable: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database_connected": False},
        )

    return {
        "status": "healthy",
        "database_connected": True,
        "unconfirmed_claims": pending or 0,
        "secret_configured": bool(settings.merchant_secret),
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
