"""
Reconciliation of unconfirmed claims.

When the verify call fails after every retry, the callback is answered with
a retryable 503 and the token is parked in unconfirmed_claims. The order
ledger is not touched. This sweep re-runs verify → ledger → hooks for those
tokens so a gateway that never re-delivers cannot leave a paid order
unconfirmed.
"""
import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db_models import UnconfirmedClaim, utcnow
from domain.enums import StatusCode
from domain.errors import DomainError

logger = logging.getLogger(__name__)


async def record_unconfirmed(
    session_factory: async_sessionmaker[AsyncSession],
    token: str,
    order_id: Optional[str],
    raw_status: Optional[int],
    error: str,
) -> None:
    """Upsert the claim; repeated failures bump attempts and keep first_seen_at."""
    now = utcnow()
    stmt = sqlite_insert(UnconfirmedClaim).values(
        token=token,
        order_id=order_id,
        raw_status=raw_status,
        attempts=1,
        last_error=error,
        first_seen_at=now,
        last_attempt_at=now,
        resolved_at=None,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["token"],
        set_={
            "attempts": UnconfirmedClaim.attempts + 1,
            "last_error": stmt.excluded.last_error,
            "last_attempt_at": stmt.excluded.last_attempt_at,
            "resolved_at": None,
        },
    )
    async with session_factory() as db:
        await db.execute(stmt)
        await db.commit()


async def resolve_unconfirmed(session_factory: async_sessionmaker[AsyncSession], token: str) -> bool:
    """Mark a parked claim resolved. Returns True if one was pending."""
    async with session_factory() as db:
        res = await db.execute(
            update(UnconfirmedClaim)
            .where(UnconfirmedClaim.token == token, UnconfirmedClaim.resolved_at.is_(None))
            .values(resolved_at=utcnow())
        )
        await db.commit()
    resolved = getattr(res, "rowcount", 0) > 0
    if resolved:
        logger.info(f"  Unconfirmed claim for token {token[:12]}... resolved")
    return resolved


async def list_unconfirmed(
    session_factory: async_sessionmaker[AsyncSession],
    limit: int = 100,
) -> list[UnconfirmedClaim]:
    async with session_factory() as db:
        result = await db.execute(
            select(UnconfirmedClaim)
            .where(UnconfirmedClaim.resolved_at.is_(None))
            .order_by(UnconfirmedClaim.first_seen_at, UnconfirmedClaim.id)
            .limit(limit)
        )
        return list(result.scalars().all())


async def reconcile_unconfirmed(engine, session_factory: async_sessionmaker[AsyncSession], limit: int = 100) -> dict:
    """
    Re-verify every unresolved claim, oldest first.

    Args:
        engine: IngestionEngine used to verify and apply each token
        session_factory: sessions for the unconfirmed_claims table
        limit: maximum claims per sweep

    Returns:
        dict: {checked, resolved, still_unconfirmed, rejected, outcomes: {orderId: outcome}}
    """
    claims = await list_unconfirmed(session_factory, limit=limit)
    summary = {"checked": 0, "resolved": 0, "still_unconfirmed": 0, "rejected": 0, "outcomes": {}}

    for claim in claims:
        summary["checked"] += 1
        claimed_status = None
        if claim.raw_status is not None:
            try:
                claimed_status = StatusCode(claim.raw_status)
            except ValueError:
                claimed_status = None
        try:
            result = await engine.confirm_token(
                claim.token,
                claimed_order_id=claim.order_id,
                claimed_status=claimed_status,
            )
        except DomainError as e:
            if e.status_code >= 500:
                # Retryable: stays pending for the next sweep
                summary["still_unconfirmed"] += 1
            else:
                # Permanent (4xx): nothing more to learn from retrying this token
                await resolve_unconfirmed(session_factory, claim.token)
                summary["rejected"] += 1
                logger.warning(f"  Unconfirmed claim {claim.token[:12]}... closed: {e.message}")
            continue

        summary["resolved"] += 1
        summary["outcomes"][result.order_id] = result.outcome.value

    logger.info(
        f"  🔁 Reconciliation sweep: checked={summary['checked']} resolved={summary['resolved']} "
        f"still_unconfirmed={summary['still_unconfirmed']} rejected={summary['rejected']}"
    )
    return summary
