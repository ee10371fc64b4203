"""
Order Ledger - durable last-applied status per order.

The ledger is the only shared mutation point of the ingestion pipeline and
the durability boundary for idempotency: an order that was fulfilled stays
fulfilled across restarts, duplicate deliveries and concurrent writers.

Atomicity of "read last status, decide, write":
    - in-process: callers serialize per order with `ledger.hold(order_id)`
      (a per-key asyncio.Lock, no global lock)
    - across processes: optimistic concurrency on OrderRecord.version plus
      INSERT ... ON CONFLICT DO NOTHING on the record and on the
      LedgerEvent.dedup_key of hook-firing transitions. A lost race raises
      LedgerConflictError and the whole cycle is retried here.

Transition rules (decide_transition):
    fulfilled                 → DUPLICATE (never un-fulfills)
    terminal-negative         → DUPLICATE (sticky)
    Paid / Approve            → FULFILL
    Timeout / Canceled / Reject → FINALIZE_NEGATIVE
    transient, moves forward  → PROGRESS
    transient, same or back   → DUPLICATE (PROGRESS if regression allowed)
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db_models import LedgerEvent, OrderRecord, utcnow
from domain.enums import (
    LedgerEventKind,
    StatusCode,
    is_fulfillment_trigger,
    is_terminal_negative,
    is_transient,
    progress_rank,
)
from domain.errors import LedgerBusyError, LedgerConflictError
from services.ingestion_metrics import IngestionMetrics, get_ingestion_metrics
from utils.locks import KeyedLock

logger = logging.getLogger(__name__)


class TransitionAction(str, Enum):
    FULFILL = "FULFILL"
    FINALIZE_NEGATIVE = "FINALIZE_NEGATIVE"
    PROGRESS = "PROGRESS"
    DUPLICATE = "DUPLICATE"


@dataclass(frozen=True)
class LedgerDecision:
    order_id: str
    action: TransitionAction
    status: StatusCode
    previous_status: Optional[StatusCode]
    reason: str = ""

    @property
    def applied(self) -> bool:
        return self.action is not TransitionAction.DUPLICATE


def _status_of(record: Optional[OrderRecord]) -> Optional[StatusCode]:
    if record is None or record.last_applied_status is None:
        return None
    return StatusCode(record.last_applied_status)


def decide_transition(
    record: Optional[OrderRecord],
    status: StatusCode,
    allow_transient_regression: bool = False,
) -> tuple[TransitionAction, str]:
    """Pure transition function; returns (action, reason)."""
    previous = _status_of(record)

    if record is not None and record.fulfilled:
        return TransitionAction.DUPLICATE, "already fulfilled"
    if record is not None and record.finalized_negative:
        return TransitionAction.DUPLICATE, f"terminal-negative ({previous.name if previous is not None else '?'}) is sticky"

    if is_fulfillment_trigger(status):
        return TransitionAction.FULFILL, "fulfillment trigger"
    if is_terminal_negative(status):
        return TransitionAction.FINALIZE_NEGATIVE, "terminal-negative"

    # Transient from here on
    if previous is None:
        return TransitionAction.PROGRESS, "first status"
    if status == previous:
        return TransitionAction.DUPLICATE, "same status"
    if progress_rank(status) > progress_rank(previous):
        return TransitionAction.PROGRESS, "forward progress"
    if allow_transient_regression and is_transient(previous):
        return TransitionAction.PROGRESS, "transient regression (last write wins)"
    return TransitionAction.DUPLICATE, f"not forward of {previous.name}"


class OrderLedger:
    """Persistent order ledger with per-order serialization."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        conflict_retries: int = 5,
        allow_transient_regression: bool = False,
        metrics: Optional[IngestionMetrics] = None,
    ):
        self._session_factory = session_factory
        self.conflict_retries = max(1, conflict_retries)
        self.allow_transient_regression = allow_transient_regression
        self.metrics = metrics or get_ingestion_metrics()
        self._locks = KeyedLock()

    def hold(self, order_id: str):
        """Async context manager serializing work on one order in this process."""
        return self._locks.hold(order_id)

    async def get(self, order_id: str) -> Optional[OrderRecord]:
        async with self._session_factory() as db:
            result = await db.execute(select(OrderRecord).where(OrderRecord.order_id == order_id))
            return result.scalar_one_or_none()

    async def apply(
        self,
        order_id: str,
        status: StatusCode,
        token: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> LedgerDecision:
        """
        Apply a verified status to the ledger in one commit.

        Raises LedgerBusyError only when every retry lost a concurrent race.
        """
        for attempt in range(1, self.conflict_retries + 1):
            try:
                return await self._apply_once(order_id, status, token, payment_id)
            except LedgerConflictError as e:
                self.metrics.ledger_conflicts += 1
                logger.info(
                    f"  Ledger conflict on {order_id} "
                    f"(attempt {attempt}/{self.conflict_retries}): {e}"
                )
        raise LedgerBusyError(order_id)

    async def _apply_once(
        self,
        order_id: str,
        status: StatusCode,
        token: Optional[str],
        payment_id: Optional[str],
    ) -> LedgerDecision:
        async with self._session_factory() as db:
            result = await db.execute(select(OrderRecord).where(OrderRecord.order_id == order_id))
            record = result.scalar_one_or_none()
            previous = _status_of(record)

            action, reason = decide_transition(record, status, self.allow_transient_regression)
            decision = LedgerDecision(
                order_id=order_id,
                action=action,
                status=status,
                previous_status=previous,
                reason=reason,
            )
            if action is TransitionAction.DUPLICATE:
                await db.rollback()
                return decision

            now = utcnow()
            values = {
                "last_applied_status": int(status),
                "last_applied_at": now,
            }
            if action is TransitionAction.FULFILL:
                values["fulfilled"] = True
            elif action is TransitionAction.FINALIZE_NEGATIVE:
                values["finalized_negative"] = True

            if record is None:
                row = {
                    "order_id": order_id,
                    "token": token,
                    "payment_id": payment_id,
                    "fulfilled": False,
                    "finalized_negative": False,
                    "version": 1,
                    "created_at": now,
                }
                row.update(values)
                res = await db.execute(
                    sqlite_insert(OrderRecord)
                    .values(**row)
                    .on_conflict_do_nothing(index_elements=["order_id"])
                )
                if getattr(res, "rowcount", 0) == 0:
                    await db.rollback()
                    raise LedgerConflictError(f"record for {order_id} created concurrently")
            else:
                if token:
                    values["token"] = token
                if payment_id:
                    values["payment_id"] = payment_id
                res = await db.execute(
                    update(OrderRecord)
                    .where(
                        OrderRecord.order_id == order_id,
                        OrderRecord.version == record.version,
                    )
                    .values(version=OrderRecord.version + 1, **values)
                )
                if getattr(res, "rowcount", 0) == 0:
                    await db.rollback()
                    raise LedgerConflictError(f"version {record.version} of {order_id} is stale")

            await self._record_event(db, decision, token)
            await db.commit()

        logger.info(
            f"  📒 Ledger {order_id}: {previous.name if previous is not None else 'UNKNOWN'} "
            f"→ {status.name} ({action.value}, {reason})"
        )
        return decision

    async def _record_event(self, db: AsyncSession, decision: LedgerDecision, token: Optional[str]) -> None:
        kind = {
            TransitionAction.FULFILL: LedgerEventKind.FULFILLED,
            TransitionAction.FINALIZE_NEGATIVE: LedgerEventKind.FINALIZED_NEGATIVE,
            TransitionAction.PROGRESS: LedgerEventKind.PROGRESSED,
        }[decision.action]
        dedup_key = None
        if kind is not LedgerEventKind.PROGRESSED:
            dedup_key = f"{decision.order_id}:{kind.value}"

        res = await db.execute(
            sqlite_insert(LedgerEvent)
            .values(
                order_id=decision.order_id,
                kind=kind.value,
                from_status=int(decision.previous_status) if decision.previous_status is not None else None,
                to_status=int(decision.status),
                token=token,
                dedup_key=dedup_key,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["dedup_key"])
        )
        if dedup_key and getattr(res, "rowcount", 0) == 0:
            await db.rollback()
            raise LedgerConflictError(f"{dedup_key} already recorded")

    async def history(self, order_id: str) -> list[LedgerEvent]:
        """Applied transitions for one order, oldest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(LedgerEvent)
                .where(LedgerEvent.order_id == order_id)
                .order_by(LedgerEvent.id)
            )
            return list(result.scalars().all())


def to_snapshot(record: OrderRecord) -> dict:
    """Serialize an OrderRecord for API responses."""
    return {
        "orderId": record.order_id,
        "token": record.token,
        "paymentId": record.payment_id,
        "lastAppliedStatus": (
            StatusCode(record.last_applied_status).name
            if record.last_applied_status is not None else None
        ),
        "lastAppliedAt": record.last_applied_at.isoformat() if record.last_applied_at else None,
        "fulfilled": record.fulfilled,
        "finalizedNegative": record.finalized_negative,
    }
