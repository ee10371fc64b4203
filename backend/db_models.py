"""
SQLAlchemy ORM models for the merchant IPN service.

Tables:
    order_records      - last applied status per order (the ledger)
    ledger_events      - append-only history of applied transitions
    payment_requests   - outbound payment requests and their tokens
    unconfirmed_claims - signed callbacks whose verify call never succeeded
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, Text, Index,
)

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderRecord(Base):
    """Last applied gateway status for one merchant order."""
    __tablename__ = "order_records"

    order_id = Column(String(128), primary_key=True)
    token = Column(String(256), nullable=True, index=True)
    payment_id = Column(String(128), nullable=True)
    last_applied_status = Column(Integer, nullable=True)  # None until first transition
    last_applied_at = Column(DateTime, nullable=True)
    fulfilled = Column(Boolean, nullable=False, default=False)
    finalized_negative = Column(Boolean, nullable=False, default=False)
    version = Column(Integer, nullable=False, default=0)  # optimistic concurrency counter
    created_at = Column(DateTime, default=utcnow)


class LedgerEvent(Base):
    """One applied ledger transition (fulfilled, finalized_negative, progressed)."""
    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(128), nullable=False, index=True)
    kind = Column(String(32), nullable=False)
    from_status = Column(Integer, nullable=True)
    to_status = Column(Integer, nullable=False)
    token = Column(String(256), nullable=True)
    # "<order_id>:fulfilled" / "<order_id>:finalized_negative"; NULL for progress
    dedup_key = Column(String(200), unique=True, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_ledger_events_order_created", "order_id", "created_at"),
    )


class PaymentRequest(Base):
    """Outbound payment request sent to the gateway."""
    __tablename__ = "payment_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(128), unique=True, nullable=False, index=True)
    token = Column(String(256), unique=True, nullable=True, index=True)
    fiat_amount = Column(Float, nullable=False)
    fiat_currency = Column(String(10), nullable=False)
    return_url = Column(Text, nullable=False)
    risk_speed = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class UnconfirmedClaim(Base):
    """Signed callback left in the Seen state because verify kept failing."""
    __tablename__ = "unconfirmed_claims"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(256), unique=True, nullable=False, index=True)
    order_id = Column(String(128), nullable=True, index=True)
    raw_status = Column(Integer, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    last_error = Column(Text, nullable=True)
    first_seen_at = Column(DateTime, default=utcnow)
    last_attempt_at = Column(DateTime, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_unconfirmed_resolved_seen", "resolved_at", "first_seen_at"),
    )
