"""
In-memory counters for callback ingestion.

Simple counters; can be replaced with Prometheus later.
"""
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class IngestionMetrics:
    """Counters for the IPN ingestion pipeline."""

    callbacks_received: int = 0
    rejected_signature: int = 0
    rejected_payload: int = 0
    rejected_status: int = 0
    verify_retries: int = 0
    verify_failures: int = 0
    verify_rejections: int = 0
    fulfilled: int = 0
    finalized_negative: int = 0
    progressed: int = 0
    duplicates_ignored: int = 0
    ledger_conflicts: int = 0
    hook_failures: int = 0
    started_at: float = field(default_factory=time.monotonic)
    last_callback_at: float | None = None

    def record_received(self) -> None:
        self.callbacks_received += 1
        self.last_callback_at = time.monotonic()

    def record_outcome(self, outcome) -> None:
        name = getattr(outcome, "value", outcome)
        if name == "FULFILLED":
            self.fulfilled += 1
        elif name == "FINALIZED_NEGATIVE":
            self.finalized_negative += 1
        elif name == "PROGRESSED":
            self.progressed += 1
        elif name == "DUPLICATE_IGNORED":
            self.duplicates_ignored += 1
        else:
            logger.debug(f"Unknown ingest outcome for metrics: {name}")

    def reset(self) -> None:
        fresh = IngestionMetrics()
        self.__dict__.update(fresh.__dict__)

    def to_dict(self) -> dict:
        now = time.monotonic()
        return {
            "callbacks_received": self.callbacks_received,
            "rejected_signature": self.rejected_signature,
            "rejected_payload": self.rejected_payload,
            "rejected_status": self.rejected_status,
            "verify_retries": self.verify_retries,
            "verify_failures": self.verify_failures,
            "verify_rejections": self.verify_rejections,
            "fulfilled": self.fulfilled,
            "finalized_negative": self.finalized_negative,
            "progressed": self.progressed,
            "duplicates_ignored": self.duplicates_ignored,
            "ledger_conflicts": self.ledger_conflicts,
            "hook_failures": self.hook_failures,
            "uptime_seconds": round(now - self.started_at, 1),
            "last_callback_age_seconds": (
                round(now - self.last_callback_at, 1) if self.last_callback_at is not None else None
            ),
        }


# Singleton metrics instance
_metrics: IngestionMetrics | None = None


def get_ingestion_metrics() -> IngestionMetrics:
    global _metrics
    if _metrics is None:
        _metrics = IngestionMetrics()
    return _metrics
