"""
Domain enums for the payment lifecycle.

StatusCode is a closed set: an integer the gateway sends that is not listed
here is a hard parse error, never a pass-through. Adding a code is a
reviewed change to this module.
"""

import re
from enum import Enum, IntEnum

from domain.errors import UnknownStatusCodeError

_INT_RE = re.compile(r"-?[0-9]+")


class StatusCode(IntEnum):
    INITIALIZE = 0
    PENDING = 1
    PARTIAL_PAID = 2
    WAITING_TO_CONFIRM = 3
    TIMEOUT = 4
    USER_CANCELED = 5
    # 6 is reserved by the gateway and never valid
    PAID = 7
    APPROVE = 8
    REJECT = 9

    @classmethod
    def parse(cls, raw) -> "StatusCode":
        """Parse a wire value into a StatusCode or raise UnknownStatusCodeError."""
        if isinstance(raw, bool):
            raise UnknownStatusCodeError(raw)
        if isinstance(raw, str):
            text = raw.strip()
            # ASCII digits only; str.isdigit() also admits superscripts and other scripts
            if not _INT_RE.fullmatch(text):
                raise UnknownStatusCodeError(raw)
            try:
                raw = int(text)
            except ValueError:
                raise UnknownStatusCodeError(raw) from None
        if not isinstance(raw, int):
            raise UnknownStatusCodeError(raw)
        try:
            return cls(raw)
        except ValueError:
            raise UnknownStatusCodeError(raw) from None


FULFILLMENT_TRIGGERS = frozenset({StatusCode.PAID, StatusCode.APPROVE})
TERMINAL_NEGATIVE = frozenset({StatusCode.TIMEOUT, StatusCode.USER_CANCELED, StatusCode.REJECT})
TERMINAL = FULFILLMENT_TRIGGERS | TERMINAL_NEGATIVE
TRANSIENT = frozenset({
    StatusCode.INITIALIZE,
    StatusCode.PENDING,
    StatusCode.PARTIAL_PAID,
    StatusCode.WAITING_TO_CONFIRM,
})

# Transient states progress in this order; every terminal state outranks them
_TRANSIENT_RANK = {
    StatusCode.INITIALIZE: 0,
    StatusCode.PENDING: 1,
    StatusCode.PARTIAL_PAID: 2,
    StatusCode.WAITING_TO_CONFIRM: 3,
}
_TERMINAL_RANK = 10


def is_fulfillment_trigger(code: StatusCode) -> bool:
    return code in FULFILLMENT_TRIGGERS


def is_terminal(code: StatusCode) -> bool:
    return code in TERMINAL


def is_terminal_negative(code: StatusCode) -> bool:
    return code in TERMINAL_NEGATIVE


def is_transient(code: StatusCode) -> bool:
    return code in TRANSIENT


def progress_rank(code: StatusCode) -> int:
    """Position of a status on the transient → terminal ordering."""
    return _TRANSIENT_RANK.get(code, _TERMINAL_RANK)


class RiskSpeed(IntEnum):
    """Confirmation speed requested from the gateway when creating a payment."""
    FAST = 0
    NORMAL = 1
    SECURE = 2


class IngestOutcome(str, Enum):
    FULFILLED = "FULFILLED"
    FINALIZED_NEGATIVE = "FINALIZED_NEGATIVE"
    PROGRESSED = "PROGRESSED"
    DUPLICATE_IGNORED = "DUPLICATE_IGNORED"


class LedgerEventKind(str, Enum):
    FULFILLED = "fulfilled"
    FINALIZED_NEGATIVE = "finalized_negative"
    PROGRESSED = "progressed"
