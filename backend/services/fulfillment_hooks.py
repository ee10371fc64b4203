"""
Fulfillment hooks - the boundary to the merchant's business logic.

The ingestion engine calls exactly one of these per applied terminal
transition, at most once per order. Releasing goods, refunds and settlement
live behind this interface, not in this service.
"""
import logging
from typing import Protocol

from domain.enums import StatusCode

logger = logging.getLogger(__name__)


class FulfillmentHooks(Protocol):
    async def on_fulfilled(self, order_id: str) -> None:
        ...

    async def on_finalized_negative(self, order_id: str, status: StatusCode) -> None:
        ...


class LoggingFulfillmentHooks:
    """Default hooks: log only. Replace with the merchant's order system."""

    async def on_fulfilled(self, order_id: str) -> None:
        logger.info(f"  🛒 Fulfillment hook: order {order_id} marked paid")

    async def on_finalized_negative(self, order_id: str, status: StatusCode) -> None:
        logger.info(f"  🚫 Finalize-negative hook: order {order_id} closed as {status.name}")
