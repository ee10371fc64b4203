"""
Input validation utilities for the merchant IPN service.

Order ids are opaque to the gateway but end up in URLs, logs and ledger
keys, so path parameters are restricted to a conservative character set.
"""
import re

from fastapi import HTTPException, Path

_ORDER_ID_RE = re.compile(r"^[A-Za-z0-9._:\-]{1,128}$")


def validate_order_id(order_id: str) -> str:
    """
    Validate a merchant order id.

    Args:
        order_id: Merchant order identifier

    Returns:
        The validated order id (unchanged)

    Raises:
        HTTPException(400) if the order id is missing or malformed
    """
    if not order_id:
        raise HTTPException(status_code=400, detail="Order id is required")

    if not _ORDER_ID_RE.match(order_id):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order id: {order_id[:32]!r}",
        )

    return order_id


def validated_order_id(order_id: str = Path(..., description="Merchant order id")) -> str:
    """FastAPI dependency for validating order id path parameters."""
    return validate_order_id(order_id)
