"""
Response envelopes shared by every route.

    success: {"success": true, "data": ..., "meta": {...}}
    error:   {"success": false, "error": {"code", "message", "details"}}

The gateway only looks at the HTTP status of a callback response; the
envelope is for operators and the merchant's own tooling.
"""
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Any = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorDetail


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def error_response(code: str, message: str, details: Any = None) -> dict[str, Any]:
    return ErrorEnvelope(error=ErrorDetail(code=code, message=message, details=details)).model_dump()


def error_code_for(exc: HTTPException) -> str:
    """
    Stable machine-readable code for an error.

    Domain errors use their class name: InvalidSignatureError → "invalidsignature",
    VerificationUnavailableError → "verificationunavailable". Plain
    HTTPExceptions are "http_error".
    """
    if hasattr(exc, "message") and hasattr(exc, "details"):
        return type(exc).__name__.removesuffix("Error").lower()
    return "http_error"


def callback_ack(outcome: str, order_id: str, status_name: str) -> dict[str, Any]:
    """Body of a 200 answer to the gateway: applied or duplicate, do not resend."""
    return success_response({"outcome": outcome, "orderId": order_id, "status": status_name})
