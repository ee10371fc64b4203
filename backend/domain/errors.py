"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py. 4xx tells the gateway not to resend a callback; 5xx is retryable.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class InvalidSignatureError(DomainError):
    """Callback HMAC did not match (401). Nothing is written."""
    def __init__(self, message: str = "Invalid callback signature", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class MalformedPayloadError(DomainError):
    """Callback or verify body could not be parsed (400)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class UnknownStatusCodeError(DomainError):
    """Status integer outside the closed StatusCode set (400)."""
    def __init__(self, raw_status, details: dict | None = None):
        self.raw_status = raw_status
        super().__init__(
            f"Unknown order status code: {raw_status!r}",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {"rawStatus": repr(raw_status)},
        )


class VerificationRejectedError(DomainError):
    """Gateway refused the verify call with a 4xx; permanent, not retried (400)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class VerificationUnavailableError(DomainError):
    """Verify call failed after all retries (503, retryable by the gateway)."""
    def __init__(self, message: str = "Payment verification unavailable", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


class LedgerBusyError(DomainError):
    """Ledger kept losing optimistic-concurrency races (503, retryable)."""
    def __init__(self, order_id: str, details: dict | None = None):
        super().__init__(
            f"Order ledger busy for {order_id}",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
        )


class GatewayRequestError(DomainError):
    """Payment request to the gateway failed (502)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, details=details)


class PaymentRequestConflictError(DomainError):
    """Order already has a payment session with different terms (409)."""
    def __init__(self, order_id: str, details: dict | None = None):
        super().__init__(
            f"Payment already requested for order {order_id} with different terms",
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


class LedgerConflictError(Exception):
    """Another writer updated the order record first. Retried inside the ledger."""
    pass
