"""
Custom exception classes for outbound gateway calls.
"""


class GatewayTransportError(Exception):
    """Raised when the gateway could not be reached (connect error, timeout)."""
    pass


class GatewayServerError(Exception):
    """Raised when the gateway answered with a 5xx status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Gateway returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class GatewayClientError(Exception):
    """Raised when the gateway answered with a 4xx status (bad token, auth failure)."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Gateway rejected request with HTTP {status_code}")
        self.status_code = status_code
        self.body = body
