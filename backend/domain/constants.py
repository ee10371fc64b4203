"""
Domain constants used across services/routers.
"""

# Inbound callback header carrying the uppercase hex HMAC-SHA256 of the raw body
SIGNATURE_HEADER = "X-HMAC-SHA256-SIGNATURE"

# Header used to authenticate outbound gateway calls
API_KEY_HEADER = "X-API-KEY"

# Gateway REST endpoints
VERIFY_PATH = "/v1/payment/verify"
REQUEST_PATH = "/v1/payment/request"
