"""
Callback signature verification.

The gateway signs every IPN with HMAC-SHA256 over the exact raw request body,
keyed with the merchant secret, and sends the digest as uppercase hex in the
X-HMAC-SHA256-SIGNATURE header. Anything that re-encodes the body before
hashing (json.loads/dumps, pretty-printing) breaks the signature, so callers
must hand in the bytes exactly as received.
"""
import hashlib
import hmac
import logging
import string

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset(string.hexdigits)
_SIGNATURE_LENGTH = hashlib.sha256().digest_size * 2


def sign(raw_body: bytes, secret: bytes) -> str:
    """Uppercase hex HMAC-SHA256 of raw_body, as the gateway renders it."""
    return hmac.new(secret, raw_body, hashlib.sha256).hexdigest().upper()


def verify(raw_body: bytes, provided_signature_hex: str, secret: bytes) -> bool:
    """
    Check a callback signature in constant time.

    Never raises: a missing, non-hex or wrong-length header, or an empty
    secret, simply fails verification.
    """
    if not secret:
        logger.error(
            "MERCHANT_SECRET not configured - rejecting callback. "
            "Set MERCHANT_SECRET in .env to accept gateway callbacks."
        )
        return False

    if not isinstance(provided_signature_hex, str) or not isinstance(raw_body, (bytes, bytearray)):
        return False

    provided = provided_signature_hex.strip().upper()
    if len(provided) != _SIGNATURE_LENGTH or not _HEX_DIGITS.issuperset(provided):
        return False

    expected = sign(bytes(raw_body), secret)
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("ascii"))
