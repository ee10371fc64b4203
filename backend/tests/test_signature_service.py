"""
Tests for callback signature verification.

Tests: sign, verify - round trip, tampering, header normalization, fail-closed cases.
"""
import hashlib
import hmac
import json

import pytest

from services.signature_service import sign, verify

SECRET = b"merchant-shared-secret"
BODY = json.dumps({
    "Token": "tok-abc",
    "PaymentId": "PAY-9",
    "OrderId": "ORDER-42",
    "OrderStatus": 7,
    "AdditionalData": [{"key": "coin", "value": "USDT"}],
}).encode("utf-8")


class TestSign:

    @pytest.mark.unit
    def test_sign_is_uppercase_hmac_sha256(self):
        expected = hmac.new(SECRET, BODY, hashlib.sha256).hexdigest().upper()
        assert sign(BODY, SECRET) == expected
        assert sign(BODY, SECRET).isupper()


class TestVerify:

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [b"", b"{}", BODY, BODY * 50, bytes(range(256))])
    @pytest.mark.parametrize("secret", [b"k", SECRET, b"\x00" * 64])
    def test_valid_signature_verifies(self, body, secret):
        assert verify(body, sign(body, secret), secret) is True

    @pytest.mark.unit
    def test_lowercase_header_accepted(self):
        assert verify(BODY, sign(BODY, SECRET).lower(), SECRET) is True

    @pytest.mark.unit
    def test_surrounding_whitespace_ignored(self):
        assert verify(BODY, f"  {sign(BODY, SECRET)}\n", SECRET) is True

    @pytest.mark.unit
    def test_every_single_bit_flip_in_body_fails(self):
        signature = sign(BODY, SECRET)
        for i in range(len(BODY)):
            for bit in range(8):
                tampered = bytearray(BODY)
                tampered[i] ^= 1 << bit
                assert verify(bytes(tampered), signature, SECRET) is False

    @pytest.mark.unit
    def test_every_single_bit_flip_in_digest_fails(self):
        digest = bytes.fromhex(sign(BODY, SECRET))
        for i in range(len(digest)):
            for bit in range(8):
                tampered = bytearray(digest)
                tampered[i] ^= 1 << bit
                assert verify(BODY, bytes(tampered).hex().upper(), SECRET) is False

    @pytest.mark.unit
    def test_reencoded_json_fails(self):
        """Pretty-printing the same JSON changes the bytes, so the signature breaks."""
        signature = sign(BODY, SECRET)
        reencoded = json.dumps(json.loads(BODY), indent=2).encode("utf-8")
        assert verify(reencoded, signature, SECRET) is False

    @pytest.mark.unit
    def test_wrong_secret_fails(self):
        assert verify(BODY, sign(BODY, SECRET), b"other-secret") is False

    @pytest.mark.unit
    @pytest.mark.parametrize("header", [
        "",
        "not-hex",
        "ZZ" * 32,
        "AB" * 31,          # too short
        "AB" * 33,          # too long
        None,
        12345,
    ])
    def test_malformed_header_returns_false(self, header):
        assert verify(BODY, header, SECRET) is False

    @pytest.mark.unit
    def test_empty_secret_fails_closed(self):
        assert verify(BODY, sign(BODY, b""), b"") is False

    @pytest.mark.unit
    def test_non_bytes_body_returns_false(self):
        assert verify(BODY.decode("utf-8"), sign(BODY, SECRET), SECRET) is False
