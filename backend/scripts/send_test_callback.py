"""
Send a signed test IPN to a running server.

Signs the body with MERCHANT_SECRET exactly as the gateway does, so the
full pipeline (signature → verify → ledger) can be exercised against a
staging gateway.

Run from the backend/ directory:
    python scripts/send_test_callback.py --token TOKEN --order-id ORDER-1 --status 7
"""
import argparse
import json
import os
import sys

import httpx

# Add backend/ to path so we can import config
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from config import settings
from domain.constants import SIGNATURE_HEADER
from services.signature_service import sign


def main():
    parser = argparse.ArgumentParser(description="POST a signed IPN callback")
    parser.add_argument("--url", default="http://127.0.0.1:8000/ipn/callback")
    parser.add_argument("--token", required=True)
    parser.add_argument("--order-id", required=True)
    parser.add_argument("--payment-id", default="")
    parser.add_argument("--status", type=int, default=7)
    parser.add_argument("--tamper", action="store_true", help="alter the body after signing")
    args = parser.parse_args()

    if not settings.merchant_secret:
        print("⚠️  MERCHANT_SECRET is not set; the server will reject this callback")

    body = json.dumps({
        "Token": args.token,
        "PaymentId": args.payment_id,
        "OrderId": args.order_id,
        "OrderStatus": args.status,
        "AdditionalData": [],
    }).encode("utf-8")
    signature = sign(body, settings.merchant_secret_bytes)
    if args.tamper:
        body = body.replace(b"\"AdditionalData\"", b"\"AdditionalData\" ")

    response = httpx.post(
        args.url,
        content=body,
        headers={"Content-Type": "application/json", SIGNATURE_HEADER: signature},
        timeout=30.0,
    )
    print(f"📨 HTTP {response.status_code}")
    print(response.text)


if __name__ == "__main__":
    main()
