"""
Reconcile unconfirmed claims.

Re-verifies every signed callback whose verify call failed after all
retries, applies the verified status to the order ledger and fires the
fulfillment hooks where due.

Run from the backend/ directory (e.g. from cron):
    python scripts/reconcile_unconfirmed.py [--limit 100]
"""
import argparse
import asyncio
import logging
import os
import sys

# Add backend/ to path so we can import config
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session, init_db
from deps import close_gateway_client, get_ingestion_engine
from services import reconcile_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main(limit: int) -> int:
    await init_db()
    try:
        summary = await reconcile_service.reconcile_unconfirmed(
            get_ingestion_engine(), async_session, limit=limit
        )
    finally:
        await close_gateway_client()

    print(f"🔁 checked={summary['checked']} resolved={summary['resolved']} "
          f"still_unconfirmed={summary['still_unconfirmed']} rejected={summary['rejected']}")
    for order_id, outcome in summary["outcomes"].items():
        print(f"   {order_id}: {outcome}")
    return 1 if summary["still_unconfirmed"] else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Re-verify unconfirmed payment callbacks")
    parser.add_argument("--limit", type=int, default=100, help="maximum claims per sweep")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.limit)))
