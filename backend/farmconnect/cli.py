"""Management CLI for payout operations.

Usage:
    python -m farmconnect.cli process-payouts        # Dispatch pending payout intents
    python -m farmconnect.cli list-pending-payouts   # Show intents still pending
"""

import asyncio
import logging
import sys

from farmconnect.database import async_session
from farmconnect.services.payouts import list_payout_intents
from farmconnect.services.scheduler import run_payout_retries


def process_payouts():
    paid = asyncio.run(run_payout_retries())
    print(f"{paid} payout(s) dispatched")


async def _pending_intents():
    async with async_session() as db:
        return await list_payout_intents(db, status="pending")


def list_pending_payouts():
    intents = asyncio.run(_pending_intents())
    for i in intents:
        print(
            f"  {i.order_id}  {i.recipient_type:<11}  {i.amount:>10.2f} {i.currency}"
            f"  attempts={i.attempts}  {i.last_error or ''}"
        )
    print(f"\n{len(intents)} pending payout(s)")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "process-payouts":
        process_payouts()
    elif cmd == "list-pending-payouts":
        list_pending_payouts()
    else:
        print("Usage: python -m farmconnect.cli [process-payouts|list-pending-payouts]")
