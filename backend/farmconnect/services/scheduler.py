"""Background task scheduler — retries pending payouts.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
Every PAYOUT_RETRY_INTERVAL_SECONDS it dispatches payout intents that are
still pending and below PAYOUT_MAX_ATTEMPTS.

The same sweep can be run by hand:

    python -m farmconnect.cli process-payouts
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from farmconnect.config import settings
from farmconnect.database import async_session
from farmconnect.services.payouts import dispatch_pending_payouts

logger = logging.getLogger("farmconnect.scheduler")


async def run_payout_retries() -> int:
    """One sweep over pending payout intents.  Returns the number paid."""
    async with async_session() as db:
        try:
            paid = await dispatch_pending_payouts(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    if paid:
        logger.info("Payout retry sweep paid %d intent(s)", paid)
    return paid


async def _scheduler_loop() -> None:
    interval = settings.payout_retry_interval_seconds

    while True:
        await asyncio.sleep(interval)
        try:
            await run_payout_retries()
        except Exception:
            logger.exception("Unhandled error in payout retry sweep")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the payout loop on startup, cancel on shutdown."""
    task = None
    if settings.payout_retry_interval_seconds > 0:
        task = asyncio.create_task(_scheduler_loop())
        logger.info(
            "Payout retry scheduler started (every %ds)",
            settings.payout_retry_interval_seconds,
        )
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Payout retry scheduler stopped")
