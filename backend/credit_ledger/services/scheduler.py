"""Expiry sweep — periodically expires stale credit packs and writes off their credits."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from credit_ledger.core.config import settings
from credit_ledger.core.database import SessionLocal
from credit_ledger.services.credits import expire_stale_packs

logger = logging.getLogger(__name__)


def run_expiry_sweep(
    session_factory: Callable[[], Session] = SessionLocal,
    now: datetime | None = None,
) -> int:
    """Run one sweep in a fresh session. Returns the number of packs expired."""
    db = session_factory()
    try:
        return expire_stale_packs(db, now)
    finally:
        db.close()


async def expiry_sweep_loop() -> None:
    """Background loop that sweeps expired packs every EXPIRY_SWEEP_INTERVAL_SECONDS."""
    interval = settings.EXPIRY_SWEEP_INTERVAL_SECONDS
    logger.info("Credit expiry sweep started (interval: %ds)", interval)

    while True:
        try:
            count = await asyncio.to_thread(run_expiry_sweep)
            if count > 0:
                logger.info("Expiry sweep expired %d pack(s)", count)
        except Exception:
            logger.exception("Error in expiry sweep loop")

        await asyncio.sleep(interval)
