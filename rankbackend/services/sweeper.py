"""Periodic expiry sweep, run as a background task of the API process."""
import asyncio
import logging
from typing import Callable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rankbackend.services.attempt_manager import sweep_expired

logger = logging.getLogger(__name__)


def run_sweep_once(session_factory: Callable[[], Session], batch_size: int) -> List[int]:
    db = session_factory()
    try:
        return sweep_expired(db, limit=batch_size)
    finally:
        db.close()


async def sweep_forever(session_factory: Callable[[], Session], interval_seconds: float, batch_size: int) -> None:
    logger.info("Expiry sweep running every %ss (batch %s)", interval_seconds, batch_size)
    while True:
        try:
            await asyncio.to_thread(run_sweep_once, session_factory, batch_size)
        except SQLAlchemyError as e:
            # Next pass retries; attempts stay closable by reads and submits meanwhile
            logger.error("Expiry sweep failed: %s", e)
        await asyncio.sleep(interval_seconds)
