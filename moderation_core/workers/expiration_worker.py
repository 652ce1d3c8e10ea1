"""Periodic sweep that retires lapsed restrictions and suspensions."""

import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from moderation_core.config import settings
from moderation_core.core.exceptions import AppException
from moderation_core.services import expiration_service

logger = logging.getLogger(__name__)


class ExpirationWorker:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        interval_seconds: float | None = None,
    ):
        self.session_maker = session_maker
        self.interval_seconds = interval_seconds or settings.EXPIRATION_INTERVAL_SECONDS

    async def run_once(self, now: datetime | None = None) -> tuple[int, int]:
        async with self.session_maker() as db:
            restrictions = await expiration_service.expire_restrictions(db, now)
            suspensions = await expiration_service.expire_suspensions(db, now)
        logger.info(
            "Expiration sweep done: %d restrictions, %d suspensions",
            restrictions,
            suspensions,
        )
        return restrictions, suspensions

    async def run_forever(self) -> None:
        # A failed sweep is retried on the next tick; partial runs are safe to repeat.
        while True:
            try:
                await self.run_once()
            except AppException as e:
                logger.error("Expiration sweep failed: %s (code=%s)", e.message, e.code.value)
            except Exception:
                logger.exception("Expiration sweep failed unexpectedly")
            await asyncio.sleep(self.interval_seconds)


def spawn_expiration_worker(
    session_maker: async_sessionmaker[AsyncSession],
    interval_seconds: float | None = None,
) -> asyncio.Task:
    """Start the worker on the running loop; the caller keeps the task to cancel it."""
    worker = ExpirationWorker(session_maker, interval_seconds)
    return asyncio.get_running_loop().create_task(
        worker.run_forever(), name="moderation-expiration"
    )
