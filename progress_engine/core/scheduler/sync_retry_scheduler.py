"""
Periodic retry of pending offline writes
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SyncRetryScheduler:
    """Calls the retry callback at a fixed interval until stopped"""

    def __init__(
        self,
        retry_callback: Callable[[], Awaitable[object]],
        interval_seconds: float = 30.0,
    ):
        self.retry_callback = retry_callback
        self.interval_seconds = interval_seconds
        self.is_running = False
        self.task = None

    async def start(self):
        """Start the retry scheduler"""
        if self.is_running:
            logger.warning("Sync retry scheduler is already running")
            return

        if self.interval_seconds <= 0:
            logger.info("Sync retry scheduler disabled")
            return

        self.is_running = True
        self.task = asyncio.create_task(self._retry_loop())
        logger.info(f"Sync retry scheduler started: interval={self.interval_seconds}s")

    async def stop(self):
        """Stop the retry scheduler"""
        if not self.is_running:
            return

        self.is_running = False
        if self.task:
            self.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.task
        self.task = None
        logger.info("Sync retry scheduler stopped")

    async def _retry_loop(self):
        """Main retry loop"""
        while self.is_running:
            try:
                await asyncio.sleep(self.interval_seconds)

                if self.is_running:
                    await self.retry_callback()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in sync retry scheduler: {e}", exc_info=True)
