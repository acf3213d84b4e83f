"""
Polling Loop

Base for the timer-driven background loops (outbox publisher, job worker).
Each loop runs one bounded tick per interval and observes a stop event.
"""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class PollingLoop:
    """
    Runs `tick()` every `poll_interval` seconds until stopped.

    A failing tick is logged and retried on the next interval. stop() wakes
    the loop, waits up to `shutdown_timeout` for the in-flight tick to
    finish, then cancels it; a cancelled tick rolls its transaction back.
    """

    name = "polling-loop"

    def __init__(self, poll_interval: float, shutdown_timeout: float = 10.0):
        self.poll_interval = poll_interval
        self.shutdown_timeout = shutdown_timeout
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> int:
        """Process one batch; returns the number of items handled."""
        raise NotImplementedError

    async def start(self):
        """Start the loop as a background task."""
        if self.running:
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name=self.name)
        logger.info(f"{self.name} started")

    async def stop(self):
        """Stop the loop, letting the current tick finish or roll back."""
        self._stop_event.set()
        if self._task:
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"{self.name} did not stop in {self.shutdown_timeout}s, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            self._task = None
        logger.info(f"{self.name} stopped")

    async def run(self):
        """Main processing loop."""
        while not self._stop_event.is_set():
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
