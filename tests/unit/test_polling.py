"""
Tests for the polling loop lifecycle.
"""

import asyncio

import pytest

from src.core.polling import PollingLoop


class CountingLoop(PollingLoop):
    name = "counting-loop"

    def __init__(self, fail_first: bool = False, tick_duration: float = 0.0, **kwargs):
        super().__init__(**kwargs)
        self.ticks = 0
        self.fail_first = fail_first
        self.tick_duration = tick_duration
        self.cancelled = False

    async def tick(self) -> int:
        self.ticks += 1
        if self.fail_first and self.ticks == 1:
            raise RuntimeError("store unavailable")
        try:
            await asyncio.sleep(self.tick_duration)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return 1


async def _wait_for(predicate, timeout: float = 2.0):
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


class TestPollingLoop:
    """Test start/stop behavior."""

    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self):
        loop = CountingLoop(poll_interval=0.01)
        await loop.start()
        assert loop.running

        await _wait_for(lambda: loop.ticks >= 3)
        await loop.stop()

        assert not loop.running
        ticks = loop.ticks
        await asyncio.sleep(0.05)
        assert loop.ticks == ticks

    @pytest.mark.asyncio
    async def test_failed_tick_is_retried(self):
        loop = CountingLoop(fail_first=True, poll_interval=0.01)
        await loop.start()
        await _wait_for(lambda: loop.ticks >= 2)
        await loop.stop()

        assert loop.ticks >= 2

    @pytest.mark.asyncio
    async def test_stop_wakes_a_sleeping_loop(self):
        loop = CountingLoop(poll_interval=60)
        await loop.start()
        await _wait_for(lambda: loop.ticks == 1)

        await asyncio.wait_for(loop.stop(), timeout=1)
        assert not loop.running

    @pytest.mark.asyncio
    async def test_stop_cancels_a_stuck_tick(self):
        loop = CountingLoop(tick_duration=60, poll_interval=0.01, shutdown_timeout=0.05)
        await loop.start()
        await _wait_for(lambda: loop.ticks == 1)

        await asyncio.wait_for(loop.stop(), timeout=1)

        assert loop.cancelled
        assert not loop.running

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self):
        loop = CountingLoop(poll_interval=0.01)
        await loop.start()
        task = loop._task
        await loop.start()
        assert loop._task is task
        await loop.stop()
