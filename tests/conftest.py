"""
Shared Test Fixtures

Every test gets its own in-memory SQLite database with the full schema and
an in-memory bus.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest

from src.core.database import DatabaseAdapter, DatabaseConfig, create_schema
from src.core.messaging import BusMessage, InMemoryBus


class FakeClock:
    """Controllable clock for loops that take a `clock` callable."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FlakyBus(InMemoryBus):
    """InMemoryBus whose sends fail on the given (1-based) call numbers."""

    def __init__(self, fail_on: Iterable[int] = (), error: Optional[Exception] = None):
        super().__init__()
        self.fail_on = set(fail_on)
        self.error = error or ConnectionError("broker unavailable")
        self.calls = 0

    async def send(self, message: BusMessage) -> None:
        self.calls += 1
        if self.calls in self.fail_on:
            raise self.error
        await super().send(message)


@pytest.fixture
async def db():
    """Connected in-memory SQLite adapter with the schema created."""
    adapter = DatabaseAdapter(DatabaseConfig(backend="sqlite", sqlite_path=":memory:"))
    await adapter.connect()
    await create_schema(adapter)
    yield adapter
    await adapter.disconnect()


@pytest.fixture
def bus() -> InMemoryBus:
    return InMemoryBus()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def flaky_bus():
    """Factory: flaky_bus(fail_on=[1, 3]) -> FlakyBus."""
    def _make(fail_on: Iterable[int] = (), error: Optional[Exception] = None) -> FlakyBus:
        return FlakyBus(fail_on, error)
    return _make
