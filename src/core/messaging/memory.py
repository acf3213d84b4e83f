"""
In-memory bus for local runs and tests.

Keeps every sent message in `sent` (the delivery log) and fans messages
out to subscriptions by topic.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Iterable, List

from .models import BusMessage

logger = logging.getLogger(__name__)


class InMemorySource:
    """Subscription to a set of topics on an InMemoryBus."""

    def __init__(self, topics: Iterable[str]):
        self.topics = set(topics)
        self._pending: Deque[BusMessage] = deque()
        self._available = asyncio.Event()
        self._offset = 0
        self.acked: List[BusMessage] = []

    def _deliver(self, message: BusMessage) -> None:
        delivered = BusMessage(
            topic=message.topic,
            key=message.key,
            value=message.value,
            headers=list(message.headers),
            partition=0,
            offset=self._offset,
        )
        self._offset += 1
        self._pending.append(delivered)
        self._available.set()

    async def read(self) -> BusMessage:
        while not self._pending:
            self._available.clear()
            await self._available.wait()
        return self._pending.popleft()

    async def ack(self, message: BusMessage) -> None:
        self.acked.append(message)

    async def nack(self, message: BusMessage) -> None:
        # Redeliver before anything that arrived later
        self._pending.appendleft(message)
        self._available.set()

    def pending(self) -> int:
        return len(self._pending)


class InMemoryBus:
    """Bus that delivers in-process."""

    def __init__(self):
        self.sent: List[BusMessage] = []
        self._subscriptions: List[InMemorySource] = []

    async def send(self, message: BusMessage) -> None:
        self.sent.append(message)
        for source in self._subscriptions:
            if message.topic in source.topics:
                source._deliver(message)
        logger.debug(f"In-memory bus: sent {message.topic} key={message.key!r}")

    def subscribe(self, *topics: str) -> InMemorySource:
        return self.attach(InMemorySource(topics))

    def attach(self, source: InMemorySource) -> InMemorySource:
        """Register an existing source, e.g. a subclass with custom ack behavior."""
        self._subscriptions.append(source)
        return source

    def messages(self, topic: str) -> List[BusMessage]:
        return [m for m in self.sent if m.topic == topic]
