"""
Inbox Pattern Implementation

Provides consumer-side deduplication for effectively-once processing.

Usage:
    from src.core.inbox import EventConsumer

    async def handle(tx, message):
        ...  # side effects written through tx

    consumer = EventConsumer(db, source, handle)
    await consumer.start()
"""

from .guard import InboxGuard, InboxRepository
from .consumer import EventConsumer, Handler

__all__ = [
    "InboxGuard",
    "InboxRepository",
    "EventConsumer",
    "Handler",
]
