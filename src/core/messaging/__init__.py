"""
Message bus seam.

The bus is the only surface shared between services. Components depend on
the MessageBus / MessageSource protocols; KafkaBus/KafkaSource run in
production and InMemoryBus serves local runs and tests.
"""

from .models import (
    EVENT_ID_HEADER,
    EVENT_TYPE_HEADER,
    BusMessage,
    EventMeta,
    MessageBus,
    MessageSource,
    extract_event_meta,
)
from .memory import InMemoryBus, InMemorySource
from .kafka import KafkaBus, KafkaSource

__all__ = [
    "EVENT_ID_HEADER",
    "EVENT_TYPE_HEADER",
    "BusMessage",
    "EventMeta",
    "MessageBus",
    "MessageSource",
    "extract_event_meta",
    "InMemoryBus",
    "InMemorySource",
    "KafkaBus",
    "KafkaSource",
]
