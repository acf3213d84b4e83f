"""
Bus Message Contract

Outbound and inbound messages share one header contract:
- topic = event_type
- key = aggregate_id bytes
- headers = event_id, event_type, traceparent/tracestate
- value = payload bytes
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple, runtime_checkable

EVENT_ID_HEADER = "event_id"
EVENT_TYPE_HEADER = "event_type"

Headers = List[Tuple[str, bytes]]


@dataclass
class BusMessage:
    """A message as sent to or read from the bus."""
    topic: str
    key: bytes = b""
    value: bytes = b""
    headers: Headers = field(default_factory=list)
    # Set by sources that track offsets
    partition: Optional[int] = None
    offset: Optional[int] = None

    def header(self, name: str) -> str:
        """First header value for `name`, decoded; empty string when absent."""
        for key, value in self.headers:
            if key == name:
                return value.decode(errors="replace") if value else ""
        return ""


@dataclass(frozen=True)
class EventMeta:
    """Canonical event metadata carried across services."""
    event_id: str
    event_type: str


def extract_event_meta(message: BusMessage) -> EventMeta:
    """
    Derive event metadata from a message.

    Explicit headers win; producers that send none fall back to the
    message key as event_id and the topic as event_type.
    """
    event_id = message.header(EVENT_ID_HEADER)
    event_type = message.header(EVENT_TYPE_HEADER)
    if not event_id:
        event_id = message.key.decode(errors="replace")
    if not event_type:
        event_type = message.topic
    return EventMeta(event_id=event_id, event_type=event_type)


@runtime_checkable
class MessageBus(Protocol):
    """Outbound side of the bus."""

    async def send(self, message: BusMessage) -> None:
        ...


@runtime_checkable
class MessageSource(Protocol):
    """
    Inbound side of the bus.

    ack() confirms a message so it is not delivered again; nack() hands it
    back so the next read() redelivers it.
    """

    async def read(self) -> BusMessage:
        ...

    async def ack(self, message: BusMessage) -> None:
        ...

    async def nack(self, message: BusMessage) -> None:
        ...
