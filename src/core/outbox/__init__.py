"""
Outbox Pattern Implementation

Turns "mutate state + emit an event" into one atomic unit: the event row
is written in the business transaction and published asynchronously.

Usage:
    from src.core.outbox import OutboxRepository, OutboxEvent

    async with db.transaction() as tx:
        await tx.execute("INSERT INTO appointments ...")
        await outbox.insert(tx, OutboxEvent.from_data(
            aggregate_type="appointment",
            aggregate_id=appointment_id,
            event_type="booking.appointment.booked.v1",
            data={"appointment_id": appointment_id}
        ))
"""

from .models import OutboxEvent, OutboxRecord
from .repository import OutboxRepository
from .publisher import OutboxPublisher, build_message
from .lifecycle import outbox_lifespan

__all__ = [
    "OutboxEvent",
    "OutboxRecord",
    "OutboxRepository",
    "OutboxPublisher",
    "build_message",
    "outbox_lifespan",
]
