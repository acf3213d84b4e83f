"""
Outbox Repository

Writes events to the outbox table within the same transaction as the
business change that produced them, and gives the publisher exclusive,
transaction-scoped ownership of unpublished rows.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..database.adapter import Transaction
from ..observability.tracing import trace_context_strings
from .models import OutboxEvent, OutboxRecord

logger = logging.getLogger(__name__)

_COLUMNS = """
    id, event_id, aggregate_type, aggregate_id, event_type,
    payload, traceparent, tracestate, created_at, published_at
"""


class OutboxRepository:
    """
    Access to the outbox_events table.

    Usage:
        async with db.transaction() as tx:
            await tx.execute("INSERT INTO appointments ...")
            await outbox.insert(tx, OutboxEvent.from_data(
                "appointment", appointment_id, "booking.appointment.booked.v1", {...}
            ))
        # The event exists if and only if the appointment committed
    """

    async def insert(
        self,
        tx: Transaction,
        event: OutboxEvent,
        now: Optional[datetime] = None
    ) -> bool:
        """
        Append one event row inside the caller's transaction.

        The current trace context is stored with the row so the publisher
        can continue the trace. Returns False when a row with the same
        event_id already exists (the event was already enqueued).
        """
        traceparent, tracestate = trace_context_strings()

        row = await tx.fetchrow(
            """
            INSERT INTO outbox_events (
                event_id, aggregate_type, aggregate_id, event_type,
                payload, traceparent, tracestate, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            ON CONFLICT (event_id) DO NOTHING
            RETURNING id
            """,
            event.event_id,
            event.aggregate_type,
            event.aggregate_id,
            event.event_type,
            event.payload,
            traceparent,
            tracestate,
            now or datetime.now(timezone.utc)
        )

        if row is None:
            logger.info(
                "Outbox event already enqueued: event_id=%s type=%s",
                event.event_id, event.event_type
            )
            return False

        logger.debug(
            "Wrote event to outbox: id=%s event_id=%s type=%s aggregate=%s",
            row["id"], event.event_id, event.event_type, event.aggregate_id
        )
        return True

    async def fetch_unpublished(self, tx: Transaction, limit: int) -> List[OutboxRecord]:
        """
        Claim a batch of unpublished rows, oldest first.

        Rows locked by a concurrent publisher are skipped, so replicas
        split the backlog without coordinating.
        """
        rows = await tx.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM outbox_events
            WHERE published_at IS NULL
            ORDER BY id
            LIMIT $1
            FOR UPDATE SKIP LOCKED
            """,
            limit
        )
        return [OutboxRecord.model_validate(row) for row in rows]

    async def mark_published(self, tx: Transaction, ids: List[int], now: datetime) -> None:
        """Set published_at on claimed rows. Already published rows are left untouched."""
        if not ids:
            return
        await tx.executemany(
            """
            UPDATE outbox_events
            SET published_at = $1
            WHERE id = $2 AND published_at IS NULL
            """,
            [(now, record_id) for record_id in ids]
        )

    async def pending_count(self, tx: Transaction) -> int:
        """Number of rows not yet confirmed delivered."""
        count = await tx.fetchval(
            "SELECT COUNT(*) AS count FROM outbox_events WHERE published_at IS NULL"
        )
        return int(count or 0)

    async def get_by_event_id(self, tx: Transaction, event_id: str) -> Optional[OutboxRecord]:
        row = await tx.fetchrow(
            f"SELECT {_COLUMNS} FROM outbox_events WHERE event_id = $1",
            event_id
        )
        return OutboxRecord.model_validate(row) if row else None

    async def list_by_type(self, tx: Transaction, event_type: str, limit: int = 100) -> List[OutboxRecord]:
        """Events of one type, oldest first (audit trail queries)."""
        rows = await tx.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM outbox_events
            WHERE event_type = $1
            ORDER BY id
            LIMIT $2
            """,
            event_type,
            limit
        )
        return [OutboxRecord.model_validate(row) for row in rows]
