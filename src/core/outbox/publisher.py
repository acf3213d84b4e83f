"""
Outbox Publisher

Background worker that claims unpublished outbox rows, forwards them to
the bus and marks them published.

Delivery is at-least-once: a batch is marked published only after every
send in it succeeded. Any failure rolls the whole batch back, so rows
already sent in that batch are sent again on the next tick and receivers
must tolerate duplicates. There is no terminal failure state for outbox
rows; transport errors are retried at tick granularity indefinitely.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from opentelemetry import trace

from ..config import PublisherConfig
from ..database.adapter import DatabaseAdapter
from ..messaging.models import EVENT_ID_HEADER, EVENT_TYPE_HEADER, BusMessage, MessageBus
from ..observability.metrics import record_counter, record_histogram
from ..observability.tracing import create_span, inject_trace_headers, use_trace_strings
from ..polling import PollingLoop
from .models import OutboxRecord
from .repository import OutboxRepository

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_message(record: OutboxRecord) -> BusMessage:
    """
    Build the outbound message for a row.

    Keyed by aggregate_id so one aggregate's events share a partition.
    Trace headers come from the current context; callers make the row's
    stored context current first.
    """
    headers = [
        (EVENT_ID_HEADER, record.event_id.encode()),
        (EVENT_TYPE_HEADER, record.event_type.encode()),
    ]
    return BusMessage(
        topic=record.event_type,
        key=record.aggregate_id.encode(),
        value=record.payload,
        headers=inject_trace_headers(headers),
    )


class OutboxPublisher(PollingLoop):
    """
    Publishes outbox rows to the bus.

    Features:
    - Polls the outbox on a fixed interval
    - Claims rows with skip-locked semantics (safe with N replicas)
    - All-or-nothing batches: rollback on any send failure
    - Restores each row's trace context for the send
    """

    name = "outbox-publisher"

    def __init__(
        self,
        db: DatabaseAdapter,
        bus: MessageBus,
        repository: Optional[OutboxRepository] = None,
        config: Optional[PublisherConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        shutdown_timeout: float = 10.0
    ):
        config = config or PublisherConfig()
        super().__init__(config.poll_interval, shutdown_timeout)
        self.batch_size = config.batch_size
        self.send_timeout = config.send_timeout
        self._db = db
        self._bus = bus
        self._repo = repository or OutboxRepository()
        self._clock = clock

    async def tick(self) -> int:
        return await self.publish_batch()

    async def publish_batch(self) -> int:
        """
        Publish one batch.

        Returns the number of rows published. Raises if the store or the
        bus failed; nothing in the batch is marked published in that case.
        """
        started = time.monotonic()
        records: List[OutboxRecord] = []

        try:
            async with self._db.transaction() as tx:
                records = await self._repo.fetch_unpublished(tx, self.batch_size)
                if not records:
                    return 0

                for record in records:
                    await self._send(record)

                await self._repo.mark_published(tx, [r.id for r in records], self._clock())
        except Exception as e:
            record_counter("outbox_publish_failures_total")
            logger.warning(
                f"Outbox batch rolled back ({len(records)} rows), retrying next tick: {e}"
            )
            raise

        record_counter("outbox_published_total", len(records))
        record_histogram("outbox_batch_duration_seconds", time.monotonic() - started)
        logger.debug(f"Published {len(records)} outbox events")

        return len(records)

    async def _send(self, record: OutboxRecord) -> None:
        with use_trace_strings(record.traceparent, record.tracestate):
            message = build_message(record)
            with create_span(
                f"{record.event_type} publish",
                {
                    "messaging.system": "kafka",
                    "messaging.destination": record.event_type,
                    "messaging.message_id": record.event_id,
                },
                kind=trace.SpanKind.PRODUCER
            ):
                await asyncio.wait_for(self._bus.send(message), timeout=self.send_timeout)
