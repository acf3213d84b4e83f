"""
Event Consumer

Reads from the bus, consults the inbox and invokes a handler at most once
per event id, turning at-least-once delivery into effectively-once effects.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from opentelemetry import trace

from ..database.adapter import DatabaseAdapter, Transaction
from ..messaging.models import BusMessage, MessageSource, extract_event_meta
from ..observability.metrics import record_counter
from ..observability.tracing import create_span, extract_trace_headers
from .guard import InboxGuard, InboxRepository

logger = logging.getLogger(__name__)

# Handlers receive the transaction that also records the inbox entry.
# Permanent payload errors should be logged and swallowed by the handler;
# raising means "retry this message".
Handler = Callable[[Transaction, BusMessage], Awaitable[None]]


class EventConsumer:
    """
    Consumes one source with one handler.

    Per message:
    - duplicate event id: handler skipped, message acked
    - handler success: inbox entry and handler effects commit together, acked
    - handler or store error: transaction rolled back, message nacked so
      the bus redelivers it
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        source: MessageSource,
        handler: Handler,
        inbox: Optional[InboxRepository] = None,
        name: str = "event-consumer",
        error_backoff: float = 1.0
    ):
        self.name = name
        self.error_backoff = error_backoff
        self._db = db
        self._source = source
        self._handler = handler
        self._inbox = inbox or InboxRepository()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name=self.name)
        logger.info(f"{self.name} started")

    async def stop(self):
        # A blocked read cannot observe the stop event, so cancel; an
        # in-flight message transaction rolls back and is redelivered.
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"{self.name} had failed: {e}", exc_info=True)
            self._task = None
        logger.info(f"{self.name} stopped")

    async def run(self):
        """Main consume loop."""
        while not self._stop_event.is_set():
            try:
                message = await self._source.read()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} read error: {e}", exc_info=True)
                await asyncio.sleep(self.error_backoff)
                continue

            try:
                handled = await self.handle_message(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Unacked: the bus redelivers it and the inbox drops the repeat
                logger.error(f"{self.name} failed on message: {e}", exc_info=True)
                handled = False

            if not handled:
                await asyncio.sleep(self.error_backoff)

    async def handle_message(self, message: BusMessage) -> bool:
        """
        Process one message. Returns False when it was handed back for redelivery.
        """
        meta = extract_event_meta(message)
        parent = extract_trace_headers(message.headers)

        with create_span(
            f"{message.topic} process",
            {
                "messaging.system": "kafka",
                "messaging.destination": message.topic,
                "messaging.message_id": meta.event_id,
            },
            kind=trace.SpanKind.CONSUMER,
            context=parent
        ) as span:
            try:
                async with self._db.transaction() as tx:
                    if not meta.event_id:
                        await self._handle_without_id(tx, message, meta.event_type)
                    else:
                        async with InboxGuard(tx, meta.event_id, meta.event_type, self._inbox) as guard:
                            if guard.should_process:
                                await self._handler(tx, message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                record_counter("consumer_handler_failures_total", attributes={"event_type": meta.event_type})
                span.record_exception(e)
                logger.error(
                    f"Handler error for event {meta.event_id}: {e}",
                    extra={"event_id": meta.event_id, "event_type": meta.event_type},
                    exc_info=True
                )
                await self._source.nack(message)
                return False

        try:
            await self._source.ack(message)
        except Exception as e:
            record_counter("consumer_ack_failures_total", attributes={"event_type": meta.event_type})
            logger.error(
                f"Ack failed for event {meta.event_id}, redelivery will be deduplicated: {e}",
                extra={"event_id": meta.event_id, "event_type": meta.event_type},
                exc_info=True
            )
            return False
        return True

    async def _handle_without_id(self, tx: Transaction, message: BusMessage, event_type: str) -> None:
        # No header and no key: an empty id would collide in the inbox
        # with every other such message, so it is handled undeduplicated.
        record_counter("consumer_missing_event_id_total", attributes={"event_type": event_type})
        logger.warning(
            f"Message on {message.topic} has no event id, handling without dedup",
            extra={"event_type": event_type, "offset": message.offset}
        )
        await self._handler(tx, message)
