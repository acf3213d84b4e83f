"""
Tests for the inbox ledger and the deduplicating consumer.
"""

import asyncio

import pytest

from src.core.inbox import EventConsumer, InboxGuard, InboxRepository
from src.core.messaging import BusMessage, InMemorySource, extract_event_meta
from src.core.outbox import OutboxEvent, OutboxRepository


def _message(event_id: str = "evt-1", topic: str = "booking.reminder.requested.v1") -> BusMessage:
    return BusMessage(
        topic=topic,
        key=b"A1",
        value=b'{"appointment_id":"A1"}',
        headers=[("event_id", event_id.encode()), ("event_type", topic.encode())],
    )


class RecordingHandler:
    """Handler that writes an outbox row per call so its effects are transactional."""

    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.calls = 0

    async def __call__(self, tx, message):
        self.calls += 1
        await OutboxRepository().insert(tx, OutboxEvent.from_data(
            "test", message.key.decode(), "handled.v1", {"n": self.calls}
        ))
        if self.calls <= self.fail_times:
            raise RuntimeError("downstream unavailable")


class FlakyAckSource(InMemorySource):
    """Source whose first commit fails, as during a consumer group rebalance."""

    def __init__(self, topics, failures: int = 1):
        super().__init__(topics)
        self.failures = failures

    async def ack(self, message):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("commit failed: rebalance in progress")
        await super().ack(message)


async def _handled_rows(db) -> int:
    async with db.transaction() as tx:
        return len(await OutboxRepository().list_by_type(tx, "handled.v1"))


async def _is_processed(db, event_id: str) -> bool:
    async with db.transaction() as tx:
        return await InboxRepository().is_processed(tx, event_id)


class TestEventMeta:
    """Test metadata extraction."""

    def test_headers_win(self):
        meta = extract_event_meta(_message("evt-9"))
        assert meta.event_id == "evt-9"
        assert meta.event_type == "booking.reminder.requested.v1"

    def test_fallback_to_key_and_topic(self):
        meta = extract_event_meta(BusMessage(topic="legacy.topic", key=b"k-1", value=b"{}"))
        assert meta.event_id == "k-1"
        assert meta.event_type == "legacy.topic"


class TestInboxRepository:
    """Test the dedup ledger."""

    @pytest.mark.asyncio
    async def test_first_record_then_duplicate(self, db):
        repo = InboxRepository()
        async with db.transaction() as tx:
            assert await repo.record(tx, "evt-1", "t.v1") is True
        async with db.transaction() as tx:
            assert await repo.record(tx, "evt-1", "t.v1") is False

    @pytest.mark.asyncio
    async def test_conflict_leaves_transaction_usable(self, db):
        repo = InboxRepository()
        async with db.transaction() as tx:
            await repo.record(tx, "evt-1", "t.v1")
            assert await repo.record(tx, "evt-1", "t.v1") is False
            # Work after the conflict still commits
            assert await repo.record(tx, "evt-2", "t.v1") is True

        assert await _is_processed(db, "evt-1")
        assert await _is_processed(db, "evt-2")


class TestInboxGuard:
    """Test InboxGuard."""

    @pytest.mark.asyncio
    async def test_entry_rolls_back_with_handler(self, db):
        with pytest.raises(RuntimeError):
            async with db.transaction() as tx:
                async with InboxGuard(tx, "evt-1", "t.v1") as guard:
                    assert guard.should_process
                    raise RuntimeError("handler failed")

        assert not await _is_processed(db, "evt-1")


class TestEventConsumer:
    """Test per-message consumer behavior."""

    @pytest.mark.asyncio
    async def test_duplicate_delivery_runs_handler_once(self, db, bus):
        source = bus.subscribe("booking.reminder.requested.v1")
        handler = RecordingHandler()
        consumer = EventConsumer(db, source, handler)

        for _ in range(3):
            assert await consumer.handle_message(_message("evt-1")) is True

        assert handler.calls == 1
        assert await _handled_rows(db) == 1
        assert len(source.acked) == 3

    @pytest.mark.asyncio
    async def test_handler_failure_is_redelivered(self, db, bus):
        source = bus.subscribe("booking.reminder.requested.v1")
        handler = RecordingHandler(fail_times=1)
        consumer = EventConsumer(db, source, handler)

        assert await consumer.handle_message(_message("evt-1")) is False

        # Rolled back: no inbox entry, no handler effects, message handed back
        assert not await _is_processed(db, "evt-1")
        assert await _handled_rows(db) == 0
        assert source.pending() == 1
        assert source.acked == []

        redelivered = await source.read()
        assert await consumer.handle_message(redelivered) is True

        assert handler.calls == 2
        assert await _is_processed(db, "evt-1")
        assert await _handled_rows(db) == 1

    @pytest.mark.asyncio
    async def test_messages_without_headers_dedup_on_key(self, db, bus):
        source = bus.subscribe("legacy.topic")
        handler = RecordingHandler()
        consumer = EventConsumer(db, source, handler)
        message = BusMessage(topic="legacy.topic", key=b"k-1", value=b"{}")

        await consumer.handle_message(message)
        await consumer.handle_message(message)

        assert handler.calls == 1
        assert await _is_processed(db, "k-1")

    @pytest.mark.asyncio
    async def test_run_loop_consumes_from_bus(self, db, bus):
        source = bus.subscribe("booking.reminder.requested.v1")
        handler = RecordingHandler()
        consumer = EventConsumer(db, source, handler, error_backoff=0.01)

        await consumer.start()
        try:
            await bus.send(_message("evt-1"))
            await bus.send(_message("evt-1"))
            await bus.send(_message("evt-2"))
            for _ in range(200):
                if len(source.acked) == 3:
                    break
                await asyncio.sleep(0.01)
        finally:
            await consumer.stop()

        assert len(source.acked) == 3
        assert handler.calls == 2
        assert not consumer.running

    @pytest.mark.asyncio
    async def test_ack_failure_keeps_loop_running(self, db, bus):
        source = bus.attach(FlakyAckSource(["booking.reminder.requested.v1"]))
        handler = RecordingHandler()
        consumer = EventConsumer(db, source, handler, error_backoff=0.01)

        await consumer.start()
        try:
            await bus.send(_message("evt-1"))
            await bus.send(_message("evt-2"))
            for _ in range(200):
                if len(source.acked) == 1:
                    break
                await asyncio.sleep(0.01)

            assert consumer.running
            assert [m.offset for m in source.acked] == [1]

            # The uncommitted message comes back and is dropped by the inbox
            await bus.send(_message("evt-1"))
            for _ in range(200):
                if len(source.acked) == 2:
                    break
                await asyncio.sleep(0.01)
        finally:
            await consumer.stop()

        assert len(source.acked) == 2
        assert handler.calls == 2
        assert await _handled_rows(db) == 2
        assert not consumer.running

    @pytest.mark.asyncio
    async def test_ack_failure_reports_unhandled(self, db, bus):
        source = bus.attach(FlakyAckSource(["booking.reminder.requested.v1"]))
        consumer = EventConsumer(db, source, RecordingHandler())

        assert await consumer.handle_message(_message("evt-1")) is False
        # Handler effects committed before the ack was attempted
        assert await _is_processed(db, "evt-1")

    @pytest.mark.asyncio
    async def test_empty_event_id_is_not_deduplicated(self, db, bus):
        source = bus.subscribe("legacy.topic")
        handler = RecordingHandler()
        consumer = EventConsumer(db, source, handler)
        first = BusMessage(topic="legacy.topic", key=b"", value=b'{"n":1}')
        second = BusMessage(topic="legacy.topic", key=b"", value=b'{"n":2}')

        assert await consumer.handle_message(first) is True
        assert await consumer.handle_message(second) is True

        assert handler.calls == 2
        assert await _handled_rows(db) == 2
        assert not await _is_processed(db, "")
        assert len(source.acked) == 2
