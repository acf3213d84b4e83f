"""
Tests for reminder request handling and the scheduler service wiring.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from src.core.config import KafkaConfig, PublisherConfig, ServiceConfig, WorkerConfig
from src.core.inbox import EventConsumer
from src.core.jobs import DUE_EVENT_TYPE, JobRepository, JobStatus
from src.core.messaging import BusMessage
from src.workers.reminders import (
    InvalidReminderRequest,
    ReminderRequestHandler,
    parse_reminder_request,
    parse_timestamp,
    reminder_job_key,
)
from src.workers.scheduler_runner import SchedulerRunner

TOPIC = "booking.reminder.requested.v1"


def _payload(**overrides) -> dict:
    payload = {
        "appointment_id": "A1",
        "business_id": "biz-1",
        "channel": "email",
        "recipient": "ada@example.com",
        "remind_at": "2026-03-01T09:00:00Z",
        "template_data": {"customer_name": "Ada", "service_id": "svc-1"},
    }
    payload.update(overrides)
    return payload


def _message(payload, event_id: str = "evt-1") -> BusMessage:
    value = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return BusMessage(
        topic=TOPIC,
        key=b"A1",
        value=value,
        headers=[("event_id", event_id.encode()), ("event_type", TOPIC.encode())],
    )


class TestParseReminderRequest:
    """Test payload validation."""

    def test_valid_request(self):
        job = parse_reminder_request(json.dumps(_payload()).encode(), max_attempts=3)

        assert job.idempotency_key == "A1|2026-03-01T09:00:00Z|email"
        assert job.aggregate_id == "A1"
        assert job.next_run_at == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        assert job.max_attempts == 3
        assert job.payload["template_data"]["customer_name"] == "Ada"

    def test_job_key_format(self):
        assert reminder_job_key("A1", "2026-03-01T09:00:00Z", "sms") == "A1|2026-03-01T09:00:00Z|sms"

    @pytest.mark.parametrize("value", [
        b"not json",
        b"[1, 2]",
        json.dumps(_payload(recipient="")).encode(),
        json.dumps(_payload(remind_at="tomorrow")).encode(),
        json.dumps(_payload(remind_at="2026-03-01T09:00:00")).encode(),
        json.dumps(_payload(template_data="x")).encode(),
    ])
    def test_malformed_requests(self, value):
        with pytest.raises(InvalidReminderRequest):
            parse_reminder_request(value)


class TestParseTimestamp:
    """Test RFC 3339 parsing on every supported interpreter."""

    def test_fraction_with_zulu(self):
        parsed = parse_timestamp("2026-03-01T09:00:00.5Z")

        assert parsed == datetime(2026, 3, 1, 9, 0, 0, 500000, tzinfo=timezone.utc)

    def test_nanosecond_fraction_truncated(self):
        parsed = parse_timestamp("2026-03-01T09:00:00.123456789Z")

        assert parsed.microsecond == 123456

    def test_lowercase_zulu_and_numeric_offset(self):
        assert parse_timestamp("2026-03-01T09:00:00z") == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        parsed = parse_timestamp("2026-03-01T11:00:00+02:00")
        assert parsed == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_rejects_missing_offset_and_non_strings(self):
        with pytest.raises(ValueError):
            parse_timestamp("2026-03-01T09:00:00.25")
        with pytest.raises(TypeError):
            parse_timestamp(1772355600)

    def test_fractional_request_is_accepted(self):
        job = parse_reminder_request(json.dumps(_payload(remind_at="2026-03-01T09:00:00.5Z")).encode())

        assert job.next_run_at.microsecond == 500000
        assert job.idempotency_key == "A1|2026-03-01T09:00:00.5Z|email"


class TestReminderRequestHandler:
    """Test the consumer handler."""

    @pytest.mark.asyncio
    async def test_schedules_one_job_per_key(self, db):
        handler = ReminderRequestHandler(max_attempts=4)

        async with db.transaction() as tx:
            await handler(tx, _message(_payload()))
            # Same reminder re-published under a new event id
            await handler(tx, _message(_payload(), event_id="evt-2"))

        async with db.transaction() as tx:
            job = await JobRepository().get_by_key(tx, "A1|2026-03-01T09:00:00Z|email")
            stats = await JobRepository().stats(tx)

        assert job.max_attempts == 4
        assert job.status == JobStatus.PENDING
        assert stats["pending"] == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_is_swallowed(self, db):
        handler = ReminderRequestHandler()

        async with db.transaction() as tx:
            await handler(tx, _message(b"{broken"))

        async with db.transaction() as tx:
            assert (await JobRepository().stats(tx))["pending"] == 0


class TestSchedulerRunner:
    """Test the scheduler pipeline end to end on the in-memory bus."""

    @pytest.mark.asyncio
    async def test_reminder_request_becomes_due_event(self, db, bus):
        remind_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        config = ServiceConfig(
            publisher=PublisherConfig(poll_interval=0.01),
            worker=WorkerConfig(poll_interval=0.01),
            kafka=KafkaConfig(),
        )
        source = bus.subscribe(TOPIC)
        runner = SchedulerRunner(config, db=db, bus=bus, source=source)

        await runner.start()
        try:
            await bus.send(_message(_payload(remind_at=remind_at.strftime("%Y-%m-%dT%H:%M:%SZ"))))
            for _ in range(300):
                if bus.messages(DUE_EVENT_TYPE):
                    break
                await asyncio.sleep(0.01)
            health = await runner.health_check()
        finally:
            await runner.stop()

        due = bus.messages(DUE_EVENT_TYPE)
        assert len(due) == 1
        assert due[0].key == b"A1"
        assert json.loads(due[0].value)["recipient"] == "ada@example.com"
        assert health["loops"] == {
            "job_worker": True,
            "outbox_publisher": True,
            "reminder_consumer": True,
        }


    @pytest.mark.asyncio
    async def test_stop_continues_past_failing_component(self, db, bus, monkeypatch):
        config = ServiceConfig(
            publisher=PublisherConfig(poll_interval=0.01),
            worker=WorkerConfig(poll_interval=0.01),
            kafka=KafkaConfig(),
        )
        runner = SchedulerRunner(config, db=db, bus=bus, source=bus.subscribe(TOPIC))
        await runner.start()

        async def broken_stop():
            raise RuntimeError("consumer stop failed")

        monkeypatch.setattr(runner.consumer, "stop", broken_stop)

        await runner.stop()

        assert not runner.worker.running
        assert not runner.publisher.running
        assert await db.ping() is False

        await EventConsumer.stop(runner.consumer)
