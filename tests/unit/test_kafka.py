"""
Tests for the aiokafka transport, run against fake clients.
"""

from types import SimpleNamespace

import pytest
from aiokafka import TopicPartition

from src.core.messaging import BusMessage
from src.core.messaging import kafka as kafka_module
from src.core.messaging.kafka import KafkaBus, KafkaSource


class FakeProducer:
    def __init__(self, **options):
        self.options = options
        self.sent = []
        self.started = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.started = False

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        self.sent.append((topic, value, key, headers))


class FakeConsumer:
    def __init__(self, *topics, **options):
        self.topics = topics
        self.options = options
        self.records = []
        self.commits = []
        self.seeks = []

    async def start(self):
        pass

    async def stop(self):
        pass

    async def getone(self):
        return self.records.pop(0)

    async def commit(self, offsets):
        self.commits.append(offsets)

    def seek(self, partition, offset):
        self.seeks.append((partition, offset))


@pytest.fixture
def fake_clients(monkeypatch):
    monkeypatch.setattr(kafka_module, "AIOKafkaProducer", FakeProducer)
    monkeypatch.setattr(kafka_module, "AIOKafkaConsumer", FakeConsumer)


def _delivered(offset: int = 7) -> BusMessage:
    return BusMessage(topic="booking.reminder.requested.v1", key=b"A1", value=b"{}", partition=2, offset=offset)


class TestKafkaBus:
    """Test the producer side."""

    @pytest.mark.asyncio
    async def test_send_before_start_fails(self):
        bus = KafkaBus(["localhost:9092"])

        with pytest.raises(RuntimeError):
            await bus.send(_delivered())

    @pytest.mark.asyncio
    async def test_send_passes_key_and_headers(self, fake_clients):
        bus = KafkaBus(["k1:9092", "k2:9092"], client_id="booking-service")
        await bus.start()
        producer = bus._producer

        await bus.send(BusMessage(
            topic="booking.appointment.booked.v1",
            key=b"A1",
            value=b'{"appointment_id":"A1"}',
            headers=(("event_id", b"evt-1"),),
        ))

        assert producer.options["bootstrap_servers"] == "k1:9092,k2:9092"
        assert producer.options["acks"] == "all"
        assert producer.options["enable_idempotence"] is True
        assert producer.sent == [(
            "booking.appointment.booked.v1",
            b'{"appointment_id":"A1"}',
            b"A1",
            [("event_id", b"evt-1")],
        )]

        await bus.stop()
        assert bus._producer is None


class TestKafkaSource:
    """Test the consumer side and its manual offset handling."""

    @pytest.mark.asyncio
    async def test_consumer_commits_manually(self, fake_clients):
        source = KafkaSource(["k1:9092"], "scheduler", ["booking.reminder.requested.v1"])
        await source.start()

        assert source._consumer.topics == ("booking.reminder.requested.v1",)
        assert source._consumer.options["group_id"] == "scheduler"
        assert source._consumer.options["enable_auto_commit"] is False

    @pytest.mark.asyncio
    async def test_read_maps_record(self, fake_clients):
        source = KafkaSource(["k1:9092"], "scheduler", ["booking.reminder.requested.v1"])
        await source.start()
        source._consumer.records.append(SimpleNamespace(
            topic="booking.reminder.requested.v1",
            key=None,
            value=b"{}",
            headers=[("event_id", b"evt-1"), ("traceparent", None)],
            partition=2,
            offset=7,
        ))

        message = await source.read()

        assert message.key == b""
        assert message.value == b"{}"
        assert message.headers == [("event_id", b"evt-1"), ("traceparent", b"")]
        assert (message.partition, message.offset) == (2, 7)

    @pytest.mark.asyncio
    async def test_ack_commits_next_offset(self, fake_clients):
        source = KafkaSource(["k1:9092"], "scheduler", ["booking.reminder.requested.v1"])
        await source.start()

        await source.ack(_delivered(offset=7))

        assert source._consumer.commits == [{TopicPartition("booking.reminder.requested.v1", 2): 8}]

    @pytest.mark.asyncio
    async def test_nack_seeks_back_to_message(self, fake_clients):
        source = KafkaSource(["k1:9092"], "scheduler", ["booking.reminder.requested.v1"])
        await source.start()

        await source.nack(_delivered(offset=7))

        assert source._consumer.seeks == [(TopicPartition("booking.reminder.requested.v1", 2), 7)]
        assert source._consumer.commits == []

    @pytest.mark.asyncio
    async def test_read_before_start_fails(self):
        source = KafkaSource(["k1:9092"], "scheduler", ["booking.reminder.requested.v1"])

        with pytest.raises(RuntimeError):
            await source.read()
