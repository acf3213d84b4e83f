"""
Kafka transport (aiokafka).

KafkaBus sends with a hash-partitioned producer, so messages keyed by the
same aggregate_id land on one partition. KafkaSource reads with manual
offset commits: ack() commits past the message, nack() seeks back to it so
the next read redelivers it.
"""

import logging
from typing import List, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition

from .models import BusMessage

logger = logging.getLogger(__name__)


class KafkaBus:
    """Outbound bus backed by an AIOKafkaProducer."""

    def __init__(self, brokers: List[str], client_id: str = "appremind"):
        self.brokers = brokers
        self.client_id = client_id
        self._producer: Optional[AIOKafkaProducer] = None

    async def start(self) -> None:
        if self._producer is not None:
            return
        self._producer = AIOKafkaProducer(
            bootstrap_servers=",".join(self.brokers),
            client_id=self.client_id,
            acks="all",
            enable_idempotence=True,
        )
        await self._producer.start()
        logger.info(f"Kafka producer started: {self.brokers}")

    async def stop(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            logger.info("Kafka producer stopped")

    async def send(self, message: BusMessage) -> None:
        if self._producer is None:
            raise RuntimeError("Kafka producer is not started")
        await self._producer.send_and_wait(
            message.topic,
            value=message.value,
            key=message.key,
            headers=list(message.headers),
        )


class KafkaSource:
    """Inbound source backed by an AIOKafkaConsumer in a consumer group."""

    def __init__(self, brokers: List[str], group_id: str, topics: List[str]):
        self.brokers = brokers
        self.group_id = group_id
        self.topics = topics
        self._consumer: Optional[AIOKafkaConsumer] = None

    async def start(self) -> None:
        if self._consumer is not None:
            return
        self._consumer = AIOKafkaConsumer(
            *self.topics,
            bootstrap_servers=",".join(self.brokers),
            group_id=self.group_id,
            enable_auto_commit=False,
            auto_offset_reset="earliest",
        )
        await self._consumer.start()
        logger.info(f"Kafka consumer started: group={self.group_id} topics={self.topics}")

    async def stop(self) -> None:
        if self._consumer is not None:
            await self._consumer.stop()
            self._consumer = None
            logger.info("Kafka consumer stopped")

    async def read(self) -> BusMessage:
        if self._consumer is None:
            raise RuntimeError("Kafka consumer is not started")
        record = await self._consumer.getone()
        return BusMessage(
            topic=record.topic,
            key=record.key or b"",
            value=record.value or b"",
            headers=[(key, value or b"") for key, value in (record.headers or ())],
            partition=record.partition,
            offset=record.offset,
        )

    async def ack(self, message: BusMessage) -> None:
        tp = TopicPartition(message.topic, message.partition)
        await self._consumer.commit({tp: message.offset + 1})

    async def nack(self, message: BusMessage) -> None:
        tp = TopicPartition(message.topic, message.partition)
        self._consumer.seek(tp, message.offset)
