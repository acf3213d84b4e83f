#!/usr/bin/env python3
"""
Scheduler Service Runner

Runs the scheduler's background loops with graceful shutdown:
- event consumer: booking.reminder.requested.v1 -> scheduled jobs
- job worker: due jobs -> scheduler.reminder.due.v1 / .dlq.v1 outbox events
- outbox publisher: outbox rows -> bus

Usage:
    python -m src.workers.scheduler_runner

Environment Variables:
    DATABASE_BACKEND / DATABASE_URL / SQLITE_PATH: store
    KAFKA_BROKERS: comma separated brokers; without them only the job
        worker runs and events stay in the outbox
    KAFKA_GROUP_ID, KAFKA_CONSUME_TOPIC: consumer settings
    SCHEDULER_POLL_INTERVAL, SCHEDULER_BATCH_SIZE,
    SCHEDULER_BACKOFF_SECONDS, SCHEDULER_MAX_ATTEMPTS: job worker settings
    OUTBOX_POLL_INTERVAL, OUTBOX_BATCH_SIZE, OUTBOX_SEND_TIMEOUT: publisher settings
    SHUTDOWN_TIMEOUT: seconds to let in-flight batches finish (default: 10)
"""

import sys
import signal
import asyncio
import logging
from typing import Optional

from ..core.config import ServiceConfig
from ..core.database import DatabaseAdapter, create_schema
from ..core.inbox import EventConsumer
from ..core.jobs import FixedBackoff, JobWorker
from ..core.messaging import KafkaBus, KafkaSource, MessageBus, MessageSource
from ..core.observability import init_observability
from ..core.outbox import OutboxPublisher
from .reminders import ReminderRequestHandler

logger = logging.getLogger(__name__)


class SchedulerRunner:
    """
    Manages the scheduler loops' lifecycle with graceful shutdown.

    A bus and source can be injected (local runs, tests); otherwise Kafka
    clients are built from the configuration.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        db: Optional[DatabaseAdapter] = None,
        bus: Optional[MessageBus] = None,
        source: Optional[MessageSource] = None
    ):
        self.config = config or ServiceConfig.from_env("scheduler-service")
        self.db = db or DatabaseAdapter()
        self.bus = bus
        self.source = source
        self.publisher: Optional[OutboxPublisher] = None
        self.worker: Optional[JobWorker] = None
        self.consumer: Optional[EventConsumer] = None
        self._owned_clients = []
        self._shutdown_event = asyncio.Event()
        self._shutdown_requested = False

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_shutdown_signal, sig)

    def _handle_shutdown_signal(self, sig: signal.Signals):
        """Handle shutdown signal."""
        if self._shutdown_requested:
            logger.warning(f"Received {sig.name} again, forcing exit")
            sys.exit(1)

        logger.info(f"Received {sig.name}, initiating graceful shutdown")
        self.request_shutdown()

    def request_shutdown(self):
        self._shutdown_requested = True
        self._shutdown_event.set()

    async def _open_clients(self):
        kafka = self.config.kafka
        if not kafka.enabled:
            return
        if self.bus is None:
            bus = KafkaBus(kafka.brokers, client_id=self.config.service_name)
            await bus.start()
            self._owned_clients.append(bus)
            self.bus = bus
        if self.source is None:
            source = KafkaSource(kafka.brokers, kafka.group_id, [kafka.consume_topic])
            await source.start()
            self._owned_clients.append(source)
            self.source = source

    async def start(self):
        """Connect and start every loop that has what it needs."""
        config = self.config

        await self.db.connect()
        await create_schema(self.db)
        await self._open_clients()

        self.worker = JobWorker(
            self.db,
            backoff=FixedBackoff(config.worker.backoff_seconds),
            config=config.worker,
            shutdown_timeout=config.shutdown_timeout
        )
        await self.worker.start()

        if self.bus is not None:
            self.publisher = OutboxPublisher(
                self.db,
                self.bus,
                config=config.publisher,
                shutdown_timeout=config.shutdown_timeout
            )
            await self.publisher.start()
        else:
            logger.warning("No bus configured: outbox publisher not started, events stay in the outbox")

        if self.source is not None:
            self.consumer = EventConsumer(
                self.db,
                self.source,
                ReminderRequestHandler(max_attempts=config.worker.max_attempts),
                name="reminder-consumer"
            )
            await self.consumer.start()
        else:
            logger.warning("No source configured: reminder consumer not started")

    async def stop(self):
        """Stop consumers first so no new work arrives, then drain the loops."""
        components = [self.consumer, self.worker, self.publisher, *reversed(self._owned_clients)]
        for component in components:
            if component is None:
                continue
            try:
                await component.stop()
            except Exception as e:
                # Keep going: the remaining loops and the pool still need closing
                logger.error(f"Error stopping {type(component).__name__}: {e}", exc_info=True)
        self._owned_clients = []
        await self.db.disconnect()

    async def run(self):
        """Run until shutdown is requested."""
        logger.info("Starting Scheduler Runner")
        logger.info(f"  Poll interval: {self.config.worker.poll_interval}s")
        logger.info(f"  Batch size: {self.config.worker.batch_size}")
        logger.info(f"  Backoff: {self.config.worker.backoff_seconds}s")
        logger.info(f"  Max attempts: {self.config.worker.max_attempts}")

        self._setup_signal_handlers()

        try:
            await self.start()
            logger.info("Scheduler is running")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Scheduler error: {e}", exc_info=True)
            raise
        finally:
            logger.info("Stopping Scheduler")
            await self.stop()
            logger.info("Scheduler stopped")

    async def health_check(self) -> dict:
        """Return health status for monitoring."""
        loops = {
            "job_worker": bool(self.worker and self.worker.running),
            "outbox_publisher": bool(self.publisher and self.publisher.running),
            "reminder_consumer": bool(self.consumer and self.consumer.running),
        }
        return {
            "status": "healthy" if loops["job_worker"] else "unhealthy",
            "loops": loops,
            "database": await self.db.ping(),
            "shutdown_requested": self._shutdown_requested
        }


async def main():
    """Main entry point."""
    config = ServiceConfig.from_env("scheduler-service")
    init_observability(config)

    runner = SchedulerRunner(config)
    await runner.run()


if __name__ == "__main__":
    asyncio.run(main())
