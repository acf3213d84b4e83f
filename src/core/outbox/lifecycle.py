"""
Outbox Lifecycle Management

Integrates the outbox publisher with the FastAPI application lifecycle.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from ..config import PublisherConfig, env_bool
from ..database.adapter import DatabaseAdapter
from ..messaging.models import MessageBus
from .publisher import OutboxPublisher

logger = logging.getLogger(__name__)


def is_outbox_publisher_enabled() -> bool:
    """
    Check if this instance should run the outbox publisher.

    Replicas can all publish (rows are claimed with skip-locked), but an
    instance may opt out, e.g. a read-only API pod.
    """
    return env_bool("OUTBOX_PUBLISHER_ENABLED", True)


@asynccontextmanager
async def outbox_lifespan(
    db: DatabaseAdapter,
    bus: Optional[MessageBus],
    config: Optional[PublisherConfig] = None,
    shutdown_timeout: float = 10.0
):
    """
    Lifespan context manager for the outbox publisher.

    Usage in FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with outbox_lifespan(db, bus):
                yield

        app = FastAPI(lifespan=lifespan)
    """
    if bus is None or not is_outbox_publisher_enabled():
        reason = "no bus configured" if bus is None else "OUTBOX_PUBLISHER_ENABLED=false"
        logger.warning(f"Outbox publisher disabled: {reason}")
        yield None
        return

    publisher = OutboxPublisher(
        db,
        bus,
        config=config or PublisherConfig.from_env(),
        shutdown_timeout=shutdown_timeout
    )
    logger.info("Starting outbox publisher...")
    await publisher.start()
    try:
        yield publisher
    finally:
        logger.info("Stopping outbox publisher...")
        await publisher.stop()
