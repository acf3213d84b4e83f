#!/usr/bin/env python3
"""
Booking API
===========

FastAPI application for booking, cancelling and listing appointments.
Creates are guarded by the Idempotency-Key header; every write publishes
its events through the outbox.

Run:
    python -m src.api.booking.main
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Header, Query, Request, Response

from ...core.config import ServiceConfig, env_int, env_str
from ...core.database import DatabaseAdapter, create_schema
from ...core.messaging import KafkaBus, MessageBus
from ...core.observability import init_observability
from ...core.outbox import outbox_lifespan
from ..shared.middleware import register_error_handlers, TracingMiddleware
from ..shared.routers import health_router
from ..shared.exceptions import ValidationError
from .models import CancelAppointmentRequest, CreateAppointmentRequest
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["appointments"])


@router.post("/appointments", status_code=201)
async def create_appointment(
    body: CreateAppointmentRequest,
    request: Request,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key")
) -> Response:
    """
    Book an appointment.

    With an Idempotency-Key, a retried request gets the first finalized
    status code and body back byte for byte.
    """
    service: BookingService = request.app.state.booking
    result = await service.create_appointment(body, idempotency_key or "")
    return Response(content=result.body, status_code=result.status_code, media_type="application/json")


@router.post("/appointments/cancel")
async def cancel_appointment(body: CancelAppointmentRequest, request: Request) -> Response:
    """Cancel a booked appointment. Repeating the call returns the same cancellation."""
    service: BookingService = request.app.state.booking
    result = await service.cancel_appointment(body)
    return Response(content=result.body, status_code=result.status_code, media_type="application/json")


@router.get("/appointments")
async def list_appointments(
    request: Request,
    business_id: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    x_business_id: Optional[str] = Header(default=None, alias="X-Business-Id")
):
    """List a business's appointments, most recent first."""
    business_id = (x_business_id or business_id or "").strip()
    if not business_id:
        raise ValidationError("business_id required")

    service: BookingService = request.app.state.booking
    return await service.list_appointments(business_id, parse_limit(limit))


def parse_limit(raw: Optional[str], default: int = 50, maximum: int = 200) -> int:
    """Out-of-range or non-numeric limits fall back to the default."""
    try:
        value = int((raw or "").strip())
    except ValueError:
        return default
    return value if 0 < value <= maximum else default


def create_app(
    db: Optional[DatabaseAdapter] = None,
    bus: Optional[MessageBus] = None,
    config: Optional[ServiceConfig] = None
) -> FastAPI:
    """
    Build the application.

    Without an explicit bus, a Kafka producer is created when KAFKA_BROKERS
    is set; with neither, the outbox publisher is not started and events
    accumulate in the outbox until one is configured.
    """
    config = config or ServiceConfig.from_env("booking-service")
    db = db or DatabaseAdapter()
    kafka_bus: Optional[KafkaBus] = None
    if bus is None and config.kafka.enabled:
        kafka_bus = KafkaBus(config.kafka.brokers, client_id=config.service_name)
        bus = kafka_bus

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan - startup and shutdown."""
        init_observability(config)

        await db.connect()
        await create_schema(db)
        if kafka_bus is not None:
            await kafka_bus.start()

        try:
            async with outbox_lifespan(db, bus, config.publisher, config.shutdown_timeout) as publisher:
                app.state.publisher = publisher
                yield
        finally:
            app.state.publisher = None
            if kafka_bus is not None:
                await kafka_bus.stop()
            await db.disconnect()

    app = FastAPI(
        title="AppRemind Booking API",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.db = db
    app.state.publisher = None
    app.state.booking = BookingService(db, reminder_offsets=config.reminder_offsets)

    register_error_handlers(app)
    app.add_middleware(TracingMiddleware)

    app.include_router(health_router)
    app.include_router(router)

    return app


def main():
    import uvicorn
    uvicorn.run(
        "src.api.booking.main:create_app",
        factory=True,
        host=env_str("API_HOST", "0.0.0.0"),
        port=env_int("API_PORT", 8081)
    )


if __name__ == "__main__":
    main()
