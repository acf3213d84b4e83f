"""
Booking Service

Creates and cancels appointments. The appointment row, its outbox events and the
idempotency outcome are written in one transaction, so a committed booking
always has its events and a retried request with the same Idempotency-Key
gets the original response instead of a second booking.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from ...core.database.adapter import DatabaseAdapter, Transaction
from ...core.idempotency import IdempotencyStore
from ...core.observability.metrics import record_counter
from ...core.outbox import OutboxEvent, OutboxRepository
from ..shared.error_codes import ErrorCode, get_status_code
from ..shared.exceptions import ConflictError, NotFoundError
from ..shared.responses import ErrorResponse
from .models import Appointment, AppointmentStatus, CancelAppointmentRequest, CreateAppointmentRequest
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

APPOINTMENT_AGGREGATE = "appointment"
BOOKED_EVENT_TYPE = "booking.appointment.booked.v1"
CANCELLED_EVENT_TYPE = "booking.appointment.cancelled.v1"
REMINDER_REQUESTED_EVENT_TYPE = "booking.reminder.requested.v1"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """RFC 3339 UTC with second precision, e.g. 2026-03-01T09:00:00Z."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _cancel_body(appointment_id: str, cancelled_at: datetime) -> bytes:
    return json.dumps({
        "appointment_id": appointment_id,
        "status": AppointmentStatus.CANCELLED.value,
        "cancelled_at": format_timestamp(cancelled_at),
    }, separators=(",", ":")).encode()


@dataclass
class BookingResult:
    """Response to send: status code and raw JSON body."""
    status_code: int
    body: bytes
    replayed: bool = False


class BookingService:
    """
    Booking create flow.

    Order inside the transaction:
    1. lock the idempotency key; replay a finalized outcome
    2. reject an invalid time range (finalized, a retry gets the same 422)
    3. reject a staff overlap (not finalized, the slot may free up)
    4. insert the appointment, its booked event and reminder requests
    5. finalize the key with 201
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        reminder_offsets: Optional[List[timedelta]] = None,
        appointments: Optional[AppointmentRepository] = None,
        outbox: Optional[OutboxRepository] = None,
        idempotency: Optional[IdempotencyStore] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.reminder_offsets = reminder_offsets if reminder_offsets is not None else [
            timedelta(hours=24), timedelta(hours=1)
        ]
        self._db = db
        self._appointments = appointments or AppointmentRepository()
        self._outbox = outbox or OutboxRepository()
        self._idempotency = idempotency or IdempotencyStore()
        self._clock = clock

    async def create_appointment(
        self,
        request: CreateAppointmentRequest,
        idempotency_key: str = ""
    ) -> BookingResult:
        idempotency_key = idempotency_key.strip()

        async with self._db.transaction() as tx:
            if idempotency_key:
                record, existed = await self._idempotency.lock_key(tx, request.business_id, idempotency_key)
                if existed and record.is_finalized:
                    record_counter("idempotency_replays_total")
                    logger.info(
                        f"Replaying idempotent response for {request.business_id}/{idempotency_key}",
                        extra={"status_code": record.status_code}
                    )
                    return BookingResult(record.status_code, record.response_body or b"", replayed=True)

            if request.end_time <= request.start_time:
                return await self._reject(
                    tx, request.business_id, idempotency_key,
                    ErrorCode.INVALID_TIME_RANGE, "end_time must be after start_time"
                )

            if await self._appointments.has_overlap(tx, request.staff_id, request.start_time, request.end_time):
                # Rolls back the reservation too; the key stays usable
                raise ConflictError("time slot already booked", code=ErrorCode.SLOT_UNAVAILABLE)

            now = self._clock()
            appointment = Appointment(
                id=str(uuid4()),
                business_id=request.business_id,
                staff_id=request.staff_id,
                service_id=request.service_id,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
                start_time=request.start_time,
                end_time=request.end_time,
                created_at=now,
            )
            await self._appointments.create(tx, appointment)
            await self._outbox.insert(tx, self._booked_event(appointment), now=now)
            await self._enqueue_reminders(tx, appointment, now)

            body = json.dumps({"id": appointment.id}, separators=(",", ":")).encode()
            if idempotency_key:
                await self._idempotency.finalize_key(
                    tx, request.business_id, idempotency_key, appointment.id, 201, body, now=now
                )

        return BookingResult(201, body)

    async def cancel_appointment(self, request: CancelAppointmentRequest) -> BookingResult:
        """
        Cancel a booked appointment and emit its cancelled event.

        Cancelling an already cancelled appointment returns the original
        cancellation again without a second event.
        """
        async with self._db.transaction() as tx:
            appointment = await self._appointments.get(
                tx, request.business_id, request.appointment_id, for_update=True
            )
            if appointment is None:
                raise NotFoundError("Appointment", request.appointment_id)

            if appointment.status == AppointmentStatus.CANCELLED.value and appointment.cancelled_at:
                return BookingResult(200, _cancel_body(appointment.id, appointment.cancelled_at), replayed=True)
            if not appointment.is_booked:
                raise ConflictError("appointment cannot be cancelled")

            now = self._clock()
            await self._appointments.cancel(tx, appointment.business_id, appointment.id, request.reason, now)
            await self._outbox.insert(tx, OutboxEvent.from_data(
                APPOINTMENT_AGGREGATE, appointment.id, CANCELLED_EVENT_TYPE, {
                    "appointment_id": appointment.id,
                    "business_id": appointment.business_id,
                    "staff_id": appointment.staff_id,
                    "service_id": appointment.service_id,
                    "start_time": format_timestamp(appointment.start_time),
                    "end_time": format_timestamp(appointment.end_time),
                    "cancelled_at": format_timestamp(now),
                    "reason": request.reason,
                }
            ), now=now)

        return BookingResult(200, _cancel_body(appointment.id, now))

    async def list_appointments(self, business_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        async with self._db.transaction() as tx:
            appointments = await self._appointments.list_for_business(tx, business_id, limit)

        items = []
        for appointment in appointments:
            item = {
                "appointment_id": appointment.id,
                "staff_id": appointment.staff_id,
                "service_id": appointment.service_id,
                "start_time": format_timestamp(appointment.start_time),
                "end_time": format_timestamp(appointment.end_time),
                "status": appointment.status,
                "created_at": format_timestamp(appointment.created_at) if appointment.created_at else "",
            }
            if appointment.cancelled_at:
                item["cancelled_at"] = format_timestamp(appointment.cancelled_at)
            items.append(item)
        return items

    async def _reject(
        self,
        tx: Transaction,
        business_id: str,
        idempotency_key: str,
        code: ErrorCode,
        message: str
    ) -> BookingResult:
        status_code = get_status_code(code)
        body = ErrorResponse.create(code.value, message).to_bytes()
        if idempotency_key:
            await self._idempotency.finalize_key(tx, business_id, idempotency_key, "", status_code, body)
        logger.info(f"Booking rejected for business {business_id}: {message}")
        return BookingResult(status_code, body)

    def _booked_event(self, appointment: Appointment) -> OutboxEvent:
        return OutboxEvent.from_data(APPOINTMENT_AGGREGATE, appointment.id, BOOKED_EVENT_TYPE, {
            "appointment_id": appointment.id,
            "business_id": appointment.business_id,
            "staff_id": appointment.staff_id,
            "service_id": appointment.service_id,
            "customer_email": appointment.customer_email,
            "customer_phone": appointment.customer_phone,
            "start_time": format_timestamp(appointment.start_time),
            "end_time": format_timestamp(appointment.end_time),
        })

    async def _enqueue_reminders(self, tx: Transaction, appointment: Appointment, now: datetime) -> int:
        """One reminder request per (offset, channel) with a recipient, skipping past times."""
        count = 0
        for offset in self.reminder_offsets:
            remind_at = appointment.start_time - offset
            if remind_at < now:
                continue
            for channel, recipient in (
                ("email", appointment.customer_email),
                ("sms", appointment.customer_phone),
            ):
                if not recipient:
                    continue
                await self._outbox.insert(tx, OutboxEvent.from_data(
                    APPOINTMENT_AGGREGATE, appointment.id, REMINDER_REQUESTED_EVENT_TYPE, {
                        "appointment_id": appointment.id,
                        "business_id": appointment.business_id,
                        "channel": channel,
                        "recipient": recipient,
                        "remind_at": format_timestamp(remind_at),
                        "template_data": {
                            "customer_name": appointment.customer_name,
                            "service_id": appointment.service_id,
                            "start_time": format_timestamp(appointment.start_time),
                        },
                    }
                ), now=now)
                count += 1
        return count
