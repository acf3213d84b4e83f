"""
Booking API: appointment creation and cancellation with idempotency keys and outbox events.
"""

from .models import Appointment, AppointmentStatus, CancelAppointmentRequest, CreateAppointmentRequest
from .repository import AppointmentRepository
from .service import BookingResult, BookingService

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "CancelAppointmentRequest",
    "CreateAppointmentRequest",
    "AppointmentRepository",
    "BookingResult",
    "BookingService",
]
