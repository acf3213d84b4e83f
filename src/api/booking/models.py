"""
Booking API Models
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AppointmentStatus(str, Enum):
    BOOKED = "booked"
    CANCELLED = "cancelled"


class CreateAppointmentRequest(BaseModel):
    business_id: str = Field(..., min_length=1)
    staff_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    customer_email: str = ""
    customer_phone: str = ""
    start_time: datetime
    end_time: datetime

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("start_time", "end_time")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class Appointment(BaseModel):
    """A row in the appointments table."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    business_id: str
    staff_id: str
    service_id: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    start_time: datetime
    end_time: datetime
    status: str = "booked"
    cancelled_at: Optional[datetime] = None
    cancellation_reason: str = ""
    created_at: Optional[datetime] = None

    @property
    def is_booked(self) -> bool:
        return self.status == AppointmentStatus.BOOKED.value


class CancelAppointmentRequest(BaseModel):
    business_id: str = Field(..., min_length=1)
    appointment_id: str = Field(..., min_length=1)
    reason: str = ""

    model_config = ConfigDict(str_strip_whitespace=True)
