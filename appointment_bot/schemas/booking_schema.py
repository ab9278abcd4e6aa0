"""Booking data models: candidate bookings, appointments and events."""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionSource(str, Enum):
    SUMMARY = "summary"
    MODEL = "model"


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    AWAITING_PAYMENT = "awaiting_payment"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


REQUIRED_BOOKING_FIELDS = (
    "professional_id",
    "service_id",
    "appointment_date",
    "appointment_time",
    "client_name",
)


class CandidateBooking(BaseModel):
    """Extracted booking fields pending validation. Never persisted."""
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    professional_id: Optional[int] = None
    professional_name: Optional[str] = None
    service_id: Optional[int] = None
    service_name: Optional[str] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    source: ExtractionSource = ExtractionSource.SUMMARY

    def missing_fields(self) -> list[str]:
        """Required fields that are still empty."""
        return [name for name in REQUIRED_BOOKING_FIELDS if not getattr(self, name)]

    def is_complete(self) -> bool:
        return not self.missing_fields()


class Appointment(BaseModel):
    """A committed booking."""
    id: Optional[int] = None
    tenant_id: int
    professional_id: int
    service_id: int
    client_name: str
    client_phone: Optional[str] = None
    client_email: Optional[str] = None
    appointment_date: date
    appointment_time: str
    duration: int = 30
    total_price: Decimal = Decimal("0.00")
    status: AppointmentStatus = AppointmentStatus.PENDING
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.status != AppointmentStatus.CANCELLED


class BookingCreatedEvent(BaseModel):
    """Payload fanned out to live-dashboard listeners."""
    type: str = "new_appointment"
    appointment_id: int
    client_name: str
    service_name: str
    professional_name: str
    appointment_date: date
    appointment_time: str
