"""
Professional availability rendering and appointment conflict detection.

Intervals are half-open: [start, start + duration). A booking that ends
exactly when another starts does not conflict.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Optional

from appointment_bot.conversation.date_resolver import weekday_label
from appointment_bot.schemas.booking_schema import Appointment
from appointment_bot.schemas.customer_schema import Professional
from appointment_bot.utils import phones_match

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


class ConflictKind(str, Enum):
    """Outcome of checking a candidate interval against existing bookings."""

    NONE = "none"
    SAME_CLIENT = "same_client"
    OTHER_CLIENT = "other_client"


@dataclass
class ConflictCheck:
    """
    Conflict decision plus the appointment that triggered it.

    ``own`` is the client's overlapping appointment, if any, even when
    another client's booking decided the kind.
    """
    kind: ConflictKind
    existing: Optional[Appointment] = None
    own: Optional[Appointment] = None

    @property
    def has_conflict(self) -> bool:
        return self.kind != ConflictKind.NONE


def to_minutes(value: str) -> int:
    """Convert ``HH:MM`` to minutes since midnight."""
    hours, minutes = value.strip().split(":")[:2]
    total = int(hours) * 60 + int(minutes)
    if not 0 <= total < MINUTES_PER_DAY:
        raise ValueError(f"Time out of range: {value!r}")
    return total


def from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap test."""
    return start_a < end_b and end_a > start_b


def is_working_day(professional: Professional, day: date) -> bool:
    return day.weekday() in professional.work_days


def is_within_work_hours(professional: Professional, start: str, duration: int) -> bool:
    """True when [start, start+duration) fits the professional's work window."""
    begin = to_minutes(start)
    return (
        to_minutes(professional.work_start_time) <= begin
        and begin + duration <= to_minutes(professional.work_end_time)
    )


def active_appointments_for(
    appointments: Iterable[Appointment], professional_id: int, day: date
) -> list[Appointment]:
    """Non-cancelled appointments of one professional on one date, by start time."""
    selected = [
        a for a in appointments
        if a.is_active and a.professional_id == professional_id and a.appointment_date == day
    ]
    return sorted(selected, key=lambda a: to_minutes(a.appointment_time))


def check_conflict(
    start: str,
    duration: int,
    existing: Iterable[Appointment],
    client_phone: Optional[str] = None,
    ignore_id: Optional[int] = None,
) -> ConflictCheck:
    """
    Check a candidate interval against one professional's bookings for a day.

    Every overlapping appointment is considered. Any overlap with another
    client's booking is reported as OTHER_CLIENT, even when the client's
    own appointment overlaps too. SAME_CLIENT (an in-place update) is
    returned only when the client's own bookings are the sole overlaps.
    The caller decides whether to proceed.
    """
    begin = to_minutes(start)
    end = begin + duration
    other: Optional[Appointment] = None
    own: Optional[Appointment] = None

    for appt in existing:
        if not appt.is_active or (ignore_id is not None and appt.id == ignore_id):
            continue
        appt_begin = to_minutes(appt.appointment_time)
        if not overlaps(begin, end, appt_begin, appt_begin + appt.duration):
            continue
        if client_phone and phones_match(appt.client_phone, client_phone):
            if own is None:
                own = appt
        elif other is None:
            other = appt

    if other is not None:
        logger.warning(
            "Conflict: %s+%dmin overlaps appointment %s at %s (%s)",
            start, duration, other.id, other.appointment_time, other.client_name,
        )
        return ConflictCheck(ConflictKind.OTHER_CLIENT, other, own=own)
    if own is not None:
        return ConflictCheck(ConflictKind.SAME_CLIENT, own, own=own)
    return ConflictCheck(ConflictKind.NONE)


def render_day(professional: Professional, day: date, appointments: Iterable[Appointment]) -> str:
    """One line describing a professional's occupancy on ``day``."""
    header = f"{weekday_label(day)} {day.strftime('%d/%m/%Y')}"
    if not is_working_day(professional, day):
        return f"{header}: não trabalha (indisponível o dia todo)"

    busy = active_appointments_for(appointments, professional.id, day)
    window = f"{professional.work_start_time}-{professional.work_end_time}"
    if not busy:
        return f"{header}: livre ({window})"
    occupied = ", ".join(
        f"{a.appointment_time}-{from_minutes(to_minutes(a.appointment_time) + a.duration)}"
        for a in busy
    )
    return f"{header}: expediente {window}, ocupado {occupied}"


def render_availability(
    professional: Professional,
    appointments: Iterable[Appointment],
    start: date,
    days: int = 7,
) -> str:
    """Per-day occupancy view for the next ``days`` days starting at ``start``."""
    appointments = list(appointments)
    lines = [f"{professional.name}:"]
    for offset in range(days):
        lines.append("  " + render_day(professional, start + timedelta(days=offset), appointments))
    return "\n".join(lines)
