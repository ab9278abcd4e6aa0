"""
Booking commit engine.

Turns a complete CandidateBooking into at most one stored appointment per
confirmed intent:

    1. duplicate check (same conversation tag, date, time and professional
       created within the recency window) -> DUPLICATE, nothing written
    2. conflict check against the professional's day -> CONFLICT when
       another client holds the slot and blocking is enabled
    3. client upsert (by phone, then by name)
    4. appointment create, or in-place update for the same client's slot
    5. event broadcast (failures are logged, never raised)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from appointment_bot.config import SchedulingConfig, settings
from appointment_bot.errors import InsufficientData, PersistenceFailure, ResolutionFailure
from appointment_bot.schemas.booking_schema import (
    Appointment,
    AppointmentStatus,
    BookingCreatedEvent,
    CandidateBooking,
)
from appointment_bot.schemas.customer_schema import Client
from appointment_bot.tools.availability import (
    active_appointments_for,
    check_conflict,
    ConflictKind,
    is_within_work_hours,
    is_working_day,
)
from appointment_bot.tools.notifications import NotificationBroadcaster
from appointment_bot.tools.services import find_by_id
from appointment_bot.tools.storage import Storage
from appointment_bot.utils import fold_text, format_phone, phones_match

logger = logging.getLogger(__name__)


class CommitOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"


@dataclass
class CommitResult:
    """What the commit did and the records involved."""
    outcome: CommitOutcome
    appointment: Optional[Appointment] = None
    client: Optional[Client] = None
    conflict_with: Optional[Appointment] = None

    @property
    def committed(self) -> bool:
        return self.outcome in (CommitOutcome.CREATED, CommitOutcome.UPDATED)


def conversation_tag(conversation_id: int) -> str:
    return f"[conversa:{conversation_id}]"


class BookingCommitEngine:
    """Persists confirmed bookings exactly once per confirmed intent."""

    def __init__(
        self,
        storage: Storage,
        broadcaster: Optional[NotificationBroadcaster] = None,
        config: Optional[SchedulingConfig] = None,
    ) -> None:
        self._storage = storage
        self._broadcaster = broadcaster
        self._config = config or settings.scheduling

    async def commit(
        self,
        tenant_id: int,
        candidate: CandidateBooking,
        conversation_id: int,
        now: Optional[datetime] = None,
    ) -> CommitResult:
        """
        Commit a complete candidate booking.

        Raises:
            InsufficientData: If the candidate is missing required fields.
            ResolutionFailure: If the professional or service no longer exists.
            PersistenceFailure: If a datastore write fails.
        """
        missing = candidate.missing_fields()
        if missing:
            raise InsufficientData(f"Cannot commit, missing {', '.join(missing)}", missing=missing)
        now = now or datetime.now(timezone.utc)
        tag = conversation_tag(conversation_id)

        professionals = await self._storage.get_professionals_by_tenant(tenant_id)
        professional = find_by_id(candidate.professional_id, professionals)
        if professional is None:
            raise ResolutionFailure("professional", str(candidate.professional_id))
        service = find_by_id(candidate.service_id, await self._storage.get_services_by_tenant(tenant_id))
        if service is None:
            raise ResolutionFailure("service", str(candidate.service_id))
        duration = service.duration or self._config.default_duration_minutes

        appointments = await self._storage.get_appointments_by_tenant(tenant_id)

        duplicate = self._find_duplicate(appointments, candidate, tag, now)
        if duplicate is not None:
            logger.info(
                "Duplicate booking for %s (appointment %s), skipping", tag, duplicate.id
            )
            return CommitResult(CommitOutcome.DUPLICATE, appointment=duplicate)

        day_appointments = active_appointments_for(
            appointments, professional.id, candidate.appointment_date
        )
        conflict = check_conflict(
            candidate.appointment_time, duration, day_appointments,
            client_phone=candidate.client_phone,
        )
        if conflict.kind == ConflictKind.OTHER_CLIENT and self._config.block_conflicting_bookings:
            logger.warning(
                "Booking blocked: %s %s %s overlaps appointment %s",
                professional.name, candidate.appointment_date, candidate.appointment_time,
                conflict.existing.id,
            )
            return CommitResult(CommitOutcome.CONFLICT, conflict_with=conflict.existing)

        if not is_working_day(professional, candidate.appointment_date) or not is_within_work_hours(
            professional, candidate.appointment_time, duration
        ):
            logger.warning(
                "Booking outside %s's working hours: %s %s",
                professional.name, candidate.appointment_date, candidate.appointment_time,
            )

        client = await self._upsert_client(tenant_id, candidate)

        if conflict.own is not None:
            existing = conflict.own
            changes = {
                "service_id": service.id,
                "appointment_time": candidate.appointment_time,
                "duration": duration,
                "total_price": service.price,
                "client_name": client.name,
                "notes": self._merge_notes(existing.notes, tag),
            }
            try:
                appointment = await self._storage.update_appointment(existing.id, changes)
            except Exception as exc:
                raise PersistenceFailure("update_appointment", exc) from exc
            outcome = CommitOutcome.UPDATED
            logger.info("Updated appointment %s for same client", appointment.id)
        else:
            appointment = Appointment(
                tenant_id=tenant_id,
                professional_id=professional.id,
                service_id=service.id,
                client_name=client.name,
                client_phone=client.phone,
                client_email=client.email,
                appointment_date=candidate.appointment_date,
                appointment_time=candidate.appointment_time,
                duration=duration,
                total_price=service.price,
                status=AppointmentStatus.CONFIRMED,
                notes=f"Agendado via WhatsApp {tag}",
                created_at=now,
                updated_at=now,
            )
            try:
                appointment = await self._storage.create_appointment(appointment)
            except Exception as exc:
                raise PersistenceFailure("create_appointment", exc) from exc
            outcome = CommitOutcome.CREATED
            logger.info(
                "Created appointment %s: %s with %s on %s at %s",
                appointment.id, client.name, professional.name,
                appointment.appointment_date, appointment.appointment_time,
            )

        self._emit(BookingCreatedEvent(
            type="new_appointment" if outcome == CommitOutcome.CREATED else "appointment_updated",
            appointment_id=appointment.id,
            client_name=appointment.client_name,
            service_name=service.name,
            professional_name=professional.name,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
        ))
        return CommitResult(outcome, appointment=appointment, client=client)

    def _find_duplicate(
        self,
        appointments: list[Appointment],
        candidate: CandidateBooking,
        tag: str,
        now: datetime,
    ) -> Optional[Appointment]:
        cutoff = now - timedelta(minutes=self._config.idempotency_window_minutes)
        for appt in appointments:
            if (
                tag in (appt.notes or "")
                and appt.professional_id == candidate.professional_id
                and appt.appointment_date == candidate.appointment_date
                and appt.appointment_time == candidate.appointment_time
                and max(appt.created_at, appt.updated_at) >= cutoff
            ):
                return appt
        return None

    async def _upsert_client(self, tenant_id: int, candidate: CandidateBooking) -> Client:
        clients = await self._storage.get_clients_by_tenant(tenant_id)
        if candidate.client_phone:
            for client in clients:
                if phones_match(client.phone, candidate.client_phone):
                    return client
        if candidate.client_name:
            wanted = fold_text(candidate.client_name).strip()
            for client in clients:
                if fold_text(client.name).strip() == wanted:
                    return client

        new_client = Client(
            tenant_id=tenant_id,
            name=candidate.client_name,
            phone=format_phone(candidate.client_phone) or None,
        )
        try:
            created = await self._storage.create_client(new_client)
        except Exception as exc:
            raise PersistenceFailure("create_client", exc) from exc
        logger.info("Created client %s (%s)", created.name, created.phone)
        return created

    @staticmethod
    def _merge_notes(notes: Optional[str], tag: str) -> str:
        if not notes:
            return tag
        return notes if tag in notes else f"{notes} {tag}"

    def _emit(self, event: BookingCreatedEvent) -> None:
        if self._broadcaster is None:
            return
        try:
            self._broadcaster.publish(event)
        except Exception:
            logger.exception("Failed to broadcast %s for appointment %s", event.type, event.appointment_id)
