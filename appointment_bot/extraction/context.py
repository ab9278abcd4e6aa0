"""
Inputs shared by both extraction strategies.

``customer_statements`` implements the client-priority rule: whatever the
customer wrote themselves (a name introduction, a professional or service
they named, a date or time they asked for) beats the same field restated
by the assistant or returned by the model.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from appointment_bot.conversation.date_resolver import resolve_in_texts
from appointment_bot.extraction.rules import (
    PHONE_PATTERN,
    SELF_INTRODUCTION,
    TIME_PATTERN,
    KnownEntityScan,
    LabeledField,
    first_match,
)
from appointment_bot.schemas.booking_schema import Appointment
from appointment_bot.schemas.conversation_schema import Message, MessageRole
from appointment_bot.schemas.customer_schema import Professional, Service
from appointment_bot.tools.services import match_by_name

logger = logging.getLogger(__name__)

ROLE_LABELS = {MessageRole.CUSTOMER: "Cliente", MessageRole.ASSISTANT: "Assistente"}


@dataclass
class ExtractionContext:
    """One conversation window plus the tenant catalog it is read against."""
    messages: Sequence[Message]
    professionals: Sequence[Professional]
    services: Sequence[Service]
    reference: date
    contact_phone: Optional[str] = None
    appointments: Sequence[Appointment] = field(default_factory=list)

    @property
    def active_professionals(self) -> list[Professional]:
        return [p for p in self.professionals if p.active]

    @property
    def customer_messages(self) -> list[Message]:
        return [m for m in self.messages if m.role == MessageRole.CUSTOMER]

    def customer_sources(self) -> list[tuple[Optional[MessageRole], str]]:
        """Customer messages, newest first."""
        return [(m.role, m.content) for m in reversed(self.customer_messages)]

    def transcript_sources(self) -> list[tuple[Optional[MessageRole], str]]:
        """All messages, newest first."""
        return [(m.role, m.content) for m in reversed(list(self.messages))]

    def transcript(self) -> str:
        return "\n".join(
            f"{ROLE_LABELS.get(m.role, m.role.value)}: {m.content}" for m in self.messages
        )


@dataclass
class CustomerStatements:
    """Booking fields the customer stated in their own messages."""
    client_name: Optional[str] = None
    client_phone: Optional[str] = None
    professional: Optional[Professional] = None
    service: Optional[Service] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None


def customer_statements(context: ExtractionContext) -> CustomerStatements:
    """Collect the fields stated by the customer, newest statement first."""
    sources = context.customer_sources()
    stated = CustomerStatements()

    name = first_match([LabeledField("name"), SELF_INTRODUCTION], sources)
    if name:
        stated.client_name = name.value

    phone = first_match([LabeledField("phone"), PHONE_PATTERN], sources)
    if phone:
        stated.client_phone = phone.value

    professionals = context.active_professionals
    professional = first_match(
        [KnownEntityScan(tuple(p.name for p in professionals))], sources
    )
    if professional:
        stated.professional = match_by_name(professional.value, professionals)

    service = first_match([KnownEntityScan(tuple(s.name for s in context.services))], sources)
    if service:
        stated.service = match_by_name(service.value, context.services)

    stated.appointment_date = resolve_in_texts(
        [m.content for m in context.customer_messages], context.reference
    )

    time = first_match([TIME_PATTERN], sources)
    if time:
        stated.appointment_time = time.value

    logger.debug("Customer-stated fields: %s", stated)
    return stated
