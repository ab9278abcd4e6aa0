"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest

from appointment_bot.conversation.state_machine import (
    ConfirmationSignalDetector,
    ConfirmationStateMachine,
)
from appointment_bot.extraction.context import ExtractionContext
from appointment_bot.schemas.booking_schema import Appointment, AppointmentStatus
from appointment_bot.schemas.conversation_schema import ConversationThread, Message, MessageRole
from appointment_bot.schemas.customer_schema import Professional, Service, Tenant
from appointment_bot.tools.storage import InMemoryStorage

# Thursday
TODAY = date(2025, 3, 20)
NEXT_TUESDAY = date(2025, 3, 25)
CUSTOMER_PHONE = "49999214230"

SUMMARY_TEXT = (
    "📋 *Resumo do agendamento*\n"
    "👤 Nome: Maria Silva\n"
    "💇 Profissional: Ana\n"
    "✂️ Serviço: Corte Feminino\n"
    "📅 Data: 25/03/2025\n"
    "⏰ Horário: 14:00\n\n"
    "Posso confirmar o agendamento?"
)

PLAIN_SUMMARY_TEXT = (
    "Nome: Maria Silva\n"
    "Profissional: Ana\n"
    "Serviço: Corte Feminino\n"
    "Data: 25/03/2025\n"
    "Horário: 14:00\n"
    "Está correto?"
)

TENANT = Tenant(id=1, name="Salão Bela", instance_name="bela")

PROFESSIONALS = [
    Professional(id=10, tenant_id=1, name="Ana"),
    Professional(id=11, tenant_id=1, name="Carlos", work_days=[1, 2, 3, 4, 5]),
    Professional(id=12, tenant_id=1, name="Beatriz", active=False),
]

SERVICES = [
    Service(id=20, tenant_id=1, name="Corte Feminino", duration=30, price=Decimal("60.00")),
    Service(id=21, tenant_id=1, name="Barba", duration=30, price=Decimal("35.00")),
    Service(id=22, tenant_id=1, name="Coloração", duration=90, price=Decimal("150.00")),
]


def make_message(
    role: str,
    content: str,
    index: int = 0,
    conversation_id: int = 1,
) -> Message:
    """Helper to create a stored Message; ``role`` is "user" or "assistant"."""
    return Message(
        id=index + 1,
        conversation_id=conversation_id,
        role=MessageRole(role),
        content=content,
        timestamp=datetime(2025, 3, 20, 12, 0, tzinfo=timezone.utc) + timedelta(seconds=index),
    )


def make_conversation(turns: list[tuple[str, str]], conversation_id: int = 1) -> list[Message]:
    """Create a message window from (role, text) tuples."""
    return [make_message(role, text, i, conversation_id) for i, (role, text) in enumerate(turns)]


def booking_conversation(summary: str = SUMMARY_TEXT, reply: str = "sim") -> list[Message]:
    """The standard Maria Silva conversation ending in ``reply`` to ``summary``."""
    return make_conversation([
        ("user", "Oi, quero marcar um corte"),
        ("assistant", "Claro! Com qual profissional e para qual dia?"),
        ("user", "Com a Ana, terça às 14h"),
        ("assistant", "Perfeito. Qual seu nome completo?"),
        ("user", "Maria Silva"),
        ("assistant", summary),
        ("user", reply),
    ])


def make_context(
    messages: list[Message],
    appointments: Optional[list[Appointment]] = None,
    contact_phone: Optional[str] = CUSTOMER_PHONE,
) -> ExtractionContext:
    return ExtractionContext(
        messages=messages,
        professionals=PROFESSIONALS,
        services=SERVICES,
        reference=TODAY,
        contact_phone=contact_phone,
        appointments=appointments or [],
    )


def make_appointment(
    time: str,
    duration: int = 30,
    professional_id: int = 10,
    day: date = NEXT_TUESDAY,
    phone: Optional[str] = "(49) 98888-7777",
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    appointment_id: Optional[int] = 99,
    notes: Optional[str] = None,
) -> Appointment:
    return Appointment(
        id=appointment_id,
        tenant_id=1,
        professional_id=professional_id,
        service_id=20,
        client_name="Paula Souza",
        client_phone=phone,
        appointment_date=day,
        appointment_time=time,
        duration=duration,
        status=status,
        notes=notes,
    )


class FakeCompletionClient:
    """CompletionClient returning queued answers and recording requests."""

    def __init__(self, *answers: str) -> None:
        self.answers = list(answers)
        self.calls: list[dict] = []

    async def complete(self, messages, temperature, max_tokens) -> str:
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if not self.answers:
            return "Como posso ajudar?"
        return self.answers.pop(0)


class FakeChannel:
    """MessageSender that records what would have been sent."""

    def __init__(self, succeed: bool = True) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.succeed = succeed

    async def send_text(self, instance_name: str, number: str, text: str) -> bool:
        self.sent.append((instance_name, number, text))
        return self.succeed


@pytest.fixture
def confirmation_machine():
    return ConfirmationStateMachine()


@pytest.fixture
def detector():
    return ConfirmationSignalDetector()


@pytest.fixture
def storage():
    store = InMemoryStorage()
    store.add_tenant(TENANT)
    for professional in PROFESSIONALS:
        store.add_professional(professional)
    for service in SERVICES:
        store.add_service(service)
    return store


@pytest.fixture
def thread():
    return ConversationThread(id=1, tenant_id=1, instance_name="bela", phone_number=CUSTOMER_PHONE)
