"""
Offline console demo: replays a WhatsApp booking conversation without any
API keys.

Runs the real confirmation detector, extractors, conflict checker and
commit engine against an in-memory catalog. The model extractor is backed
by a canned completion so the announcement flow works offline too.

Usage:
    python console_demo.py
    python console_demo.py --scenario announcement
    python console_demo.py --scenario conflict
"""

import argparse
import asyncio
import json
from datetime import date
from decimal import Decimal
from typing import Optional

from appointment_bot.agents.booking_agent import BookingAgent
from appointment_bot.config import settings
from appointment_bot.conversation.date_resolver import local_now, resolve_weekday
from appointment_bot.conversation.state_machine import ConfirmationSignalDetector
from appointment_bot.extraction.model_extractor import ModelExtractor
from appointment_bot.schemas.booking_schema import Appointment, AppointmentStatus
from appointment_bot.schemas.conversation_schema import ConversationThread, Message, MessageRole
from appointment_bot.schemas.customer_schema import Professional, Service, Tenant
from appointment_bot.tools.booking import BookingCommitEngine
from appointment_bot.tools.notifications import NotificationBroadcaster
from appointment_bot.tools.storage import InMemoryStorage

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

CUSTOMER_PHONE = "49999214230"

SCENARIOS: dict[str, list[tuple[MessageRole, str]]] = {
    "summary": [
        (MessageRole.CUSTOMER, "Oi, quero marcar um corte com a Ana"),
        (MessageRole.ASSISTANT, "Claro! Para qual dia e horário?"),
        (MessageRole.CUSTOMER, "Terça às 14h"),
        (MessageRole.ASSISTANT, "Perfeito. Qual seu nome completo?"),
        (MessageRole.CUSTOMER, "Maria Silva"),
        (MessageRole.ASSISTANT,
         "📋 *Resumo do agendamento*\n👤 Nome: Maria Silva\n💇 Profissional: Ana\n"
         "✂️ Serviço: Corte Feminino\n📅 Data: {tuesday}\n⏰ Horário: 14:00\n\n"
         "Posso confirmar o agendamento?"),
        (MessageRole.CUSTOMER, "sim"),
    ],
    "announcement": [
        (MessageRole.CUSTOMER, "Boa tarde, meu nome é João Pereira"),
        (MessageRole.ASSISTANT, "Olá João! Qual serviço você deseja?"),
        (MessageRole.CUSTOMER, "Barba com o Carlos na terça às 10:00"),
        (MessageRole.ASSISTANT, "Carlos tem horário livre terça às 10:00. Posso marcar?"),
        (MessageRole.CUSTOMER, "pode sim"),
        (MessageRole.ASSISTANT, "Pronto, agendamento confirmado para terça às 10:00 com o Carlos!"),
    ],
    "conflict": [
        (MessageRole.CUSTOMER, "Quero um corte feminino com a Ana terça às 14:15, sou a Julia Costa"),
        (MessageRole.ASSISTANT,
         "👤 Nome: Julia Costa\n💇 Profissional: Ana\n✂️ Serviço: Corte Feminino\n"
         "📅 Data: {tuesday}\n⏰ Horário: 14:15\nEstá correto?"),
        (MessageRole.CUSTOMER, "sim, confirmo"),
    ],
}


class CannedCompletionClient:
    """Answers the extraction prompt with a fixed JSON object."""

    def __init__(self, answer: str) -> None:
        self.answer = answer

    async def complete(self, messages: list[dict[str, str]], temperature: float, max_tokens: int) -> str:
        return self.answer


def _seed(storage: InMemoryStorage, today: date, scenario: str) -> Tenant:
    tenant = storage.add_tenant(Tenant(id=1, name="Salão Demo", instance_name="demo"))
    storage.add_professional(Professional(id=10, tenant_id=1, name="Ana"))
    storage.add_professional(Professional(id=11, tenant_id=1, name="Carlos", work_days=[1, 2, 3, 4, 5]))
    storage.add_service(Service(id=20, tenant_id=1, name="Corte Feminino", duration=30, price=Decimal("60.00")))
    storage.add_service(Service(id=21, tenant_id=1, name="Barba", duration=30, price=Decimal("35.00")))
    if scenario == "conflict":
        storage.appointments[99] = Appointment(
            id=99, tenant_id=1, professional_id=10, service_id=20,
            client_name="Paula Souza", client_phone="(49) 98888-7777",
            appointment_date=resolve_weekday("terca", today), appointment_time="14:00",
            duration=30, status=AppointmentStatus.CONFIRMED,
        )
    return tenant


class ConsoleSession:
    """Replays one scripted conversation through the booking pipeline."""

    def __init__(self, scenario: str, today: Optional[date] = None) -> None:
        self.scenario = scenario
        self.today = today or local_now(settings.scheduling.timezone).date()
        self.storage = InMemoryStorage()
        self.broadcaster = NotificationBroadcaster()
        self.tenant = _seed(self.storage, self.today, scenario)
        tuesday = resolve_weekday("terca", self.today)
        canned = json.dumps({
            "clientName": "João Pereira", "clientPhone": CUSTOMER_PHONE,
            "professionalId": 11, "serviceId": 21,
            "appointmentDate": tuesday.isoformat(), "appointmentTime": "10:00",
        })
        self.agent = BookingAgent(
            self.storage,
            BookingCommitEngine(self.storage, self.broadcaster),
            model_extractor=ModelExtractor(CannedCompletionClient(canned)),
        )
        self.detector = ConfirmationSignalDetector()
        self.thread = ConversationThread(
            id=1, tenant_id=1, instance_name="demo", phone_number=CUSTOMER_PHONE,
        )
        self.tuesday = tuesday

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    async def run(self) -> None:
        steps = SCENARIOS[self.scenario]
        listener = self.broadcaster.subscribe()

        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  APPOINTMENT BOT - Scenario: {self.scenario}{RESET}")
        print(f"{BOLD}  Today: {self.today.strftime('%d/%m/%Y')}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

        messages: list[Message] = []
        for role, template in steps:
            text = template.format(tuesday=self.tuesday.strftime("%d/%m/%Y"))
            message = await self.storage.create_message(
                Message(conversation_id=self.thread.id, role=role, content=text)
            )
            messages.append(message)
            colour = BLUE if role == MessageRole.CUSTOMER else GREEN
            label = "Cliente" if role == MessageRole.CUSTOMER else "Assistente"
            print(f"\n{colour}{BOLD}[{label}]{RESET} {colour}{text}{RESET}")

            machine = self.detector.replay(messages)
            self.system_log(f"State: {machine.current_state.value}")

            attempt = await self.agent.try_book(self.tenant, self.thread, messages, self.today)
            if attempt is None:
                continue
            candidate = attempt.candidate
            self.system_log(
                f"Extracted ({candidate.source.value}): {candidate.client_name} | "
                f"{candidate.professional_name} | {candidate.service_name} | "
                f"{candidate.appointment_date} {candidate.appointment_time}"
            )
            outcome = attempt.result.outcome.value
            colour = RED if not attempt.committed else YELLOW
            print(f"{colour}{BOLD}  Commit outcome: {outcome}{RESET}")

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        while not listener.empty():
            print(f"{DIM}  Event: {listener.get_nowait()}{RESET}")
        print(f"{DIM}  Appointments stored: {len(self.storage.appointments)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Offline booking conversation demo")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="summary")
    args = parser.parse_args(argv)
    asyncio.run(ConsoleSession(args.scenario).run())


if __name__ == "__main__":
    main()
