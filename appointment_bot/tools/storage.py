"""
Persistence collaborator.

``Storage`` is the interface the booking pipeline talks to.
``InMemoryStorage`` keeps tenant data in module-style dict tables, like a
mock CRM, and can be seeded from a JSON file for local runs.
"""

import itertools
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

from appointment_bot.schemas.booking_schema import Appointment
from appointment_bot.schemas.conversation_schema import ConversationThread, Message
from appointment_bot.schemas.customer_schema import Client, Professional, Service, Tenant
from appointment_bot.utils import phones_match

logger = logging.getLogger(__name__)


class Storage(Protocol):
    """Datastore operations used by the booking pipeline."""

    async def get_tenant_by_instance(self, instance_name: str) -> Optional[Tenant]: ...

    async def get_professionals_by_tenant(self, tenant_id: int) -> list[Professional]: ...

    async def get_services_by_tenant(self, tenant_id: int) -> list[Service]: ...

    async def get_appointments_by_tenant(self, tenant_id: int) -> list[Appointment]: ...

    async def get_clients_by_tenant(self, tenant_id: int) -> list[Client]: ...

    async def create_client(self, client: Client) -> Client: ...

    async def create_appointment(self, appointment: Appointment) -> Appointment: ...

    async def update_appointment(self, appointment_id: int, changes: dict[str, Any]) -> Appointment: ...

    async def get_latest_conversation(
        self, tenant_id: int, phone_number: str
    ) -> Optional[ConversationThread]: ...

    async def create_conversation(self, thread: ConversationThread) -> ConversationThread: ...

    async def touch_conversation(self, conversation_id: int, when: datetime) -> None: ...

    async def get_messages_by_conversation(
        self, conversation_id: int, limit: Optional[int] = None
    ) -> list[Message]: ...

    async def create_message(self, message: Message) -> Message: ...


class InMemoryStorage:
    """Dict-backed Storage for tests and single-process demos."""

    def __init__(self) -> None:
        self.tenants: dict[int, Tenant] = {}
        self.professionals: dict[int, Professional] = {}
        self.services: dict[int, Service] = {}
        self.clients: dict[int, Client] = {}
        self.appointments: dict[int, Appointment] = {}
        self.conversations: dict[int, ConversationThread] = {}
        self.messages: dict[int, Message] = {}
        self._ids = itertools.count(1)

    def _next_id(self) -> int:
        return next(self._ids)

    # --- Seeding ---

    def add_tenant(self, tenant: Tenant) -> Tenant:
        self.tenants[tenant.id] = tenant
        return tenant

    def add_professional(self, professional: Professional) -> Professional:
        self.professionals[professional.id] = professional
        return professional

    def add_service(self, service: Service) -> Service:
        self.services[service.id] = service
        return service

    @classmethod
    def from_json(cls, path: str) -> "InMemoryStorage":
        """Seed tenants, professionals and services from a JSON file.

        Expected shape: ``{"tenants": [...], "professionals": [...], "services": [...]}``.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        storage = cls()
        for raw in data.get("tenants", []):
            storage.add_tenant(Tenant.model_validate(raw))
        for raw in data.get("professionals", []):
            storage.add_professional(Professional.model_validate(raw))
        for raw in data.get("services", []):
            storage.add_service(Service.model_validate(raw))
        seeded = [*storage.tenants, *storage.professionals, *storage.services]
        storage._ids = itertools.count(max(seeded, default=0) + 1)
        logger.info(
            "Seeded storage from %s: %d tenants, %d professionals, %d services",
            path, len(storage.tenants), len(storage.professionals), len(storage.services),
        )
        return storage

    # --- Catalog ---

    async def get_tenant_by_instance(self, instance_name: str) -> Optional[Tenant]:
        for tenant in self.tenants.values():
            if tenant.instance_name == instance_name:
                return tenant
        return None

    async def get_professionals_by_tenant(self, tenant_id: int) -> list[Professional]:
        return [p for p in self.professionals.values() if p.tenant_id == tenant_id]

    async def get_services_by_tenant(self, tenant_id: int) -> list[Service]:
        return [s for s in self.services.values() if s.tenant_id == tenant_id]

    # --- Clients & appointments ---

    async def get_appointments_by_tenant(self, tenant_id: int) -> list[Appointment]:
        return [a.model_copy() for a in self.appointments.values() if a.tenant_id == tenant_id]

    async def get_clients_by_tenant(self, tenant_id: int) -> list[Client]:
        return [c for c in self.clients.values() if c.tenant_id == tenant_id]

    async def create_client(self, client: Client) -> Client:
        stored = client.model_copy(update={"id": self._next_id()})
        self.clients[stored.id] = stored
        return stored

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        stored = appointment.model_copy(update={"id": self._next_id()})
        self.appointments[stored.id] = stored
        return stored.model_copy()

    async def update_appointment(self, appointment_id: int, changes: dict[str, Any]) -> Appointment:
        current = self.appointments.get(appointment_id)
        if current is None:
            raise KeyError(f"Appointment {appointment_id} not found")
        updated = current.model_copy(
            update={**changes, "updated_at": datetime.now(timezone.utc)}
        )
        self.appointments[appointment_id] = updated
        return updated.model_copy()

    # --- Conversations ---

    async def get_latest_conversation(
        self, tenant_id: int, phone_number: str
    ) -> Optional[ConversationThread]:
        threads = [
            t for t in self.conversations.values()
            if t.tenant_id == tenant_id and phones_match(t.phone_number, phone_number)
        ]
        if not threads:
            return None
        return max(threads, key=lambda t: t.last_message_at)

    async def create_conversation(self, thread: ConversationThread) -> ConversationThread:
        stored = thread.model_copy(update={"id": self._next_id()})
        self.conversations[stored.id] = stored
        return stored

    async def touch_conversation(self, conversation_id: int, when: datetime) -> None:
        thread = self.conversations.get(conversation_id)
        if thread is not None:
            self.conversations[conversation_id] = thread.model_copy(
                update={"last_message_at": when}
            )

    async def get_messages_by_conversation(
        self, conversation_id: int, limit: Optional[int] = None
    ) -> list[Message]:
        """Messages of a conversation, oldest first; ``limit`` keeps the newest."""
        found = sorted(
            (m for m in self.messages.values() if m.conversation_id == conversation_id),
            key=lambda m: (m.timestamp, m.id or 0),
        )
        return found[-limit:] if limit else found

    async def create_message(self, message: Message) -> Message:
        stored = message.model_copy(update={"id": self._next_id()})
        self.messages[stored.id] = stored
        return stored
