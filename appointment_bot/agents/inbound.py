"""
Inbound message handling.

``handle`` stores the customer's message on its conversation thread and
schedules debounced processing. ``process`` runs once the customer has
paused: it tries to book, and otherwise asks the model for the next reply,
sends it, and checks whether that reply announced a booking.
"""

from datetime import date
from typing import Optional

from appointment_bot.agents.booking_agent import BookingAgent, BookingAttempt
from appointment_bot.agents.reply_agent import ReplyAgent
from appointment_bot.config import AppConfig, settings
from appointment_bot.conversation.date_resolver import local_now
from appointment_bot.conversation.debounce import DelayedTaskScheduler
from appointment_bot.errors import PersistenceFailure
from appointment_bot.logging_context import get_conversation_logger, set_conversation_id
from appointment_bot.prompts.prompt_templates import build_booking_confirmation
from appointment_bot.schemas.conversation_schema import (
    ConversationThread,
    InboundMessage,
    Message,
    MessageRole,
)
from appointment_bot.schemas.customer_schema import Tenant
from appointment_bot.tools.booking import CommitOutcome
from appointment_bot.tools.channel import MessageSender
from appointment_bot.tools.storage import Storage
from appointment_bot.utils import normalize_phone

logger = get_conversation_logger(__name__)

CONFLICT_REPLY = (
    "Poxa, esse horário acabou de ser ocupado. "
    "Pode escolher outro horário ou outro profissional?"
)


class InboundProcessor:
    """Receives channel messages and drives the booking conversation."""

    def __init__(
        self,
        storage: Storage,
        channel: MessageSender,
        booking_agent: BookingAgent,
        reply_agent: ReplyAgent,
        scheduler: Optional[DelayedTaskScheduler] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self._storage = storage
        self._channel = channel
        self._booking = booking_agent
        self._replies = reply_agent
        self._config = config or settings
        self._scheduler = scheduler or DelayedTaskScheduler(
            self._config.scheduling.debounce_delay_sec
        )

    @property
    def scheduler(self) -> DelayedTaskScheduler:
        return self._scheduler

    # ------------------------------------------------------------------ #
    # Intake
    # ------------------------------------------------------------------ #

    async def handle(self, inbound: InboundMessage) -> Optional[ConversationThread]:
        """Store an inbound message and schedule processing of its thread."""
        tenant = await self._storage.get_tenant_by_instance(inbound.instance_name)
        if tenant is None:
            logger.warning("No tenant for instance %s, ignoring message", inbound.instance_name)
            return None

        thread = await self._get_or_create_thread(tenant, inbound)
        set_conversation_id(str(thread.id))
        await self._storage.create_message(Message(
            conversation_id=thread.id,
            role=MessageRole.CUSTOMER,
            content=inbound.text,
            message_id=inbound.message_id,
            message_type=inbound.message_type,
            timestamp=inbound.timestamp,
        ))
        await self._storage.touch_conversation(thread.id, inbound.timestamp)
        logger.info("Stored %s message from %s", inbound.message_type.value, thread.phone_number)

        self._scheduler.schedule(thread.id, lambda: self.process(tenant, thread))
        return thread

    async def _get_or_create_thread(
        self, tenant: Tenant, inbound: InboundMessage
    ) -> ConversationThread:
        phone = normalize_phone(inbound.contact_id)
        thread = await self._storage.get_latest_conversation(tenant.id, phone)
        if thread is not None:
            return thread
        thread = await self._storage.create_conversation(ConversationThread(
            tenant_id=tenant.id,
            instance_name=inbound.instance_name,
            phone_number=phone,
            contact_name=inbound.push_name,
            created_at=inbound.timestamp,
            last_message_at=inbound.timestamp,
        ))
        logger.info("Created conversation %s for %s", thread.id, phone)
        return thread

    # ------------------------------------------------------------------ #
    # Debounced processing
    # ------------------------------------------------------------------ #

    async def process(
        self, tenant: Tenant, thread: ConversationThread, today: Optional[date] = None
    ) -> None:
        """Book or reply for the conversation's latest turns."""
        set_conversation_id(str(thread.id))
        today = today or local_now(self._config.scheduling.timezone).date()
        try:
            messages = await self._history(thread)
            attempt = await self._booking.try_book(tenant, thread, messages, today)
            if attempt is not None:
                await self._answer_attempt(thread, attempt)
                return

            reply = await self._generate_reply(tenant, messages, today)
            stored = await self._send_and_store(thread, reply)
            announced = await self._booking.try_book(tenant, thread, [*messages, stored], today)
            if announced is not None and announced.result.outcome == CommitOutcome.CONFLICT:
                await self._send_and_store(thread, CONFLICT_REPLY)
        except PersistenceFailure:
            logger.exception("Booking could not be saved for conversation %s", thread.id)

    async def _history(self, thread: ConversationThread) -> list[Message]:
        return await self._storage.get_messages_by_conversation(
            thread.id, limit=self._config.scheduling.history_limit
        )

    async def _answer_attempt(self, thread: ConversationThread, attempt: BookingAttempt) -> None:
        outcome = attempt.result.outcome
        if outcome == CommitOutcome.DUPLICATE:
            logger.info("Booking already committed, no new confirmation sent")
            return
        if outcome == CommitOutcome.CONFLICT:
            await self._send_and_store(thread, CONFLICT_REPLY)
            return
        text = build_booking_confirmation(
            attempt.result.appointment,
            attempt.candidate.professional_name or "",
            attempt.candidate.service_name or "",
        )
        await self._send_and_store(thread, text)

    async def _generate_reply(self, tenant: Tenant, messages: list[Message], today: date) -> str:
        return await self._replies.reply(
            tenant,
            await self._storage.get_professionals_by_tenant(tenant.id),
            await self._storage.get_services_by_tenant(tenant.id),
            await self._storage.get_appointments_by_tenant(tenant.id),
            messages,
            today,
        )

    async def _send_and_store(self, thread: ConversationThread, text: str) -> Message:
        sent = await self._channel.send_text(thread.instance_name, thread.phone_number, text)
        if not sent:
            logger.warning("Assistant message was not delivered to %s", thread.phone_number)
        stored = await self._storage.create_message(Message(
            conversation_id=thread.id,
            role=MessageRole.ASSISTANT,
            content=text,
        ))
        await self._storage.touch_conversation(thread.id, stored.timestamp)
        return stored
