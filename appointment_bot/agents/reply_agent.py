"""Conversational reply generation for the WhatsApp assistant."""

from datetime import date
from typing import Optional, Sequence

from appointment_bot.config import AppConfig, settings
from appointment_bot.errors import CompletionError
from appointment_bot.logging_context import get_conversation_logger
from appointment_bot.prompts.prompt_templates import build_reply_system_prompt
from appointment_bot.schemas.booking_schema import Appointment
from appointment_bot.schemas.conversation_schema import Message, MessageRole
from appointment_bot.schemas.customer_schema import Professional, Service, Tenant
from appointment_bot.tools.llm import CompletionClient

logger = get_conversation_logger(__name__)

FALLBACK_REPLY = (
    "Desculpe, não consegui processar sua mensagem agora. "
    "Pode enviar novamente em alguns instantes?"
)


class ReplyAgent:
    """Produces the assistant's next message from the conversation so far."""

    def __init__(self, client: CompletionClient, config: Optional[AppConfig] = None) -> None:
        self._client = client
        self._config = config or settings

    async def reply(
        self,
        tenant: Tenant,
        professionals: Sequence[Professional],
        services: Sequence[Service],
        appointments: Sequence[Appointment],
        messages: Sequence[Message],
        today: date,
    ) -> str:
        system = build_reply_system_prompt(
            tenant, professionals, services, appointments, today,
            self._config.scheduling.availability_days,
        )
        chat = [{"role": "system", "content": system}]
        chat.extend(
            {"role": "user" if m.role == MessageRole.CUSTOMER else "assistant", "content": m.content}
            for m in messages
        )
        try:
            return await self._client.complete(
                chat,
                temperature=self._config.model.llm_temperature,
                max_tokens=self._config.model.max_tokens,
            )
        except CompletionError as exc:
            logger.error("Reply generation failed: %s", exc)
            return FALLBACK_REPLY
