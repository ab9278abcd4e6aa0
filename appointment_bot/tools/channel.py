"""Outbound messaging through the WhatsApp gateway HTTP API."""

import logging
from typing import Optional, Protocol

import httpx

from appointment_bot.config import ChannelConfig, settings
from appointment_bot.utils import normalize_phone

logger = logging.getLogger(__name__)


class MessageSender(Protocol):
    async def send_text(self, instance_name: str, number: str, text: str) -> bool: ...


class MessagingChannel:
    """Sends text messages via ``POST {api_url}/message/sendText/{instance}``."""

    def __init__(
        self,
        config: Optional[ChannelConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or settings.channel
        self._transport = transport

    async def send_text(self, instance_name: str, number: str, text: str) -> bool:
        """Send ``text`` to ``number``. Failures are logged and reported as False."""
        digits = normalize_phone(number)
        payload = {"number": f"55{digits}" if len(digits) in (10, 11) else digits, "text": text}
        url = f"{self._config.api_url.rstrip('/')}/message/sendText/{instance_name}"
        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_sec, transport=self._transport
            ) as http_client:
                response = await http_client.post(
                    url,
                    json=payload,
                    headers={"apikey": self._config.api_key, "Content-Type": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.error("Send to %s via %s failed: %s", digits, instance_name, exc)
            return False

        if response.status_code not in (200, 201):
            logger.error(
                "Send to %s via %s rejected (%d): %s",
                digits, instance_name, response.status_code, response.text,
            )
            return False
        logger.info("Sent message to %s via %s", digits, instance_name)
        return True
