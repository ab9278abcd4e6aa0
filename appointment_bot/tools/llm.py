"""Language-model completion collaborator."""

import logging
from typing import Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from appointment_bot.config import ModelConfig, settings
from appointment_bot.errors import CompletionError

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    """Anything that turns chat messages into a single text completion."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        ...


class OpenAICompletionClient:
    """CompletionClient backed by the OpenAI chat completions API."""

    def __init__(
        self,
        config: Optional[ModelConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self._config = config or settings.model
        self._client = client or AsyncOpenAI(timeout=self._config.timeout_sec)

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """
        Raises:
            CompletionError: If the request fails or returns no content.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._config.llm_model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.warning("Completion request failed: %s", exc)
            raise CompletionError(f"Completion request failed: {exc}") from exc

        if not response.choices or not response.choices[0].message.content:
            raise CompletionError("Completion returned no content")
        return response.choices[0].message.content.strip()
