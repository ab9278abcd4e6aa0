"""
Model extraction: ask the language model for the booking as a JSON object.

The model sees the current date, the weekday -> next date table, the
catalog with ids and availability, and the transcript. Its answer must be
one JSON object with exactly six keys, or the incomplete-data sentinel.
Ids are checked against the tenant's active records. The named
professional and service, the date and the time must all appear in the
conversation.
"""

import logging
import re
from datetime import date
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from appointment_bot.config import ModelConfig, settings
from appointment_bot.conversation.date_resolver import referenced_dates
from appointment_bot.errors import InsufficientData, MalformedModelOutput, ResolutionFailure
from appointment_bot.extraction.context import ExtractionContext, customer_statements
from appointment_bot.extraction.rules import TIME_RE, normalize_time
from appointment_bot.prompts.prompt_templates import build_extraction_messages
from appointment_bot.prompts.system_prompts import INCOMPLETE_SENTINEL
from appointment_bot.schemas.booking_schema import CandidateBooking, ExtractionSource
from appointment_bot.tools.llm import CompletionClient
from appointment_bot.tools.services import find_by_id
from appointment_bot.utils import fold_text, format_phone

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def sanitize_model_output(raw: str) -> str:
    """Strip code fences, control characters and wrapping quotes."""
    cleaned = _CONTROL_RE.sub("", raw or "").strip()
    cleaned = _FENCE_RE.sub("", cleaned).strip()
    while len(cleaned) >= 2 and cleaned[0] == cleaned[-1] and cleaned[0] in "\"'`":
        cleaned = cleaned[1:-1].strip()
    return cleaned


class ModelBooking(BaseModel):
    """The exact JSON shape the extraction prompt asks for."""

    model_config = ConfigDict(extra="forbid")

    client_name: Optional[str] = Field(alias="clientName")
    client_phone: Optional[str] = Field(alias="clientPhone")
    professional_id: Optional[Union[int, str]] = Field(alias="professionalId")
    service_id: Optional[Union[int, str]] = Field(alias="serviceId")
    appointment_date: Optional[date] = Field(alias="appointmentDate")
    appointment_time: Optional[str] = Field(alias="appointmentTime")

    @field_validator("appointment_time")
    @classmethod
    def _normalize_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        match = _TIME_RE.match(value.strip())
        if not match:
            raise ValueError(f"appointmentTime must be HH:MM, got {value!r}")
        return f"{int(match.group(1)):02d}:{match.group(2)}"

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _blank_date(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


def parse_model_output(raw: str) -> ModelBooking:
    """
    Parse a model response into a ModelBooking.

    Raises:
        InsufficientData: If the model answered with the sentinel.
        MalformedModelOutput: If the answer is not a valid six-key object.
    """
    cleaned = sanitize_model_output(raw)
    if INCOMPLETE_SENTINEL in cleaned:
        raise InsufficientData("Model reported incomplete booking data")
    try:
        return ModelBooking.model_validate_json(cleaned)
    except ValidationError as exc:
        logger.warning("Malformed model output. raw=%r cleaned=%r", raw, cleaned)
        raise MalformedModelOutput(str(exc), raw=raw, cleaned=cleaned) from exc


def _mentioned(name: str, transcript: str) -> bool:
    folded = fold_text(transcript)
    words = [fold_text(name)] + [w for w in fold_text(name).split() if len(w) >= 3]
    return any(re.search(rf"(?<!\w){re.escape(w)}(?!\w)", folded) for w in words)


def _mentioned_times(transcript: str) -> set[str]:
    return {normalize_time(m) for m in TIME_RE.finditer(transcript)}


class ModelExtractor:
    """Builds a CandidateBooking from one completion request."""

    def __init__(
        self,
        client: CompletionClient,
        config: Optional[ModelConfig] = None,
        availability_days: Optional[int] = None,
    ) -> None:
        self._client = client
        self._config = config or settings.model
        self._days = availability_days or settings.scheduling.availability_days

    async def extract(self, context: ExtractionContext) -> CandidateBooking:
        """
        Raises:
            InsufficientData: Sentinel answer or missing required fields.
            MalformedModelOutput: Unparseable answer.
            ResolutionFailure: Unknown ids or names absent from the conversation.
            CompletionError: The completion request itself failed.
        """
        transcript = context.transcript()
        messages = build_extraction_messages(
            transcript,
            context.professionals,
            context.services,
            context.appointments,
            context.reference,
            self._days,
        )
        raw = await self._client.complete(
            messages,
            temperature=self._config.extraction_temperature,
            max_tokens=self._config.max_tokens,
        )
        logger.debug("Model extraction raw output: %r", raw)
        parsed = parse_model_output(raw)

        professional = find_by_id(parsed.professional_id, context.active_professionals)
        if parsed.professional_id is not None and professional is None:
            raise ResolutionFailure("professional", str(parsed.professional_id))
        if professional is not None and not _mentioned(professional.name, transcript):
            logger.warning("Model picked professional %s not mentioned in conversation", professional.name)
            raise ResolutionFailure("professional", professional.name)

        service = find_by_id(parsed.service_id, context.services)
        if parsed.service_id is not None and service is None:
            raise ResolutionFailure("service", str(parsed.service_id))
        if service is not None and not _mentioned(service.name, transcript):
            logger.warning("Model picked service %s not mentioned in conversation", service.name)
            raise ResolutionFailure("service", service.name)

        stated = customer_statements(context)
        professional = stated.professional or professional
        service = stated.service or service
        client_phone = stated.client_phone or parsed.client_phone or context.contact_phone

        appointment_time = stated.appointment_time
        if appointment_time is None and parsed.appointment_time:
            if parsed.appointment_time not in _mentioned_times(transcript):
                logger.warning("Model picked time %s not mentioned in conversation", parsed.appointment_time)
                raise InsufficientData(
                    f"Time {parsed.appointment_time} is not in the conversation",
                    missing=["appointment_time"],
                )
            appointment_time = parsed.appointment_time

        appointment_date = stated.appointment_date
        if appointment_date is None and parsed.appointment_date:
            mentioned = referenced_dates((m.content for m in context.messages), context.reference)
            if parsed.appointment_date not in mentioned:
                logger.warning("Model picked date %s not mentioned in conversation", parsed.appointment_date)
                raise InsufficientData(
                    f"Date {parsed.appointment_date} is not in the conversation",
                    missing=["appointment_date"],
                )
            appointment_date = parsed.appointment_date

        candidate = CandidateBooking(
            client_name=stated.client_name or (parsed.client_name or "").strip() or None,
            client_phone=format_phone(client_phone) if client_phone else None,
            professional_id=professional.id if professional else None,
            professional_name=professional.name if professional else None,
            service_id=service.id if service else None,
            service_name=service.name if service else None,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            source=ExtractionSource.MODEL,
        )
        missing = candidate.missing_fields()
        if missing:
            logger.info("Model extraction incomplete, missing %s", missing)
            raise InsufficientData(
                f"Model extraction is missing {', '.join(missing)}", missing=missing
            )
        logger.info(
            "Model extraction: %s with %s, %s at %s %s",
            candidate.client_name, candidate.professional_name, candidate.service_name,
            candidate.appointment_date, candidate.appointment_time,
        )
        return candidate
