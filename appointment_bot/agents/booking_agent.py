"""
Booking agent: decides whether a conversation turn books an appointment.

Detect -> Verify date reference -> Extract -> Commit. Summary extraction
runs first; the model extractor is the fallback when the summary comes
back incomplete, and the only path for an assistant reply that announced
a booking without a labeled summary.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from appointment_bot.config import SchedulingConfig, settings
from appointment_bot.conversation.date_resolver import has_date_reference, local_now
from appointment_bot.conversation.state_machine import (
    ConfirmationSignal,
    ConfirmationSignalDetector,
    SignalKind,
)
from appointment_bot.errors import BookingError, InsufficientData, PersistenceFailure
from appointment_bot.extraction.context import ExtractionContext
from appointment_bot.extraction.model_extractor import ModelExtractor
from appointment_bot.extraction.summary_extractor import SummaryExtractor
from appointment_bot.logging_context import get_conversation_logger
from appointment_bot.schemas.booking_schema import CandidateBooking
from appointment_bot.schemas.conversation_schema import ConversationThread, Message
from appointment_bot.schemas.customer_schema import Tenant
from appointment_bot.tools.booking import BookingCommitEngine, CommitResult
from appointment_bot.tools.storage import Storage

logger = get_conversation_logger(__name__)


@dataclass
class BookingAttempt:
    """A detected confirmation, what was extracted from it, and the commit result."""
    signal: ConfirmationSignal
    candidate: CandidateBooking
    result: CommitResult

    @property
    def committed(self) -> bool:
        return self.result.committed


class BookingAgent:
    """Runs detection, extraction and commit for one conversation window."""

    def __init__(
        self,
        storage: Storage,
        commit_engine: BookingCommitEngine,
        model_extractor: Optional[ModelExtractor] = None,
        config: Optional[SchedulingConfig] = None,
    ) -> None:
        self._storage = storage
        self._commit = commit_engine
        self._summary = SummaryExtractor()
        self._model = model_extractor
        self._config = config or settings.scheduling
        self._detector = ConfirmationSignalDetector()

    async def try_book(
        self,
        tenant: Tenant,
        thread: ConversationThread,
        messages: Sequence[Message],
        today: Optional[date] = None,
    ) -> Optional[BookingAttempt]:
        """
        Book when the latest turns carry a confirmation signal.

        Returns None when there is nothing to book or extraction fails;
        extraction errors are logged and leave the conversation open.

        Raises:
            PersistenceFailure: If the commit could not be written.
        """
        signal = self._detector.detect(messages)
        if signal is None:
            return None
        logger.info("Confirmation signal (%s), trace: %s", signal.kind.value, signal.trace)

        try:
            if not has_date_reference(m.content for m in messages):
                raise InsufficientData("Confirmed without any date reference", missing=["appointment_date"])
            context = await self._build_context(tenant, thread, messages, today)
            candidate = await self._extract(signal, context)
        except PersistenceFailure:
            raise
        except BookingError as exc:
            logger.info("No booking from %s signal: %s", signal.kind.value, exc)
            return None

        result = await self._commit.commit(tenant.id, candidate, thread.id)
        logger.info("Commit outcome: %s", result.outcome.value)
        return BookingAttempt(signal=signal, candidate=candidate, result=result)

    async def _build_context(
        self,
        tenant: Tenant,
        thread: ConversationThread,
        messages: Sequence[Message],
        today: Optional[date],
    ) -> ExtractionContext:
        return ExtractionContext(
            messages=list(messages),
            professionals=await self._storage.get_professionals_by_tenant(tenant.id),
            services=await self._storage.get_services_by_tenant(tenant.id),
            appointments=await self._storage.get_appointments_by_tenant(tenant.id),
            reference=today or local_now(self._config.timezone).date(),
            contact_phone=thread.phone_number,
        )

    async def _extract(
        self, signal: ConfirmationSignal, context: ExtractionContext
    ) -> CandidateBooking:
        if signal.kind == SignalKind.ANNOUNCEMENT:
            return await self._extract_with_model(context)

        try:
            return self._summary.extract(signal.summary, context)
        except BookingError as exc:
            if self._model is None or not self._config.model_fallback_enabled:
                raise
            logger.info("Summary extraction failed (%s), falling back to model", exc)
        return await self._extract_with_model(context)

    async def _extract_with_model(self, context: ExtractionContext) -> CandidateBooking:
        if self._model is None:
            raise InsufficientData("No model extractor configured")
        return await self._model.extract(context)
