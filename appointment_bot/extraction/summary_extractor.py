"""
Summary extraction: read the booking out of the summary the customer confirmed.

Each field is taken from the labeled summary first, then from customer
messages, then from the whole transcript. Customer-stated values override
whatever the summary says. Nothing is invented: a field that no rule finds
is reported missing.
"""

import logging
from datetime import date
from typing import Optional

from appointment_bot.conversation.date_resolver import (
    parse_numeric_date,
    resolve_in_text,
    resolve_in_texts,
)
from appointment_bot.errors import InsufficientData
from appointment_bot.extraction.context import ExtractionContext, customer_statements
from appointment_bot.extraction.rules import (
    PHONE_PATTERN,
    SELF_INTRODUCTION,
    TIME_PATTERN,
    CapitalizedNamePair,
    LabeledField,
    first_match,
)
from appointment_bot.schemas.booking_schema import CandidateBooking, ExtractionSource
from appointment_bot.schemas.conversation_schema import Message, MessageRole
from appointment_bot.schemas.customer_schema import Professional, Service
from appointment_bot.tools.services import resolve_professional, resolve_service, scan_transcript
from appointment_bot.utils import format_phone

logger = logging.getLogger(__name__)


def _labeled_date(value: Optional[str], reference: date) -> Optional[date]:
    if not value:
        return None
    return parse_numeric_date(value, reference) or resolve_in_text(value, reference)


def _labeled_time(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return TIME_PATTERN.match(value)


class SummaryExtractor:
    """Builds a CandidateBooking from a confirmed summary message."""

    def extract(self, summary: Message, context: ExtractionContext) -> CandidateBooking:
        """
        Raises:
            InsufficientData: If a required field cannot be found.
            ResolutionFailure: If a named professional/service is unknown.
        """
        summary_source = [(MessageRole.ASSISTANT, summary.content)]
        customer = context.customer_sources()
        transcript = context.transcript_sources()
        stated = customer_statements(context)
        full_text = context.transcript()

        # Name: customer introduction > summary label > transcript heuristics
        client_name = stated.client_name
        if not client_name:
            found = first_match([LabeledField("name")], summary_source)
            found = found or first_match([SELF_INTRODUCTION, LabeledField("name")], transcript)
            found = found or first_match([CapitalizedNamePair()], customer)
            client_name = found.value if found else None
            if client_name and self._is_catalog_name(client_name, context):
                client_name = None

        professional = stated.professional or self._professional(summary, context, full_text)
        service = stated.service or self._service(summary, context, full_text)

        appointment_date = stated.appointment_date
        if appointment_date is None:
            labeled = first_match([LabeledField("date")], summary_source)
            appointment_date = _labeled_date(labeled.value if labeled else None, context.reference)
        if appointment_date is None:
            appointment_date = resolve_in_texts(
                [m.content for m in context.messages], context.reference
            )

        appointment_time = stated.appointment_time
        if appointment_time is None:
            labeled = first_match([LabeledField("time")], summary_source)
            appointment_time = _labeled_time(labeled.value if labeled else None)
        if appointment_time is None:
            found = first_match([TIME_PATTERN], transcript)
            appointment_time = found.value if found else None

        client_phone = stated.client_phone
        if not client_phone:
            labeled = first_match([LabeledField("phone")], summary_source)
            if labeled:
                client_phone = PHONE_PATTERN.match(labeled.value) or None
        if not client_phone and context.contact_phone:
            client_phone = format_phone(context.contact_phone)

        candidate = CandidateBooking(
            client_name=client_name,
            client_phone=client_phone,
            professional_id=professional.id if professional else None,
            professional_name=professional.name if professional else None,
            service_id=service.id if service else None,
            service_name=service.name if service else None,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            source=ExtractionSource.SUMMARY,
        )
        missing = candidate.missing_fields()
        if missing:
            logger.info("Summary extraction incomplete, missing %s", missing)
            raise InsufficientData(
                f"Summary extraction is missing {', '.join(missing)}", missing=missing
            )
        logger.info(
            "Summary extraction: %s with %s, %s at %s %s",
            candidate.client_name, candidate.professional_name, candidate.service_name,
            candidate.appointment_date, candidate.appointment_time,
        )
        return candidate

    def _professional(
        self, summary: Message, context: ExtractionContext, full_text: str
    ) -> Optional[Professional]:
        labeled = LabeledField("professional").match(summary.content)
        if labeled:
            return resolve_professional(labeled, context.professionals, full_text)
        return scan_transcript(full_text, context.active_professionals)

    def _service(
        self, summary: Message, context: ExtractionContext, full_text: str
    ) -> Optional[Service]:
        labeled = LabeledField("service").match(summary.content)
        if labeled:
            return resolve_service(labeled, context.services, full_text)
        return scan_transcript(full_text, context.services)

    @staticmethod
    def _is_catalog_name(value: str, context: ExtractionContext) -> bool:
        folded = value.casefold()
        names = [p.name for p in context.professionals] + [s.name for s in context.services]
        return any(folded == n.casefold() for n in names)
