"""Error taxonomy for the booking pipeline.

Extraction-phase errors (InsufficientData, ResolutionFailure,
MalformedModelOutput) are recovered locally and leave the conversation
open. PersistenceFailure propagates to the inbound handler.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for all booking pipeline errors."""


class InsufficientData(BookingError):
    """A required field, the confirmation signal, or a date reference is missing."""

    def __init__(self, message: str, missing: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class ResolutionFailure(BookingError):
    """A professional or service name could not be matched to a known record."""

    def __init__(self, kind: str, value: Optional[str]) -> None:
        super().__init__(f"Could not resolve {kind} {value!r}")
        self.kind = kind
        self.value = value


class MalformedModelOutput(InsufficientData):
    """The model response was neither the sentinel nor a valid JSON object."""

    def __init__(self, message: str, raw: str, cleaned: str) -> None:
        super().__init__(message)
        self.raw = raw
        self.cleaned = cleaned


class PersistenceFailure(BookingError):
    """A datastore write for a client or appointment failed."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause


class CompletionError(BookingError):
    """The language-model completion request failed or returned nothing."""
