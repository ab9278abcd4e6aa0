"""Match extracted professional/service names against a tenant's catalog."""

import logging
import re
from typing import Optional, Sequence, TypeVar, Union

from appointment_bot.errors import ResolutionFailure
from appointment_bot.schemas.customer_schema import Professional, Service
from appointment_bot.utils import fold_text

logger = logging.getLogger(__name__)

Named = TypeVar("Named", Professional, Service)


def _key(value: str) -> str:
    return re.sub(r"\s+", " ", fold_text(value)).strip()


def _contains_words(text: str, phrase: str) -> bool:
    return bool(re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text))


def match_by_name(query: Optional[str], candidates: Sequence[Named]) -> Optional[Named]:
    """Exact accent/case-insensitive match, then substring in either direction."""
    if not query or not query.strip():
        return None
    wanted = _key(query)

    for candidate in candidates:
        if _key(candidate.name) == wanted:
            return candidate
    for candidate in candidates:
        name = _key(candidate.name)
        if name and (_contains_words(wanted, name) or _contains_words(name, wanted)):
            return candidate
    return None


def scan_transcript(transcript: str, candidates: Sequence[Named]) -> Optional[Named]:
    """Find the candidate whose name is mentioned latest in the transcript."""
    folded = _key(transcript)
    best: Optional[tuple[int, Named]] = None
    for candidate in candidates:
        name = _key(candidate.name)
        if not name:
            continue
        for found in re.finditer(rf"(?<!\w){re.escape(name)}(?!\w)", folded):
            if best is None or found.start() > best[0]:
                best = (found.start(), candidate)
    return best[1] if best else None


def _resolve(
    kind: str,
    name: Optional[str],
    candidates: Sequence[Named],
    transcript: str = "",
) -> Named:
    match = match_by_name(name, candidates)
    if match is None and transcript:
        match = scan_transcript(transcript, candidates)
        if match is not None:
            logger.info("Resolved %s %r by transcript scan -> %s", kind, name, match.name)
    if match is None:
        logger.warning("Unresolved %s %r among %d candidates", kind, name, len(candidates))
        raise ResolutionFailure(kind, name)
    return match


def resolve_professional(
    name: Optional[str],
    professionals: Sequence[Professional],
    transcript: str = "",
) -> Professional:
    """Resolve a professional among the active ones.

    Raises:
        ResolutionFailure: If neither the name nor the transcript identifies one.
    """
    active = [p for p in professionals if p.active]
    return _resolve("professional", name, active, transcript)


def resolve_service(
    name: Optional[str],
    services: Sequence[Service],
    transcript: str = "",
) -> Service:
    """Resolve a service of the tenant.

    Raises:
        ResolutionFailure: If neither the name nor the transcript identifies one.
    """
    return _resolve("service", name, services, transcript)


def find_by_id(
    record_id: Union[int, str, None], candidates: Sequence[Named]
) -> Optional[Named]:
    """Look up a record by id, accepting numeric strings."""
    if record_id is None:
        return None
    try:
        wanted = int(record_id)
    except (TypeError, ValueError):
        return None
    for candidate in candidates:
        if candidate.id == wanted:
            return candidate
    return None
