"""
Relative date resolution for conversational booking.

Maps weekday names (Portuguese or English) and "hoje/today",
"amanhã/tomorrow" to absolute calendar dates relative to a reference day.
A bare weekday never resolves to the reference day itself: "quinta" said
on a Thursday means next Thursday. Both extraction strategies resolve
weekdays through this module so their dates agree.

Usage:
    resolve("terça", date(2025, 3, 20))   # -> date(2025, 3, 25)
    resolve("amanhã", date(2025, 3, 20))  # -> date(2025, 3, 21)
"""

import re
from datetime import date, datetime, timedelta
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from appointment_bot.utils import fold_text

WEEKDAY_NAMES: dict[str, int] = {
    "segunda": 0, "terca": 1, "quarta": 2, "quinta": 3,
    "sexta": 4, "sabado": 5, "domingo": 6,
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3,
    "friday": 4, "saturday": 5, "sunday": 6,
}

RELATIVE_DAY_OFFSETS: dict[str, int] = {
    "hoje": 0, "today": 0,
    "amanha": 1, "tomorrow": 1,
}

WEEKDAY_LABELS = [
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
]

_WEEKDAY_RE = re.compile(
    r"\b(" + "|".join(WEEKDAY_NAMES) + r")(?:[\s-]?feira)?\b"
)
# "depois de amanhã" is not "amanhã"
_RELATIVE_RE = re.compile(r"(?<!depois de )\b(hoje|today|amanha|tomorrow)\b")
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?\b")


def local_now(timezone_name: str) -> datetime:
    """Current wall-clock time in the tenant's timezone."""
    return datetime.now(ZoneInfo(timezone_name))


def weekday_label(day: date) -> str:
    return WEEKDAY_LABELS[day.weekday()]


def resolve_weekday(name: str, reference: date) -> Optional[date]:
    """Resolve a weekday name to its next occurrence after ``reference``."""
    key = fold_text(name).strip().replace("-feira", "").replace(" feira", "")
    target = WEEKDAY_NAMES.get(key)
    if target is None:
        return None
    days_until = target - reference.weekday()
    if days_until <= 0:
        days_until += 7
    return reference + timedelta(days=days_until)


def resolve_relative(token: str, reference: date) -> Optional[date]:
    """Resolve today/tomorrow tokens."""
    offset = RELATIVE_DAY_OFFSETS.get(fold_text(token).strip())
    if offset is None:
        return None
    return reference + timedelta(days=offset)


def resolve(token: str, reference: date) -> Optional[date]:
    """Resolve a single weekday or relative-day token. Unknown tokens yield None."""
    return resolve_relative(token, reference) or resolve_weekday(token, reference)


def parse_numeric_date(text: str, reference: date) -> Optional[date]:
    """Parse the first ``dd/mm[/yyyy]`` date in ``text``.

    A date without a year takes the reference year, rolling to the next year
    when that would land in the past.
    """
    match = _NUMERIC_DATE_RE.search(text)
    if not match:
        return None
    day, month, year = match.groups()
    if year is None:
        year_value = reference.year
    elif len(year) == 2:
        year_value = 2000 + int(year)
    else:
        year_value = int(year)
    try:
        parsed = date(year_value, int(month), int(day))
    except ValueError:
        return None
    if year is None and parsed < reference:
        try:
            parsed = parsed.replace(year=parsed.year + 1)
        except ValueError:
            return None
    return parsed


def resolve_in_text(text: str, reference: date) -> Optional[date]:
    """Resolve the date a single message refers to, if any."""
    return resolve_in_texts([text], reference)


def resolve_in_texts(texts: Iterable[str], reference: date) -> Optional[date]:
    """
    Resolve the date referenced by a window of messages (oldest first).

    Explicit numeric dates win, then today/tomorrow, then weekday names.
    Within each kind the most recent mention wins.
    """
    window = [fold_text(t) for t in texts if t]
    for text in reversed(window):
        parsed = parse_numeric_date(text, reference)
        if parsed:
            return parsed
    for text in reversed(window):
        found = _RELATIVE_RE.findall(text)
        if found:
            return resolve_relative(found[-1], reference)
    for text in reversed(window):
        found = _WEEKDAY_RE.findall(text)
        if found:
            return resolve_weekday(found[-1], reference)
    return None


def referenced_dates(texts: Iterable[str], reference: date) -> set[date]:
    """Every date the messages mention, numeric or relative."""
    found: set[date] = set()
    for text in texts:
        folded = fold_text(text or "")
        for match in _NUMERIC_DATE_RE.finditer(folded):
            parsed = parse_numeric_date(match.group(0), reference)
            if parsed:
                found.add(parsed)
        for token in _RELATIVE_RE.findall(folded):
            found.add(resolve_relative(token, reference))
        for token in _WEEKDAY_RE.findall(folded):
            found.add(resolve_weekday(token, reference))
    return found


def has_date_reference(texts: Iterable[str]) -> bool:
    """True when any message names a weekday or today/tomorrow.

    A numeric ``dd/mm`` date alone does not count: the booking summary
    always renders one, so it says nothing about what the customer asked for.
    """
    for text in texts:
        folded = fold_text(text or "")
        if _WEEKDAY_RE.search(folded) or _RELATIVE_RE.search(folded):
            return True
    return False


def next_weekday_table(reference: date) -> list[tuple[str, date]]:
    """Each weekday label paired with its next occurrence, Monday first."""
    return [
        (label, resolve_weekday(name, reference))
        for label, name in zip(
            WEEKDAY_LABELS,
            ["segunda", "terca", "quarta", "quinta", "sexta", "sabado", "domingo"],
        )
    ]
