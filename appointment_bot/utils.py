"""Shared utilities used across the appointment bot."""

import re
import unicodedata
from typing import Optional


def normalize_phone(value: Optional[str]) -> str:
    """Normalize a Brazilian phone number to bare national digits.

    Strips formatting, drops the 55 country code and a leading trunk zero,
    and restores the mobile ninth digit when the channel omitted it.

    Examples:
        >>> normalize_phone("+55 (49) 99921-4230")
        '49999214230'
        >>> normalize_phone("554999214230")
        '49999214230'
        >>> normalize_phone("049 99921-4230")
        '49999214230'
    """
    if not value:
        return ""
    digits = re.sub(r"\D", "", value)

    if digits.startswith("55") and len(digits) in (12, 13):
        national = digits[2:]
        if len(digits) == 12 and national[2] == "9":
            national = national[:2] + "9" + national[2:]
        digits = national

    if len(digits) in (11, 12) and digits.startswith("0"):
        digits = digits[1:]
    return digits


def format_phone(value: Optional[str]) -> str:
    """Format a phone as ``(XX) 9XXXX-XXXX`` / ``(XX) XXXX-XXXX``.

    Numbers that are not 10 or 11 national digits are returned as bare digits.
    """
    digits = normalize_phone(value)
    if len(digits) == 11:
        return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
    if len(digits) == 10:
        return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
    return digits


def phones_match(first: Optional[str], second: Optional[str]) -> bool:
    """Compare two phone numbers ignoring formatting."""
    a, b = normalize_phone(first), normalize_phone(second)
    return bool(a) and a == b


def fold_text(value: str) -> str:
    """Lowercase and strip accents for vocabulary matching.

    >>> fold_text("Terça-Feira")
    'terca-feira'
    """
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()
