"""
Named extraction rules for pulling booking fields out of free text.

Each rule is a small tagged variant with a ``match(text)`` method that
returns the extracted value or None. ``first_match`` runs an ordered
cascade of rules over an ordered list of sources and stops at the first
success, so every step of the cascade can be tested on its own.

    LabeledField        "Nome: Maria Silva", "📅 20/03/2025"
    CapitalizedNamePair "Maria Silva" inside a free-text reply
    KnownEntityScan     a known professional/service name mentioned in text
    ValuePattern        a regex plus converter (times, phones, introductions)
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, Union

from appointment_bot.schemas.conversation_schema import MessageRole
from appointment_bot.utils import fold_text, format_phone

FIELD_LABELS: dict[str, tuple[str, ...]] = {
    "name": ("nome do cliente", "nome", "cliente", "client name", "name", "client"),
    "professional": ("profissional", "professional", "atendente"),
    "service": ("serviço", "servico", "procedimento", "service"),
    "date": ("data", "date", "dia"),
    "time": ("horário", "horario", "hora", "time"),
    "phone": ("telefone", "celular", "whatsapp", "phone", "contato"),
}

FIELD_EMOJIS: dict[str, tuple[str, ...]] = {
    "name": ("👤", "🙋"),
    "professional": (
        "💇‍♀️", "💇‍♂️", "💇", "👩‍💼", "👨‍💼", "🧑‍💼", "👩‍⚕️", "👨‍⚕️", "🧑‍⚕️",
    ),
    "service": ("✂️", "✂", "💅", "💆", "🛎️"),
    "date": ("📅", "🗓️", "🗓", "📆"),
    "time": (
        "⏰", "🕐", "🕑", "🕒", "🕓", "🕔", "🕕", "🕖", "🕗", "🕘", "🕙", "🕚", "🕛", "⌚",
    ),
    "phone": ("📱", "📞", "☎️", "☎"),
}

# Words that start a capitalized run but are never part of a customer's name.
NAME_STOPWORDS: frozenset[str] = frozenset({
    "oi", "ola", "bom", "boa", "dia", "tarde", "noite", "obrigado", "obrigada", "sim",
    "nao", "ok", "hoje", "amanha", "segunda", "terca", "quarta", "quinta", "sexta",
    "sabado", "domingo", "feira", "janeiro", "fevereiro", "marco", "abril", "maio",
    "junho", "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
    "hello", "hi", "thanks", "yes", "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday", "today", "tomorrow", "nome", "data", "horario",
    "servico", "profissional", "telefone", "quero", "gostaria", "pode", "perfeito",
    "agendamento", "confirmado", "cliente", "whatsapp", "i", "my", "the",
})

_NAME_CONNECTORS = {"da", "de", "do", "das", "dos", "e"}
_CAPITALIZED_RUN_RE = re.compile(
    r"\b[A-ZÀ-Ý][a-zà-ÿ'’]+(?:\s+(?:(?:d[aeo]s?|e)\s+)?[A-ZÀ-Ý][a-zà-ÿ'’]+)+"
)

_VALUE_END = r"(?=\s*(?:$|\n|\||;|,\s*[\wÀ-ÿ ]{2,20}\s*:))"


def _alternation(options: Sequence[str]) -> str:
    return "|".join(re.escape(o) for o in sorted(options, key=len, reverse=True))


def _labeled_pattern(field_name: str) -> re.Pattern[str]:
    emoji = _alternation(FIELD_EMOJIS[field_name])
    label = _alternation(FIELD_LABELS[field_name])
    return re.compile(
        r"(?:^|(?<=[\s|;,(]))[*_]*"
        rf"(?:(?:{emoji})\ufe0f?[ \t*_]*(?:(?:{label})\b[ \t*_]*:?)?|(?:{label})[ \t*_]*:)"
        rf"[ \t*_]*(?P<value>[^\n|;]*?){_VALUE_END}",
        re.IGNORECASE | re.MULTILINE,
    )


_LABELED_PATTERNS: dict[str, re.Pattern[str]] = {
    name: _labeled_pattern(name) for name in FIELD_LABELS
}

TIME_RE = re.compile(
    r"\b(?:"
    r"(?P<h12>1[0-2]|0?[1-9])(?::(?P<m12>[0-5]\d))?\s*(?P<ampm>[ap])\.?m\.?"
    r"|(?P<h>[01]?\d|2[0-3])(?::(?P<m>[0-5]\d)|h(?P<mh>[0-5]\d)?|\s*(?:horas|hrs)\b)"
    r")(?!\w)",
    re.IGNORECASE,
)
PHONE_RE = re.compile(r"(?<!\d)(?:\+?55[\s-]?)?\(?\d{2}\)?[\s-]?9?\d{4}[\s-]?\d{4}(?!\d)")
SELF_INTRODUCTION_RE = re.compile(
    r"(?i:meu nome (?:e|é)|me chamo|my name is|aqui (?:e|é) (?:a|o)|sou (?:a|o))\s+"
    r"(?P<name>[A-ZÀ-Ý][a-zà-ÿ'’]+(?:\s+(?:(?:d[aeo]s?|e)\s+)?[A-ZÀ-Ý][a-zà-ÿ'’]+){0,3})"
)


def clean_value(value: str) -> str:
    return re.sub(r"\s+", " ", value.strip().strip("*_").strip())


def labeled_value(text: str, field_name: str) -> Optional[str]:
    """Value of the last labeled occurrence of ``field_name`` in ``text``."""
    values = [
        clean_value(m.group("value"))
        for m in _LABELED_PATTERNS[field_name].finditer(text)
    ]
    values = [v for v in values if v]
    return values[-1] if values else None


def has_labeled_field(text: str, field_name: str) -> bool:
    return labeled_value(text, field_name) is not None


def normalize_time(match: re.Match[str]) -> Optional[str]:
    """Convert a TIME_RE match to ``HH:MM``."""
    if match.group("h12"):
        hour = int(match.group("h12")) % 12
        if match.group("ampm").lower() == "p":
            hour += 12
        minute = int(match.group("m12") or 0)
    else:
        hour = int(match.group("h"))
        minute = int(match.group("m") or match.group("mh") or 0)
    return f"{hour:02d}:{minute:02d}"


def normalize_phone_match(match: re.Match[str]) -> Optional[str]:
    formatted = format_phone(match.group(0))
    return formatted or None


def normalize_introduced_name(match: re.Match[str]) -> Optional[str]:
    return clean_value(match.group("name"))


@dataclass(frozen=True)
class RuleMatch:
    """A successful rule application and where it came from."""
    value: str
    rule: str
    role: Optional[MessageRole] = None


@dataclass(frozen=True)
class LabeledField:
    """``Label: value`` or ``<emoji> value`` lines for one field."""
    field_name: str
    name: str = "labeled_field"

    def match(self, text: str) -> Optional[str]:
        return labeled_value(text, self.field_name)


@dataclass(frozen=True)
class CapitalizedNamePair:
    """Two to four capitalized words, skipping greetings and calendar words."""
    stopwords: frozenset[str] = NAME_STOPWORDS
    name: str = "capitalized_name_pair"

    def match(self, text: str) -> Optional[str]:
        for run in _CAPITALIZED_RUN_RE.finditer(text):
            for words in self._segments(run.group(0).split()):
                significant = [w for w in words if w.lower() not in _NAME_CONNECTORS]
                if 2 <= len(significant) <= 4:
                    return " ".join(words)
        return None

    def _segments(self, words: list[str]) -> list[list[str]]:
        """Split a run at stopwords, trimming dangling connectors."""
        segments: list[list[str]] = [[]]
        for word in words:
            if fold_text(word) in self.stopwords:
                segments.append([])
            else:
                segments[-1].append(word)
        trimmed = []
        for segment in segments:
            while segment and segment[0].lower() in _NAME_CONNECTORS:
                segment = segment[1:]
            while segment and segment[-1].lower() in _NAME_CONNECTORS:
                segment = segment[:-1]
            if segment:
                trimmed.append(segment)
        return trimmed


@dataclass(frozen=True)
class KnownEntityScan:
    """
    Find a known name mentioned in the text.

    Exact whole-phrase mentions win (the latest one in the text); otherwise
    a single unambiguous partial mention (one significant word of a known
    name) is accepted.
    """
    known: tuple[str, ...]
    name: str = "known_entity_scan"

    def match(self, text: str) -> Optional[str]:
        folded = fold_text(text)
        exact: list[tuple[int, str]] = []
        for candidate in self.known:
            key = fold_text(candidate).strip()
            if not key:
                continue
            for found in re.finditer(rf"(?<!\w){re.escape(key)}(?!\w)", folded):
                exact.append((found.start(), candidate))
        if exact:
            return max(exact)[1]

        partial = {
            candidate
            for candidate in self.known
            for word in fold_text(candidate).split()
            if len(word) >= 3 and re.search(rf"(?<!\w){re.escape(word)}(?!\w)", folded)
        }
        if len(partial) == 1:
            return partial.pop()
        return None


@dataclass(frozen=True)
class ValuePattern:
    """A regex whose last match in the text is converted to a field value."""
    name: str
    pattern: re.Pattern[str]
    convert: Callable[[re.Match[str]], Optional[str]] = field(compare=False)

    def match(self, text: str) -> Optional[str]:
        matches = list(self.pattern.finditer(text))
        for found in reversed(matches):
            value = self.convert(found)
            if value:
                return value
        return None


ExtractionRule = Union[LabeledField, CapitalizedNamePair, KnownEntityScan, ValuePattern]

TIME_PATTERN = ValuePattern("time_pattern", TIME_RE, normalize_time)
PHONE_PATTERN = ValuePattern("phone_pattern", PHONE_RE, normalize_phone_match)
SELF_INTRODUCTION = ValuePattern(
    "self_introduction", SELF_INTRODUCTION_RE, normalize_introduced_name
)


def first_match(
    rules: Sequence[ExtractionRule],
    sources: Sequence[tuple[Optional[MessageRole], str]],
) -> Optional[RuleMatch]:
    """Apply ``rules`` in priority order over ``sources``; first success wins."""
    for rule in rules:
        for role, text in sources:
            if not text:
                continue
            value = rule.match(text)
            if value:
                return RuleMatch(value=value, rule=rule.name, role=role)
    return None
