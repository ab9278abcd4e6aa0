"""
Confirmation state machine for conversational booking.

A conversation is COLLECTING until the assistant renders a field-labeled
booking summary that asks for confirmation (SUMMARY_SENT). An explicit
affirmative from the customer right after that moves it to CONFIRMED. A
correction, or a new question from the assistant, drops it back to
COLLECTING. The state is recomputed by replaying the stored message window
so every handler sees the same answer for the same history.

Usage:
    detector = ConfirmationSignalDetector()
    signal = detector.detect(messages)
    if signal and signal.kind == SignalKind.SUMMARY:
        ...  # extract from signal.summary
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

from appointment_bot.extraction.rules import has_labeled_field
from appointment_bot.schemas.conversation_schema import Message, MessageRole
from appointment_bot.utils import fold_text

logger = logging.getLogger(__name__)


class ConfirmationState(str, Enum):
    """Booking-confirmation states of a conversation."""
    COLLECTING = "collecting"
    SUMMARY_SENT = "summary_sent"
    CONFIRMED = "confirmed"


class TransitionTrigger(str, Enum):
    """Message classifications that drive transitions."""
    SUMMARY_RENDERED = "summary_rendered"
    ASSISTANT_ASKED = "assistant_asked"
    ASSISTANT_STATEMENT = "assistant_statement"
    BOOKING_ANNOUNCED = "booking_announced"
    CUSTOMER_AFFIRMED = "customer_affirmed"
    CUSTOMER_REPLIED = "customer_replied"


class SignalKind(str, Enum):
    SUMMARY = "summary"
    ANNOUNCEMENT = "announcement"


@dataclass
class Transition:
    """A single valid state transition."""
    from_state: ConfirmationState
    to_state: ConfirmationState
    trigger: TransitionTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: ConfirmationState
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


AFFIRMATIVE_PHRASES: frozenset[str] = frozenset({
    "sim", "s", "ok", "okay", "confirmo", "confirmado", "confirma", "confirmar",
    "pode confirmar", "pode agendar", "sim, confirmo", "sim confirmo", "sim, pode",
    "sim pode", "esta correto", "correto", "certo", "isso", "isso mesmo", "exato",
    "perfeito", "pode ser", "fechado", "beleza", "blz", "👍",
    "yes", "y", "yep", "yeah", "sure", "confirm", "confirmed", "yes, confirm",
    "yes confirm", "that's correct", "that is correct", "correct", "sounds good",
})

# Whole-word scan inside longer replies; single letters only count as exact replies.
_AFFIRMATIVE_RE = re.compile(
    r"(?<!\w)(?:"
    + "|".join(re.escape(p) for p in sorted(AFFIRMATIVE_PHRASES, key=len, reverse=True)
               if len(p) > 1 and p != "👍")
    + r")(?!\w)"
)
_NEGATION_RE = re.compile(
    r"\b(?:nao|not|nope|errado|incorreto|wrong|cancelar|cancel|mudar|alterar|trocar|change)\b"
)

_CONFIRMATION_REQUEST_RE = re.compile(
    r"esta(?:o)? (?:tudo )?corret|esta (?:tudo )?certo|confirma|responda sim|digite sim|"
    r"is (?:this|that|everything) correct|reply yes|confirm\b"
)
_ANNOUNCEMENT_RE = re.compile(
    r"agendamento (?:confirmado|realizado|criado)|agendado com sucesso|foi agendad|"
    r"booking confirmed|appointment (?:confirmed|booked)|you are booked|you're booked"
)
_INTERROGATIVE_RE = re.compile(
    r"^(?:qual|quais|quando|que horas|como|onde|quem|prefere|gostaria|poderia|pode me|"
    r"what|which|when|who|how|where|would you|could you|can you)\b"
)
_SUMMARY_FIELDS = ("name", "date", "time")


def normalize_reply(text: str) -> str:
    """Trim, case-fold and strip accents and trailing punctuation."""
    return fold_text(text).strip().strip(".!").strip()


def is_affirmative(text: str) -> bool:
    """Exact phrase match, or whole-word match inside a reply without negation."""
    reply = normalize_reply(text)
    if not reply:
        return False
    if reply in AFFIRMATIVE_PHRASES:
        return True
    if _NEGATION_RE.search(reply):
        return False
    return bool(_AFFIRMATIVE_RE.search(reply))


def is_booking_summary(text: str) -> bool:
    """Labeled name, date and time fields plus a request for confirmation."""
    if not all(has_labeled_field(text, f) for f in _SUMMARY_FIELDS):
        return False
    return bool(_CONFIRMATION_REQUEST_RE.search(fold_text(text)))


def is_booking_announcement(text: str) -> bool:
    """The assistant states that the booking was made (no question pending)."""
    return "?" not in text and bool(_ANNOUNCEMENT_RE.search(fold_text(text)))


def asks_question(text: str) -> bool:
    if "?" in text:
        return True
    return any(_INTERROGATIVE_RE.search(line.strip()) for line in fold_text(text).splitlines())


def classify(message: Message) -> TransitionTrigger:
    """Map a stored message to the trigger it fires."""
    if message.role == MessageRole.CUSTOMER:
        if is_affirmative(message.content):
            return TransitionTrigger.CUSTOMER_AFFIRMED
        return TransitionTrigger.CUSTOMER_REPLIED
    if is_booking_announcement(message.content):
        return TransitionTrigger.BOOKING_ANNOUNCED
    if is_booking_summary(message.content):
        return TransitionTrigger.SUMMARY_RENDERED
    if asks_question(message.content):
        return TransitionTrigger.ASSISTANT_ASKED
    return TransitionTrigger.ASSISTANT_STATEMENT


class ConfirmationStateMachine:
    """
    Deterministic state machine over the message stream of one conversation.

    Every transition must be explicitly defined; assistant statements that
    neither summarize, ask, nor announce leave the state unchanged.
    """

    TRANSITIONS: list[Transition] = [
        # --- Collecting ---
        Transition(ConfirmationState.COLLECTING, ConfirmationState.SUMMARY_SENT,
                   TransitionTrigger.SUMMARY_RENDERED),
        Transition(ConfirmationState.COLLECTING, ConfirmationState.COLLECTING,
                   TransitionTrigger.ASSISTANT_ASKED),
        Transition(ConfirmationState.COLLECTING, ConfirmationState.COLLECTING,
                   TransitionTrigger.BOOKING_ANNOUNCED),
        Transition(ConfirmationState.COLLECTING, ConfirmationState.COLLECTING,
                   TransitionTrigger.CUSTOMER_AFFIRMED),
        Transition(ConfirmationState.COLLECTING, ConfirmationState.COLLECTING,
                   TransitionTrigger.CUSTOMER_REPLIED),

        # --- Summary rendered, waiting for the customer ---
        Transition(ConfirmationState.SUMMARY_SENT, ConfirmationState.SUMMARY_SENT,
                   TransitionTrigger.SUMMARY_RENDERED),
        Transition(ConfirmationState.SUMMARY_SENT, ConfirmationState.CONFIRMED,
                   TransitionTrigger.CUSTOMER_AFFIRMED),
        Transition(ConfirmationState.SUMMARY_SENT, ConfirmationState.COLLECTING,
                   TransitionTrigger.CUSTOMER_REPLIED),
        Transition(ConfirmationState.SUMMARY_SENT, ConfirmationState.COLLECTING,
                   TransitionTrigger.ASSISTANT_ASKED),
        Transition(ConfirmationState.SUMMARY_SENT, ConfirmationState.COLLECTING,
                   TransitionTrigger.BOOKING_ANNOUNCED),

        # --- Confirmed ---
        Transition(ConfirmationState.CONFIRMED, ConfirmationState.CONFIRMED,
                   TransitionTrigger.CUSTOMER_AFFIRMED),
        Transition(ConfirmationState.CONFIRMED, ConfirmationState.COLLECTING,
                   TransitionTrigger.CUSTOMER_REPLIED),
        Transition(ConfirmationState.CONFIRMED, ConfirmationState.COLLECTING,
                   TransitionTrigger.BOOKING_ANNOUNCED),
        Transition(ConfirmationState.CONFIRMED, ConfirmationState.COLLECTING,
                   TransitionTrigger.ASSISTANT_ASKED),
        Transition(ConfirmationState.CONFIRMED, ConfirmationState.SUMMARY_SENT,
                   TransitionTrigger.SUMMARY_RENDERED),
    ]

    def __init__(self) -> None:
        self._current_state = ConfirmationState.COLLECTING
        self._history: list[StateEntry] = [
            StateEntry(state=ConfirmationState.COLLECTING, entered_at=datetime.now(timezone.utc))
        ]
        self.summary: Optional[Message] = None

    @property
    def current_state(self) -> ConfirmationState:
        return self._current_state

    def transition(self, trigger: TransitionTrigger) -> ConfirmationState:
        """
        Execute a state transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        if trigger == TransitionTrigger.ASSISTANT_STATEMENT:
            return self._current_state

        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "Confirmation transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def feed(self, message: Message) -> ConfirmationState:
        """Classify a message and apply the transition it fires."""
        trigger = classify(message)
        state = self.transition(trigger)
        if trigger == TransitionTrigger.SUMMARY_RENDERED:
            self.summary = message
        elif state == ConfirmationState.COLLECTING:
            self.summary = None
        return state

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]


@dataclass
class ConfirmationSignal:
    """A detected booking confirmation and the messages it rests on."""
    kind: SignalKind
    confirmation: Message
    summary: Optional[Message] = None
    trace: list[str] = field(default_factory=list)


class ConfirmationSignalDetector:
    """Replays a conversation window and reports a confirmation signal, if any."""

    def replay(self, messages: Sequence[Message]) -> ConfirmationStateMachine:
        machine = ConfirmationStateMachine()
        for message in messages:
            machine.feed(message)
        return machine

    def detect(self, messages: Sequence[Message]) -> Optional[ConfirmationSignal]:
        """
        Return a SUMMARY signal when the latest customer message confirms a
        rendered summary, or an ANNOUNCEMENT signal when the assistant
        announced a booking right after an affirmative reply without any
        summary in force.
        """
        if not messages:
            return None
        last = messages[-1]

        if last.role == MessageRole.CUSTOMER:
            machine = self.replay(messages)
            if machine.current_state == ConfirmationState.CONFIRMED and machine.summary:
                return ConfirmationSignal(
                    kind=SignalKind.SUMMARY,
                    confirmation=last,
                    summary=machine.summary,
                    trace=machine.get_state_trace(),
                )
            return None

        if len(messages) < 2 or not is_booking_announcement(last.content):
            return None
        previous = messages[-2]
        if previous.role != MessageRole.CUSTOMER or not is_affirmative(previous.content):
            return None
        machine = self.replay(messages[:-2])
        if machine.current_state != ConfirmationState.COLLECTING:
            return None
        return ConfirmationSignal(
            kind=SignalKind.ANNOUNCEMENT,
            confirmation=previous,
            trace=machine.get_state_trace(),
        )
