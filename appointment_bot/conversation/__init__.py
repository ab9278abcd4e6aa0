from appointment_bot.conversation.debounce import DelayedTaskScheduler
from appointment_bot.conversation.state_machine import (
    ConfirmationSignal,
    ConfirmationSignalDetector,
    ConfirmationState,
    ConfirmationStateMachine,
    SignalKind,
    TransitionTrigger,
)

__all__ = [
    "ConfirmationStateMachine",
    "ConfirmationState",
    "ConfirmationSignalDetector",
    "ConfirmationSignal",
    "SignalKind",
    "TransitionTrigger",
    "DelayedTaskScheduler",
]
