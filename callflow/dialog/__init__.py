"""
Menu dialog state machines: keypress, keypad input, NLU intent and slot input.
"""

from callflow.dialog.base import (
    DialogConfig,
    DialogState,
    DialogStateMachine,
    ErrorMessage,
    FAILURE_NO_INPUT,
    FAILURE_NO_MATCH,
    TurnOutcome,
    flag,
)
from callflow.dialog.keypad_input import KeypadInput, validate_input
from callflow.dialog.keypress import DTMF_KEYS, KeypressMenu, key_mapping, normalise_key
from callflow.dialog.nlu import NLUMenu
from callflow.dialog.slot import SlotInput

__all__ = [
    "DialogConfig",
    "DialogState",
    "DialogStateMachine",
    "ErrorMessage",
    "FAILURE_NO_INPUT",
    "FAILURE_NO_MATCH",
    "TurnOutcome",
    "flag",
    "KeypadInput",
    "validate_input",
    "DTMF_KEYS",
    "KeypressMenu",
    "key_mapping",
    "normalise_key",
    "NLUMenu",
    "SlotInput",
]
