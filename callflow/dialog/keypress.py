"""
Keypress (DTMF) menu.

The exported rule maps keys to rulesets as CurrentRule_dtmf<key>, for keys
0-9, Star, Pound and Plus. A key with a mapping is a valid selection; the
timeout marker is a no-input failure and anything else is a no-match.
"""

from typing import Dict, Optional

from callflow.dialog.base import (
    DialogConfig,
    DialogStateMachine,
    DialogState,
    FAILURE_NO_INPUT,
    FAILURE_NO_MATCH,
    TurnOutcome,
)
from callflow.logger import logger
from callflow.settings import settings
from callflow.state import CallContext

DTMF_KEYS = tuple(str(d) for d in range(10)) + ("Star", "Pound", "Plus")

SYMBOL_NAMES = {
    "*": "Star",
    "#": "Pound",
    "+": "Plus",
}


def normalise_key(selected_option: str) -> str:
    """'*' -> 'Star', '#' -> 'Pound', '+' -> 'Plus', anything else unchanged."""
    value = selected_option.strip() if isinstance(selected_option, str) else str(selected_option)
    return SYMBOL_NAMES.get(value, value)


def key_mapping(ctx: CallContext) -> Dict[str, str]:
    """Configured key -> ruleset name, for the keys a keypad can produce."""
    mapping = {}
    for key in DTMF_KEYS:
        destination = ctx.get(f"CurrentRule_dtmf{key}")
        if destination:
            mapping[key] = destination
    return mapping


class KeypressMenu(DialogStateMachine):
    """
    One keypress menu turn.

    Example:
        menu = KeypressMenu(ctx)
        outcome = menu.process("1")
        outcome.next_rule_set  # "Sales"
    """

    valid_key = "CurrentRule_validSelection"
    last_selection_key = "System.LastSelectedDTMF"
    event_code = "DTMF_MENU_SELECTION"

    def __init__(self, ctx: CallContext, config: Optional[DialogConfig] = None):
        super().__init__(ctx, config)
        self.mapping = key_mapping(ctx)
        self.no_input_marker = settings.get_nested("dialog.no_input_marker", "Timeout")

    def process(self, selected_option: str) -> TurnOutcome:
        self.state = DialogState.EVALUATING
        selection = normalise_key(selected_option)
        logger.info("Processing keypress", raw=selected_option, selection=selection)

        destination = self.mapping.get(selection)
        if destination is not None:
            outcome = self.succeed(destination, selection)
        elif selection == self.no_input_marker:
            outcome = self.fail(FAILURE_NO_INPUT, self.config.no_input_rule_set)
        else:
            outcome = self.fail(FAILURE_NO_MATCH, self.config.error_rule_set)

        self.log_outcome(outcome, selection=selection)
        return outcome
