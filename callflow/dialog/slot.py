"""
Slot-filling input (spoken account numbers, dates, amounts...).

The recognizer answers with a pseudo intent: "intentdata" with a slot value
when it captured something, "nodata" when the caller said nothing usable.
Captured values are confirmed the same way as NLU menu intents, except the
value itself is written to the output attribute.
"""

from typing import Any, Optional

from callflow.conditions.values import is_number, to_number
from callflow.dialog.base import (
    DialogConfig,
    DialogStateMachine,
    DialogState,
    FAILURE_NO_INPUT,
    FAILURE_NO_MATCH,
    TurnOutcome,
    flag,
    is_blank,
)
from callflow.errors import ConfigurationError
from callflow.logger import logger
from callflow.rules.templater import template, write_message
from callflow.settings import settings
from callflow.state import CallContext

INTENT_NO_DATA = "nodata"
INTENT_DATA = "intentdata"

CONFIRMATION_MESSAGE_KEY = "CurrentRule_confirmationMessageFinal"


class SlotInput(DialogStateMachine):

    valid_key = "CurrentRule_validInput"
    last_selection_key = "System.LastNLUInputSlot"
    event_code = "NLU_INPUT"

    def __init__(
        self,
        ctx: CallContext,
        bot_registry=None,
        prompt_resolver=None,
        config: Optional[DialogConfig] = None
    ):
        super().__init__(ctx, config)
        self.bot_registry = bot_registry
        self.prompt_resolver = prompt_resolver

    def process(self, matched_intent: Optional[str], confidence: Any, slot_value: Optional[str]) -> TurnOutcome:
        self.state = DialogState.EVALUATING
        matched_intent = (matched_intent or "").strip()
        slot_value = "" if slot_value is None else str(slot_value).strip()

        if matched_intent == INTENT_NO_DATA and not is_blank(self.config.no_input_rule_set):
            outcome = self._no_input()
        elif matched_intent == INTENT_DATA and slot_value:
            self.ctx.set(self.valid_key, flag(True))
            self.ctx.delete("CurrentRule_failureReason")
            confident = is_number(confidence) and to_number(confidence) >= self.config.auto_confirm_confidence
            if self.config.auto_confirm and confident:
                outcome = self._auto_confirm(slot_value)
            else:
                outcome = self._manual_confirm(slot_value)
        else:
            logger.warning("No slot value received", data_type=self.ctx.get("CurrentRule_dataType"))
            reason = FAILURE_NO_INPUT if matched_intent == INTENT_NO_DATA else FAILURE_NO_MATCH
            outcome = self.fail(reason, self.config.error_rule_set)

        self.log_outcome(outcome, data_type=self.ctx.get("CurrentRule_dataType"), confidence=confidence)
        return outcome

    def _no_input(self) -> TurnOutcome:
        destination = self.config.no_input_rule_set
        logger.info("No input, directing to no input ruleset", rule_set=destination)

        self.ctx.delete("CurrentRule_slotValue")
        if self.config.output_state_key:
            self.ctx.delete(self.config.output_state_key)
        self.ctx.set(self.valid_key, flag(False))
        self.ctx.set("CurrentRule_failureReason", FAILURE_NO_INPUT)
        self.ctx.set("NextRuleSet", destination)
        self._set_done(True, False)
        self.ctx.set("CurrentRule_errorMessage", "")
        self.ctx.set("CurrentRule_errorMessageType", "none")
        self.ctx.delete(self.last_selection_key)

        self.state = DialogState.DONE
        return TurnOutcome(
            state=self.state,
            valid=False,
            done=True,
            terminate=False,
            failure_reason=FAILURE_NO_INPUT,
            next_rule_set=destination,
            error_count=self.config.error_count,
        )

    def _accept(self, slot_value: str, auto_confirmed: bool) -> TurnOutcome:
        self.ctx.set("CurrentRule_slotValue", slot_value)
        self.ctx.set("CurrentRule_autoConfirmNow", flag(auto_confirmed))
        self._set_done(True, False)
        self.ctx.set(self.last_selection_key, slot_value)

        self.state = DialogState.DONE
        return TurnOutcome(
            state=self.state,
            valid=True,
            done=True,
            terminate=False,
            error_count=self.config.error_count,
            confirmation_required=not auto_confirmed,
            auto_confirmed=auto_confirmed,
        )

    def _auto_confirm(self, slot_value: str) -> TurnOutcome:
        if self.config.output_state_key:
            self.ctx.set(self.config.output_state_key, slot_value)

        message = template(self.ctx.get("CurrentRule_autoConfirmMessage"), self.ctx)
        write_message(self.ctx, CONFIRMATION_MESSAGE_KEY, message, self.prompt_resolver)
        return self._accept(slot_value, auto_confirmed=True)

    def _manual_confirm(self, slot_value: str) -> TurnOutcome:
        name = settings.get_nested("nlu.yes_no_bot", "yesno")
        bot = self.bot_registry.lookup(name) if self.bot_registry is not None else None
        if bot is None:
            raise ConfigurationError(f"Failed to locate yes no bot: {name}", reference=name)
        self.ctx.set("CurrentRule_yesNoBotArn", bot)

        scratch = self.ctx.clone()
        if self.config.output_state_key:
            scratch.set(self.config.output_state_key, slot_value)
        message = template(self.ctx.get("CurrentRule_confirmationMessage"), scratch)
        write_message(self.ctx, CONFIRMATION_MESSAGE_KEY, message, self.prompt_resolver)
        return self._accept(slot_value, auto_confirmed=False)
