"""
Natural-language menu.

The recognizer reports an intent and a confidence. An intent is valid when
the exported rule maps it to a ruleset (CurrentRule_intentRuleSet_<Intent>).
Valid intents are either auto-confirmed, when enabled and confident enough,
or confirmed by the caller through a yes/no recognizer on the next turn.
"""

from typing import Any, Optional

from callflow.conditions.values import is_number, to_number
from callflow.dialog.base import (
    DialogConfig,
    DialogStateMachine,
    DialogState,
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

CONFIRMATION_MESSAGE_KEY = "CurrentRule_confirmationMessageFinal"


class NLUMenu(DialogStateMachine):
    """
    One NLU menu turn.

    Example:
        menu = NLUMenu(ctx, bot_registry=bots, prompt_resolver=prompts)
        outcome = menu.process("TechnicalSupport", "0.92")
        outcome.auto_confirmed  # True when confidence reached the threshold
    """

    valid_key = "CurrentRule_validInput"
    last_selection_key = "System.LastNLUMenuIntent"
    event_code = "NLU_MENU_SELECTION"

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
        self.fallback_intent = settings.get_nested("dialog.fallback_intent", "FallbackIntent")

    def destination(self, intent: str) -> Optional[str]:
        value = self.ctx.get(f"CurrentRule_intentRuleSet_{intent}")
        return None if is_blank(value) else value

    def yes_no_bot(self) -> str:
        """
        Identifier of the yes/no recognizer.

        Raises:
            ConfigurationError: If the registry does not know it
        """
        name = settings.get_nested("nlu.yes_no_bot", "yesno")
        bot = self.bot_registry.lookup(name) if self.bot_registry is not None else None
        if bot is None:
            raise ConfigurationError(f"Failed to locate yes no bot: {name}", reference=name)
        return bot

    def _clear_success_outputs(self) -> None:
        self.ctx.delete("CurrentRule_errorMessage")
        self.ctx.delete("CurrentRule_errorMessagePromptArn")
        self.ctx.set("CurrentRule_errorMessageType", "none")

    def process(self, intent: Optional[str], confidence: Any) -> TurnOutcome:
        self.state = DialogState.EVALUATING
        intent = (intent or "").strip()
        confidence_text = "" if confidence is None else str(confidence).strip()

        self.ctx.set("CurrentRule_matchedIntent", intent)
        self.ctx.set("CurrentRule_matchedIntentConfidence", confidence_text or "0")

        destination = self.destination(intent) if intent else None
        invalid = (
            not intent
            or intent == self.fallback_intent
            or not is_number(confidence_text)
            or destination is None
        )

        if invalid:
            logger.warning("Invalid intent", intent=intent, confidence=confidence_text)
            outcome = self._invalid()
        elif self.config.auto_confirm and to_number(confidence_text) >= self.config.auto_confirm_confidence:
            outcome = self._auto_confirm(intent, destination)
        else:
            outcome = self._request_confirmation(intent)

        self.log_outcome(outcome, intent=intent, confidence=confidence_text)
        return outcome

    def _invalid(self) -> TurnOutcome:
        self.ctx.set("CurrentRule_autoConfirmNow", flag(False))
        self.ctx.set("CurrentRule_confirmationRequired", flag(False))
        self.ctx.delete("CurrentRule_yesNoBotArn")
        self.ctx.delete(CONFIRMATION_MESSAGE_KEY)
        self.ctx.delete(f"{CONFIRMATION_MESSAGE_KEY}Type")
        self.ctx.delete(f"{CONFIRMATION_MESSAGE_KEY}PromptArn")
        return self.fail(FAILURE_NO_MATCH, self.config.error_rule_set)

    def _commit(self, intent: str, destination: str) -> TurnOutcome:
        if self.config.output_state_key:
            self.ctx.set(self.config.output_state_key, intent)
        self._clear_success_outputs()
        self.ctx.set("CurrentRule_confirmationRequired", flag(False))
        return self.succeed(destination, intent)

    def _auto_confirm(self, intent: str, destination: str) -> TurnOutcome:
        logger.info(
            "Auto confirming intent",
            intent=intent,
            threshold=self.config.auto_confirm_confidence,
        )
        self.ctx.set("CurrentRule_autoConfirmNow", flag(True))
        outcome = self._commit(intent, destination)

        message = template(self.ctx.get("CurrentRule_autoConfirmMessage"), self.ctx)
        write_message(self.ctx, CONFIRMATION_MESSAGE_KEY, message, self.prompt_resolver)

        outcome.auto_confirmed = True
        return outcome

    def _request_confirmation(self, intent: str) -> TurnOutcome:
        bot = self.yes_no_bot()
        logger.info("Requesting intent confirmation", intent=intent)

        self.ctx.set("CurrentRule_yesNoBotArn", bot)
        self.ctx.set("CurrentRule_autoConfirmNow", flag(False))
        self.ctx.set("CurrentRule_confirmationRequired", flag(True))
        self.ctx.set(self.valid_key, flag(True))
        self.ctx.delete("CurrentRule_failureReason")
        self.ctx.delete(self.last_selection_key)
        self._clear_success_outputs()

        scratch = self.ctx.clone()
        if self.config.output_state_key:
            scratch.set(self.config.output_state_key, intent)
        message = template(self.ctx.get(f"CurrentRule_intentConfirmationMessage_{intent}"), scratch)
        write_message(self.ctx, CONFIRMATION_MESSAGE_KEY, message, self.prompt_resolver)

        self.state = DialogState.OFFERING
        self._set_done(False, False)
        return TurnOutcome(
            state=self.state,
            valid=True,
            done=False,
            terminate=False,
            error_count=self.config.error_count,
            confirmation_required=True,
        )

    def confirm(self, answer_intent: Optional[str]) -> TurnOutcome:
        """
        Process the caller's answer to a confirmation question.

        The intent awaiting confirmation is CurrentRule_matchedIntent. A yes
        commits it; anything else counts as an error and re-offers the menu.
        """
        self.state = DialogState.EVALUATING
        pending = self.ctx.get("CurrentRule_matchedIntent")
        confirm_intent = settings.get_nested("nlu.confirm_intent", "Yes")
        answer = (answer_intent or "").strip()

        destination = self.destination(pending) if pending else None

        if answer == confirm_intent and destination is not None:
            self.ctx.set("CurrentRule_autoConfirmNow", flag(False))
            self.ctx.delete("CurrentRule_yesNoBotArn")
            outcome = self._commit(pending, destination)
        else:
            logger.info("Confirmation declined", intent=pending, answer=answer)
            outcome = self._invalid()

        self.log_outcome(outcome, intent=pending, confirmation=answer)
        return outcome
