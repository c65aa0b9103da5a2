r"""
Shared retry / confirmation state machine for menu-style interactions.

    OFFERING --input--> EVALUATING --valid--> DONE (advance to NextRuleSet)
                                   \--invalid--> OFFERING (error message, retry)
                                                 \--max attempts--> DONE via fallback
                                                                   or TERMINATED

Configuration is read from the exported rule once per turn into a
DialogConfig. Counters that fail to parse fall back to defaults instead of
raising.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from callflow.conditions.values import is_number, to_int, to_number
from callflow.logger import logger
from callflow.settings import settings
from callflow.state import CallContext

FAILURE_NO_INPUT = "no-input"
FAILURE_NO_MATCH = "no-match"

_ERROR_MESSAGE_KEY = re.compile(r'^CurrentRule_errorMessage(\d+)$')


def flag(value: bool) -> str:
    """Booleans are stored as 'true' / 'false' strings."""
    return "true" if value else "false"


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


class DialogState(str, Enum):
    OFFERING = "offering"
    EVALUATING = "evaluating"
    DONE = "done"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class ErrorMessage:
    text: Optional[str] = None
    type: Optional[str] = None
    prompt_arn: Optional[str] = None


@dataclass
class DialogConfig:
    """
    Per-rule menu configuration.

    Attributes:
        max_attempts: CurrentRule_inputCount, default from settings
        error_count: CurrentRule_errorCount, 0 when missing or unparsable
        error_messages: attempt number -> message, from CurrentRule_errorMessage<n>
        error_rule_set: fallback after too many no-match errors ('' = none)
        no_input_rule_set: fallback after too many no-input errors ('' = none)
        auto_confirm: CurrentRule_autoConfirm == 'true'
        auto_confirm_confidence: threshold for auto confirmation
        output_state_key: attribute that receives the confirmed value
    """
    max_attempts: int = 3
    error_count: int = 0
    error_messages: Dict[int, ErrorMessage] = field(default_factory=dict)
    error_rule_set: str = ""
    no_input_rule_set: str = ""
    auto_confirm: bool = False
    auto_confirm_confidence: float = 1.0
    output_state_key: Optional[str] = None

    @classmethod
    def from_context(cls, ctx: CallContext) -> "DialogConfig":
        default_attempts = int(settings.get_nested("dialog.default_max_attempts", 3))
        default_confidence = float(settings.get_nested("nlu.default_auto_confirm_confidence", 1.0))

        messages: Dict[int, ErrorMessage] = {}
        for key in ctx:
            match = _ERROR_MESSAGE_KEY.match(key)
            if match:
                attempt = int(match.group(1))
                messages[attempt] = ErrorMessage(
                    text=ctx.get(key),
                    type=ctx.get(f"{key}Type"),
                    prompt_arn=ctx.get(f"{key}PromptArn"),
                )

        confidence = ctx.get("CurrentRule_autoConfirmConfidence")
        output_key = ctx.get("CurrentRule_outputStateKey")

        return cls(
            max_attempts=to_int(ctx.get("CurrentRule_inputCount"), default_attempts),
            error_count=to_int(ctx.get("CurrentRule_errorCount"), 0),
            error_messages=messages,
            error_rule_set=ctx.get("CurrentRule_errorRuleSetName") or "",
            no_input_rule_set=ctx.get("CurrentRule_noInputRuleSetName") or "",
            auto_confirm=str(ctx.get("CurrentRule_autoConfirm", "")).strip().lower() == "true",
            auto_confirm_confidence=to_number(confidence) if is_number(confidence) else default_confidence,
            output_state_key=output_key if not is_blank(output_key) else None,
        )

    def error_message(self, attempt: int) -> ErrorMessage:
        return self.error_messages.get(attempt, ErrorMessage())


@dataclass
class TurnOutcome:
    """Decision of one menu turn."""
    state: DialogState
    valid: bool
    done: bool
    terminate: bool
    failure_reason: Optional[str] = None
    next_rule_set: Optional[str] = None
    error_count: int = 0
    confirmation_required: bool = False
    auto_confirmed: bool = False


class DialogStateMachine:
    """
    Base class for one menu turn.

    Subclasses name their keys and implement process(); the shared success
    and failure transitions live here.
    """

    valid_key = "CurrentRule_validSelection"
    last_selection_key = ""
    event_code = ""

    def __init__(self, ctx: CallContext, config: Optional[DialogConfig] = None):
        self.ctx = ctx
        self.config = config if config is not None else DialogConfig.from_context(ctx)
        self.state = DialogState.OFFERING

    def _set_done(self, done: bool, terminate: bool) -> None:
        self.ctx.set("CurrentRule_done", flag(done))
        self.ctx.set("CurrentRule_terminate", flag(terminate))

    def succeed(self, next_rule_set: Optional[str], selection: str) -> TurnOutcome:
        """Valid input: advance to next_rule_set and remember the selection."""
        self.state = DialogState.DONE
        self.ctx.set(self.valid_key, flag(True))
        self.ctx.delete("CurrentRule_failureReason")
        if next_rule_set:
            self.ctx.set("NextRuleSet", next_rule_set)
        self._set_done(True, False)
        if self.last_selection_key:
            self.ctx.set(self.last_selection_key, selection)

        return TurnOutcome(
            state=self.state,
            valid=True,
            done=True,
            terminate=False,
            next_rule_set=next_rule_set,
            error_count=self.config.error_count,
        )

    def fail(self, reason: str, fallback_rule_set: str) -> TurnOutcome:
        """
        Invalid input: count the error, surface the error message for this
        attempt and decide between retrying, falling back and terminating.
        """
        if self.last_selection_key:
            self.ctx.delete(self.last_selection_key)

        self.config.error_count += 1
        attempt = self.config.error_count

        self.ctx.set("CurrentRule_errorCount", str(attempt))
        self.ctx.set("CurrentRule_failureReason", reason)
        self.ctx.set(self.valid_key, flag(False))

        message = self.config.error_message(attempt)
        self.ctx.set("CurrentRule_errorMessage", message.text)
        self.ctx.set("CurrentRule_errorMessageType", message.type)
        self.ctx.set("CurrentRule_errorMessagePromptArn", message.prompt_arn)

        next_rule_set = None
        if attempt < self.config.max_attempts:
            logger.info(
                "Input attempt below maximum, re-prompting",
                attempt=attempt,
                max_attempts=self.config.max_attempts,
            )
            self.state = DialogState.OFFERING
            self._set_done(False, False)
        elif is_blank(fallback_rule_set):
            logger.info("Reached maximum input attempts, terminating", reason=reason)
            self.state = DialogState.TERMINATED
            self._set_done(True, True)
        else:
            logger.info("Reached maximum input attempts, falling back", reason=reason, rule_set=fallback_rule_set)
            next_rule_set = fallback_rule_set
            self.ctx.set("NextRuleSet", next_rule_set)
            self.state = DialogState.DONE
            self._set_done(True, False)

        return TurnOutcome(
            state=self.state,
            valid=False,
            done=self.state != DialogState.OFFERING,
            terminate=self.state == DialogState.TERMINATED,
            failure_reason=reason,
            next_rule_set=next_rule_set,
            error_count=attempt,
        )

    def log_outcome(self, outcome: TurnOutcome, **extra: Any) -> None:
        logger.event(
            self.event_code,
            rule_set=self.ctx.get("CurrentRuleSet"),
            rule=self.ctx.get("CurrentRule"),
            valid=outcome.valid,
            done=outcome.done,
            terminate=outcome.terminate,
            next_rule_set=outcome.next_rule_set,
            failure_reason=outcome.failure_reason,
            **extra,
        )
