"""
Keypad data entry (account numbers, phone numbers, dates, card expiry).

The caller types digits. The exported rule bounds the length
(CurrentRule_minLength / CurrentRule_maxLength) and names a data type
(CurrentRule_dataType). Valid input is read back through
CurrentRule_confirmationMessage and stored in the output attribute once the
caller presses the confirm key; an empty confirmation message stores it
straight away.

Data types:
- Number: digits only
- Phone: ten digits starting with 0
- Date: DDMMYYYY, must be a real calendar date
- CreditCardExpiry: MMYY, not before the current month
"""

import re
from datetime import date, datetime
from typing import Callable, Dict, Optional

from callflow.conditions.values import is_number, to_int
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

DATA_TYPE_NUMBER = "Number"
DATA_TYPE_PHONE = "Phone"
DATA_TYPE_DATE = "Date"
DATA_TYPE_CREDIT_CARD_EXPIRY = "CreditCardExpiry"

CONFIRMATION_MESSAGE_KEY = "CurrentRule_confirmationMessageFinal"
INPUT_KEY = "CurrentRule_input"

_DIGITS = re.compile(r'^[0-9]*$')
_PHONE = re.compile(r'^0[0-9]{9}$')
_DATE = re.compile(r'^[0-3][0-9][0-1][0-9][1-2][0-9]{3}$')


def is_valid_number(value: str, today: date) -> bool:
    return _DIGITS.match(value) is not None


def is_valid_phone(value: str, today: date) -> bool:
    return _PHONE.match(value) is not None


def is_valid_date(value: str, today: date) -> bool:
    if _DATE.match(value) is None:
        return False
    try:
        datetime.strptime(value, "%d%m%Y")
    except ValueError:
        return False
    return True


def is_valid_expiry(value: str, today: date) -> bool:
    """MMYY card expiry; the current month is still valid."""
    if len(value) != 4 or _DIGITS.match(value) is None:
        return False
    month = int(value[:2])
    year = int(value[2:])
    if month < 1 or month > 12:
        return False
    current_year = today.year % 100
    if year < current_year:
        return False
    return not (year == current_year and month < today.month)


VALIDATORS: Dict[str, Callable[[str, date], bool]] = {
    DATA_TYPE_NUMBER: is_valid_number,
    DATA_TYPE_PHONE: is_valid_phone,
    DATA_TYPE_DATE: is_valid_date,
    DATA_TYPE_CREDIT_CARD_EXPIRY: is_valid_expiry,
}


def _bound(value) -> Optional[int]:
    return to_int(value, 0) if is_number(value) else None


def validate_input(
    value: str,
    data_type: Optional[str],
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
    today: Optional[date] = None
) -> bool:
    """
    Check typed digits against the length bounds and the data type.

    A blank data type only checks the length.

    Raises:
        ConfigurationError: If the data type is not known
    """
    if min_length is not None and len(value) < min_length:
        return False
    if max_length is not None and len(value) > max_length:
        return False
    if is_blank(data_type):
        return True

    validator = VALIDATORS.get(data_type.strip())
    if validator is None:
        raise ConfigurationError(f"Unhandled keypad input data type: {data_type}", reference=data_type)
    return validator(value, today or date.today())


class KeypadInput(DialogStateMachine):
    """
    One keypad data-entry turn.

    Example:
        entry = KeypadInput(ctx, prompt_resolver=prompts)
        outcome = entry.process("0412345678")
        outcome.confirmation_required  # True when there is a message to read back
        entry.confirm("1")
    """

    valid_key = "CurrentRule_validInput"
    event_code = "DTMF_INPUT"

    def __init__(self, ctx: CallContext, prompt_resolver=None, config: Optional[DialogConfig] = None):
        super().__init__(ctx, config)
        self.prompt_resolver = prompt_resolver
        self.no_input_marker = settings.get_nested("dialog.no_input_marker", "Timeout")
        self.confirm_key = str(settings.get_nested("dialog.confirm_key", "1"))

    @property
    def data_type(self) -> Optional[str]:
        return self.ctx.get("CurrentRule_dataType")

    def process(self, value: Optional[str], today: Optional[date] = None) -> TurnOutcome:
        self.state = DialogState.EVALUATING
        value = "" if value is None else str(value).strip()

        if not value or value == self.no_input_marker:
            logger.warning("Missing keypad input", data_type=self.data_type)
            outcome = self._invalid(FAILURE_NO_INPUT, self.config.no_input_rule_set)
        elif not validate_input(
            value,
            self.data_type,
            _bound(self.ctx.get("CurrentRule_minLength")),
            _bound(self.ctx.get("CurrentRule_maxLength")),
            today,
        ):
            logger.info("Invalid keypad input", length=len(value), data_type=self.data_type)
            outcome = self._invalid(FAILURE_NO_MATCH, self.config.error_rule_set)
        else:
            outcome = self._valid(value)

        self.log_outcome(outcome, data_type=self.data_type, length=len(value))
        return outcome

    def _invalid(self, reason: str, fallback_rule_set: str) -> TurnOutcome:
        self.ctx.delete(INPUT_KEY)
        self.ctx.set("CurrentRule_confirmationRequired", flag(False))
        self.ctx.delete(CONFIRMATION_MESSAGE_KEY)
        self.ctx.delete(f"{CONFIRMATION_MESSAGE_KEY}Type")
        self.ctx.delete(f"{CONFIRMATION_MESSAGE_KEY}PromptArn")
        return self.fail(reason, fallback_rule_set)

    def _commit(self, value: str) -> TurnOutcome:
        if self.config.output_state_key:
            self.ctx.set(self.config.output_state_key, value)
        self.ctx.set("CurrentRule_confirmationRequired", flag(False))
        return self.succeed(None, value)

    def _valid(self, value: str) -> TurnOutcome:
        self.ctx.set(INPUT_KEY, value)
        self.ctx.set(self.valid_key, flag(True))
        self.ctx.delete("CurrentRule_failureReason")

        scratch = self.ctx.clone()
        if self.config.output_state_key:
            scratch.set(self.config.output_state_key, value)
        message = template(self.ctx.get("CurrentRule_confirmationMessage"), scratch)
        write_message(self.ctx, CONFIRMATION_MESSAGE_KEY, message, self.prompt_resolver)

        if is_blank(message):
            logger.info("No confirmation message, storing input", output_state_key=self.config.output_state_key)
            return self._commit(value)

        logger.info("Reading input back for confirmation", output_state_key=self.config.output_state_key)
        self.ctx.set("CurrentRule_confirmationRequired", flag(True))
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

    def confirm(self, answer: Optional[str]) -> TurnOutcome:
        """
        Process the key pressed after the read-back.

        The confirm key stores CurrentRule_input in the output attribute;
        anything else counts as an error and asks for the input again.
        """
        self.state = DialogState.EVALUATING
        pending = self.ctx.get(INPUT_KEY)
        answer = (answer or "").strip()

        if answer == self.confirm_key and not is_blank(pending):
            outcome = self._commit(str(pending))
        else:
            logger.info("Keypad input not confirmed", answer=answer)
            outcome = self._invalid(FAILURE_NO_MATCH, self.config.error_rule_set)

        self.log_outcome(outcome, data_type=self.data_type, confirmation=answer)
        return outcome
