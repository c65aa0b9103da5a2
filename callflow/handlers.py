"""
Turn handlers.

One handler per interaction type. Every handler follows the same steps:

1. Validate the event (call id plus the inputs the turn needs)
2. Load the caller's attributes and wrap them in a CallContext
3. Run the dialog machine / sequencer / inference walk
4. Save the diff of touched attributes
5. Return a TurnResponse

State is saved only after step 3 succeeds, so a failed turn leaves the
store as it was.

Usage:
    handlers = CallFlowHandlers(store=SQLiteStateStore(), bot_registry=bots)
    response = handlers.handle_keypress_menu(TurnEvent(call_id="c-1", selected_option="2"))
"""

import random
from typing import Callable, Optional

from callflow.catalog import RuleSetCatalog
from callflow.dialog.base import is_blank
from callflow.dialog.keypad_input import KeypadInput
from callflow.dialog.keypress import KeypressMenu
from callflow.dialog.nlu import NLUMenu
from callflow.dialog.slot import SlotInput
from callflow.errors import CallFlowError, ConfigurationError, ValidationError
from callflow.events import TurnEvent, TurnResponse
from callflow.inference import RulesInference
from callflow.logger import logger
from callflow.queue import TYPE_NONE, TYPE_SKIPPED, QueueBehaviorSequencer
from callflow.settings import settings
from callflow.state import CallContext
from callflow.stores import InMemoryStateStore


class CallFlowHandlers:
    """
    Entry points the orchestrator calls, one per turn.

    Args:
        store: StateStore implementation (in-memory when omitted)
        prompt_resolver: PromptResolver for message classification
        bot_registry: BotRegistry for the yes/no recognizer
        catalog: RuleSetCatalog, needed by handle_rules_inference only
        rng: Random source for Distribution rules
        stage: Deployment stage passed to rule eligibility
    """

    def __init__(
        self,
        store=None,
        prompt_resolver=None,
        bot_registry=None,
        catalog: Optional[RuleSetCatalog] = None,
        rng: Optional[random.Random] = None,
        stage: Optional[str] = None,
    ):
        self.store = store if store is not None else InMemoryStateStore()
        self.prompt_resolver = prompt_resolver
        self.bot_registry = bot_registry
        self.catalog = catalog
        self.rng = rng
        self.stage = stage

    # =========================================================================
    # Turn pipeline
    # =========================================================================

    def _run(self, name: str, event: TurnEvent, compute: Callable[[CallContext], TurnResponse]) -> TurnResponse:
        call_id = self._call_id(event)
        logger.set_call(call_id)
        try:
            ctx = CallContext(call_id, self.store.load(call_id))
            response = compute(ctx)
            self.store.save(call_id, ctx.tracker, ctx)

            logger.info("Turn complete", handler=name, changed=len(ctx.tracker))
            if settings.get_nested("logging.log_state", False):
                logger.debug("State after turn", state=ctx.as_dict())
            return response
        except CallFlowError as e:
            logger.error("Turn failed", handler=name, error=str(e), error_type=type(e).__name__)
            raise
        except Exception:
            logger.exception("Unexpected error processing turn", handler=name)
            raise
        finally:
            logger.clear_call()

    @staticmethod
    def _call_id(event: TurnEvent) -> str:
        call_id = (event.call_id or "").strip()
        if not call_id:
            raise ValidationError("call_id")
        return call_id

    def _require(self, event: TurnEvent, value: Optional[str], field_name: str) -> str:
        """Turn input that must be present; the call id is checked first."""
        call_id = self._call_id(event)
        if is_blank(value):
            raise ValidationError(field_name, call_id)
        return value

    # =========================================================================
    # Handlers
    # =========================================================================

    def handle_keypress_menu(self, event: TurnEvent) -> TurnResponse:
        """Keypress menu turn; event.selected_option is the key pressed."""
        selected = self._require(event, event.selected_option, "selected_option")

        def compute(ctx: CallContext) -> TurnResponse:
            outcome = KeypressMenu(ctx).process(selected)
            return TurnResponse.from_outcome(ctx, outcome)

        return self._run("keypress_menu", event, compute)

    def handle_keypad_input(self, event: TurnEvent) -> TurnResponse:
        """Typed keypad data; event.input holds the digits or the no-input marker."""
        typed = self._require(event, event.input, "input")

        def compute(ctx: CallContext) -> TurnResponse:
            outcome = KeypadInput(ctx, prompt_resolver=self.prompt_resolver).process(typed)
            return TurnResponse.from_outcome(ctx, outcome)

        return self._run("keypad_input", event, compute)

    def handle_keypad_confirm(self, event: TurnEvent) -> TurnResponse:
        """Key pressed after typed input was read back."""
        answer = self._require(event, event.selected_option, "selected_option")

        def compute(ctx: CallContext) -> TurnResponse:
            outcome = KeypadInput(ctx, prompt_resolver=self.prompt_resolver).confirm(answer)
            return TurnResponse.from_outcome(ctx, outcome)

        return self._run("keypad_confirm", event, compute)

    def handle_nlu_menu(self, event: TurnEvent) -> TurnResponse:
        """NLU menu turn; a missing intent or confidence counts as a no-match."""

        def compute(ctx: CallContext) -> TurnResponse:
            menu = NLUMenu(ctx, bot_registry=self.bot_registry, prompt_resolver=self.prompt_resolver)
            outcome = menu.process(event.selected_intent, event.intent_confidence)
            return TurnResponse.from_outcome(ctx, outcome)

        return self._run("nlu_menu", event, compute)

    def handle_nlu_confirm(self, event: TurnEvent) -> TurnResponse:
        """Yes/no answer to a pending NLU menu confirmation."""

        def compute(ctx: CallContext) -> TurnResponse:
            menu = NLUMenu(ctx, bot_registry=self.bot_registry, prompt_resolver=self.prompt_resolver)
            outcome = menu.confirm(event.selected_intent)
            return TurnResponse.from_outcome(ctx, outcome)

        return self._run("nlu_confirm", event, compute)

    def handle_slot_input(self, event: TurnEvent) -> TurnResponse:
        """Slot input turn; event.selected_intent is 'intentdata' or 'nodata'."""

        def compute(ctx: CallContext) -> TurnResponse:
            slot = SlotInput(ctx, bot_registry=self.bot_registry, prompt_resolver=self.prompt_resolver)
            outcome = slot.process(event.selected_intent, event.intent_confidence, event.slot_value)
            return TurnResponse.from_outcome(ctx, outcome)

        return self._run("slot_input", event, compute)

    def handle_queue(self, event: TurnEvent) -> TurnResponse:
        """One in-queue loop: run the behaviour under the cursor."""

        def compute(ctx: CallContext) -> TurnResponse:
            step = QueueBehaviorSequencer(self.prompt_resolver).step(ctx)
            return TurnResponse.from_state(ctx, valid=step.type not in (TYPE_NONE, TYPE_SKIPPED))

        return self._run("queue", event, compute)

    def handle_rules_inference(self, event: TurnEvent) -> TurnResponse:
        """Walk the rulesets to the next rule the contact flow has to run."""
        if self.catalog is None:
            raise ConfigurationError("Rules inference needs a ruleset catalog")

        def compute(ctx: CallContext) -> TurnResponse:
            inference = RulesInference(
                self.catalog,
                prompt_resolver=self.prompt_resolver,
                rng=self.rng,
                stage=self.stage,
            )
            result = inference.run(ctx, event.end_point)
            return TurnResponse.from_state(ctx, rule_set=result.rule_set, rule_type=result.rule_type)

        return self._run("rules_inference", event, compute)
