"""
Rules inference.

Walks the caller's current ruleset and exports the next rule that activates.
Rules the contact flow has to run (menus, inputs, messages, queues) end the
walk; the rest are processed here and the walk carries on:

- RuleSet: jump to another ruleset, optionally pushing a return point.
  With a message the walk stops so the message can be played first
- UpdateStates: write (or increment) caller attributes
- SetAttributes: write ContactAttributes.<key> values
- Distribution: pick the next ruleset by weighted random draw

When a ruleset runs out of rules the return stack is popped and the walk
resumes after the rule that made the jump.
"""

import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from callflow.catalog import RuleSetCatalog
from callflow.conditions.scorer import ConditionScorer
from callflow.conditions.trace import TraceCollector
from callflow.conditions.values import is_number, to_number
from callflow.errors import ConfigurationError
from callflow.logger import logger
from callflow.rules.distribution import solve_distribution
from callflow.rules.export import (
    export_rule,
    next_rule_index,
    peek_return_stack,
    pop_return_stack,
    push_return_stack,
)
from callflow.rules.models import Rule, RuleSet
from callflow.rules.selector import next_activated_rule
from callflow.rules.templater import template
from callflow.settings import settings
from callflow.state import CallContext

RULE_TYPE_RULE_SET = "RuleSet"
RULE_TYPE_UPDATE_STATES = "UpdateStates"
RULE_TYPE_SET_ATTRIBUTES = "SetAttributes"
RULE_TYPE_DISTRIBUTION = "Distribution"

LOCAL_RULE_TYPES = frozenset({
    RULE_TYPE_RULE_SET,
    RULE_TYPE_UPDATE_STATES,
    RULE_TYPE_SET_ATTRIBUTES,
    RULE_TYPE_DISTRIBUTION,
})

CONTACT_ATTRIBUTES_PREFIX = "ContactAttributes."
INCREMENT = "increment"


@dataclass
class InferenceResult:
    """Where a walk stopped and what it went through on the way."""
    rule_set: str
    rule: Optional[Rule] = None
    processed_locally: List[str] = field(default_factory=list)
    steps: int = 0

    @property
    def rule_type(self) -> Optional[str]:
        return self.rule.type if self.rule is not None else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_set": self.rule_set,
            "rule": self.rule.name if self.rule is not None else None,
            "rule_type": self.rule_type,
            "processed_locally": list(self.processed_locally),
            "steps": self.steps,
        }


class RulesInference:
    """
    Runs the ruleset walk for one call.

    Args:
        catalog: Rulesets to route between
        prompt_resolver: Used to classify exported message params
        rng: Random source for Distribution rules
        stage: Deployment stage, controls non-production-ready rules
        max_steps: Upper bound on rules visited in one walk
    """

    def __init__(
        self,
        catalog: RuleSetCatalog,
        prompt_resolver=None,
        rng: Optional[random.Random] = None,
        stage: Optional[str] = None,
        max_steps: Optional[int] = None,
        scorer: Optional[ConditionScorer] = None,
    ):
        self.catalog = catalog
        self.prompt_resolver = prompt_resolver
        self.rng = rng
        self.stage = stage
        self.max_steps = int(max_steps or settings.get_nested("rules.max_inference_steps", 50))
        self.scorer = scorer

    # =========================================================================
    # Ruleset resolution
    # =========================================================================

    def current_rule_set(self, ctx: CallContext, end_point: Optional[str] = None) -> RuleSet:
        """
        Ruleset the walk continues in.

        A pending NextRuleSet wins and resets the current rule. Otherwise the
        stored CurrentRuleSet is used, and on a first approach the ruleset
        bound to the end point.

        Raises:
            ConfigurationError: If no ruleset can be found
        """
        next_name = ctx.get("NextRuleSet")
        if next_name:
            rule_set = self.catalog.get(next_name)
            logger.event("RULE_SET_CHANGED", from_rule_set=ctx.get("CurrentRuleSet"), to_rule_set=rule_set.name)
            ctx.delete("NextRuleSet")
            self._enter(ctx, rule_set)
            return rule_set

        current_name = ctx.get("CurrentRuleSet")
        if current_name:
            return self.catalog.get(current_name)

        rule_set = self.catalog.find_by_end_point(end_point) if end_point else None
        if rule_set is None:
            raise ConfigurationError(f"Failed to find ruleset for end point: {end_point}", reference=end_point)

        logger.event("RULE_SET_STARTED", rule_set=rule_set.name, end_point=end_point)
        self._enter(ctx, rule_set)
        return rule_set

    def _enter(self, ctx: CallContext, rule_set: RuleSet) -> None:
        ctx.delete("CurrentRule")
        ctx.delete("CurrentRuleType")
        ctx.delete("RuleStart")
        ctx.set("CurrentRuleSet", rule_set.name)

    def _return(self, ctx: CallContext) -> None:
        item = pop_return_stack(ctx)
        if item is None:
            raise ConfigurationError("Return stack is empty", reference="ReturnStack")
        logger.info("Returning to ruleset", rule_set=item["ruleSetName"], rule=item["ruleName"])
        ctx.set("CurrentRuleSet", item["ruleSetName"])
        ctx.set("CurrentRule", item["ruleName"])

    # =========================================================================
    # Walk
    # =========================================================================

    def run(
        self,
        ctx: CallContext,
        end_point: Optional[str] = None,
        collector: Optional[TraceCollector] = None
    ) -> InferenceResult:
        """
        Walk rules until one needs the contact flow.

        Raises:
            ConfigurationError: On broken rulesets, an exhausted ruleset with
                nowhere to return to, or a walk longer than max_steps
        """
        result = InferenceResult(rule_set="")

        while result.steps < self.max_steps:
            result.steps += 1
            rule_set = self.current_rule_set(ctx, end_point)
            result.rule_set = rule_set.name

            start_index = next_rule_index(ctx, rule_set)
            if start_index == -1:
                self._return(ctx)
                continue

            rule = next_activated_rule(rule_set, ctx, start_index, self.stage, self.scorer, collector)
            if rule is None:
                if peek_return_stack(ctx) is None:
                    raise ConfigurationError(
                        f"No rule activated in ruleset '{rule_set.name}' from index {start_index} "
                        f"and the return stack is empty",
                        reference=rule_set.name,
                    )
                self._return(ctx)
                continue

            export_rule(ctx, rule, self.prompt_resolver)

            if rule.type not in LOCAL_RULE_TYPES:
                result.rule = rule
                logger.event("RULE_EXPORTED", rule_set=rule_set.name, rule=rule.name, rule_type=rule.type)
                return result

            result.processed_locally.append(rule.name)
            if not self.process_locally(ctx, rule):
                result.rule = rule
                return result

        raise ConfigurationError(
            f"Rules inference exceeded {self.max_steps} steps, last ruleset '{result.rule_set}'",
            reference=result.rule_set,
        )

    def process_locally(self, ctx: CallContext, rule: Rule) -> bool:
        """
        Run a local rule type.

        Returns:
            True when the walk should carry on
        """
        if rule.type == RULE_TYPE_RULE_SET:
            return self._rule_set(ctx, rule)
        if rule.type == RULE_TYPE_UPDATE_STATES:
            self._update_states(ctx, rule)
            return True
        if rule.type == RULE_TYPE_SET_ATTRIBUTES:
            self._set_attributes(ctx, rule)
            return True
        if rule.type == RULE_TYPE_DISTRIBUTION:
            target = solve_distribution(ctx, self.rng)
            ctx.set("NextRuleSet", target)
            return True

        raise ConfigurationError(f"Unhandled local rule type: {rule.type}", reference=rule.name)

    def _rule_set(self, ctx: CallContext, rule: Rule) -> bool:
        target = ctx.get("CurrentRule_ruleSetName")
        if not target:
            raise ConfigurationError(f"RuleSet rule '{rule.name}' has no ruleSetName", reference=rule.name)

        ctx.set("NextRuleSet", target)
        if str(ctx.get("CurrentRule_returnHere", "")).lower() == "true":
            push_return_stack(ctx, ctx.get("CurrentRuleSet"), rule.name)

        # A message has to be played before the jump happens
        return not ctx.get("CurrentRule_message")

    def _update_states(self, ctx: CallContext, rule: Rule) -> None:
        for item in _key_values(rule, "updateStates"):
            key = item["key"]
            value = item.get("value")
            if value == INCREMENT:
                existing = ctx.get(key)
                value = str(to_number(existing) + 1) if is_number(existing) else "1"
            else:
                value = template(value, ctx)
            ctx.set(key, value)
            logger.debug("Updated state", key=key)

    def _set_attributes(self, ctx: CallContext, rule: Rule) -> None:
        for item in _key_values(rule, "setAttributes"):
            ctx.set(f"{CONTACT_ATTRIBUTES_PREFIX}{item['key']}", template(item.get("value"), ctx))


def _key_values(rule: Rule, param: str) -> List[Dict[str, Any]]:
    """[{key, value}, ...] list from a rule param, validated."""
    items = rule.params.get(param) or []
    if not isinstance(items, list):
        raise ConfigurationError(f"Rule '{rule.name}': {param} must be a list", reference=rule.name)
    for item in items:
        if not isinstance(item, dict) or not item.get("key"):
            raise ConfigurationError(f"Rule '{rule.name}': {param} entries need a key", reference=rule.name)
    return items


def infer(ctx: CallContext, catalog: RuleSetCatalog, end_point: Optional[str] = None, **kwargs) -> InferenceResult:
    """Run one walk with a fresh RulesInference."""
    return RulesInference(catalog, **kwargs).run(ctx, end_point)
