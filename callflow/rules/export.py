"""
Exporting a selected rule into customer state.

After selection the contact flow only sees attributes, so a rule is
flattened into CurrentRule / CurrentRuleType / RuleStart plus one
CurrentRule_<param> attribute per param. Message params also get their
classification (<param>Type, <param>PromptArn).

The return stack lets a RuleSet rule jump into another ruleset and come
back to the rule after it once that ruleset runs out of rules.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from callflow.errors import ConfigurationError
from callflow.logger import logger
from callflow.rules.models import Rule, RuleSet
from callflow.rules.templater import classify_message, template_params
from callflow.state import CallContext

RULE_PREFIX = "CurrentRule_"
RETURN_STACK_KEY = "ReturnStack"


def is_message_param(key: str) -> bool:
    return "message" in key.lower() and not key.endswith("Type") and not key.endswith("Arn")


def prune_rule_state(ctx: CallContext) -> None:
    """Remove everything the previous rule exported."""
    ctx.prune(RULE_PREFIX)
    ctx.delete("CurrentRule")
    ctx.delete("CurrentRuleType")
    ctx.delete("RuleStart")


def resolve_params(params: Dict[str, Any], prompt_resolver=None) -> Dict[str, Any]:
    """
    Add derived params: message classifications and the errorRuleSetNameSet flag.

    Returns a new dict; the input is left untouched.
    """
    resolved = dict(params)
    for key, value in params.items():
        if key == "errorRuleSetName":
            resolved[f"{key}Set"] = "false" if not value else "true"

        if is_message_param(key) and (value is None or isinstance(value, str)):
            classification = classify_message(value, prompt_resolver)
            resolved[f"{key}Type"] = classification.type
            if classification.prompt_arn is not None:
                resolved[f"{key}PromptArn"] = classification.prompt_arn
    return resolved


def export_rule(
    ctx: CallContext,
    rule: Rule,
    prompt_resolver=None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Write a selected rule into the call context.

    Params are rendered against the context as it was before the previous
    rule's state is pruned.

    Returns:
        The exported params (rendered, with derived keys)
    """
    params = resolve_params(template_params(rule.params, ctx), prompt_resolver)

    prune_rule_state(ctx)

    started = (now or datetime.now(timezone.utc)).isoformat(timespec="milliseconds")
    ctx.set("CurrentRuleType", rule.type)
    ctx.set("CurrentRule", rule.name)
    ctx.set("RuleStart", started)

    for key, value in params.items():
        ctx.set(f"{RULE_PREFIX}{key}", value)

    logger.info("Exported rule", rule=rule.name, rule_type=rule.type, params=len(params))
    return params


# =============================================================================
# Return stack
# =============================================================================

def _stack(ctx: CallContext) -> List[Dict[str, str]]:
    stack = ctx.get(RETURN_STACK_KEY)
    return list(stack) if isinstance(stack, list) else []


def peek_return_stack(ctx: CallContext) -> Optional[Dict[str, str]]:
    stack = _stack(ctx)
    return stack[-1] if stack else None


def push_return_stack(ctx: CallContext, rule_set_name: str, rule_name: str) -> None:
    stack = _stack(ctx)
    stack.append({"ruleSetName": rule_set_name, "ruleName": rule_name})
    ctx.set(RETURN_STACK_KEY, stack)


def pop_return_stack(ctx: CallContext) -> Optional[Dict[str, str]]:
    """Remove and return the top item, None when the stack is empty."""
    stack = _stack(ctx)
    if not stack:
        return None
    item = stack.pop()
    ctx.set(RETURN_STACK_KEY, stack)
    return item


def next_rule_index(ctx: CallContext, rule_set: RuleSet) -> int:
    """
    Index of the rule after CurrentRule.

    Returns -1 when that runs past the end of the ruleset and the return
    stack has somewhere to go back to.

    Raises:
        ConfigurationError: If CurrentRule is not in the ruleset, or the end
            of the ruleset is reached with an empty return stack
    """
    start_index = 0
    current = ctx.get("CurrentRule")
    if current:
        position = rule_set.index_of(current)
        if position < 0:
            raise ConfigurationError(
                f"Failed to locate rule '{current}' on ruleset '{rule_set.name}'",
                reference=current,
            )
        start_index = position + 1

    if start_index >= len(rule_set.rules):
        if peek_return_stack(ctx) is None:
            raise ConfigurationError(
                f"Reached the end of ruleset '{rule_set.name}' with no return stack",
                reference=rule_set.name,
            )
        return -1

    return start_index
