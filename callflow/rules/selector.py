"""
Rule selection.

Two ways to pick a rule out of a ruleset:

- select_winner(): score every eligible rule and take the best one.
  Highest score above zero wins; ties go to the lower priority value and
  then to the earlier rule.
- next_activated_rule(): walk the rules in order from a start index and
  take the first whose score reaches its activation threshold.
"""

from dataclasses import replace
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from callflow.conditions.resolver import resolve_field
from callflow.conditions.values import ABSENT
from callflow.conditions.scorer import ConditionScorer, Score, add_score
from callflow.conditions.trace import Resolution, RuleTrace, TraceCollector
from callflow.logger import logger
from callflow.rules.models import Condition, Rule, RuleSet
from callflow.rules.templater import is_template, template
from callflow.settings import settings


_default_scorer = ConditionScorer()


def _production_stage() -> str:
    return settings.get_nested("rules.production_stage", "prod")


def is_eligible(rule: Rule, stage: Optional[str] = None) -> bool:
    """
    Enabled rules are eligible; outside production non-production-ready
    rules are eligible too.
    """
    if not rule.enabled:
        return False
    if rule.production_ready:
        return True
    return stage is not None and stage != _production_stage()


def score_condition(
    condition: Condition,
    context: Mapping[str, Any],
    scorer: Optional[ConditionScorer] = None,
    trace: Optional[RuleTrace] = None
) -> Score:
    """Resolve the condition's field, render a templated value and score it."""
    scorer = scorer or _default_scorer

    if is_template(condition.value):
        condition = replace(condition, value=template(condition.value, context).strip())

    resolved = resolve_field(context, condition.field)
    result = scorer.evaluate(condition, resolved)

    if trace is not None:
        trace.record(
            field_name=condition.field,
            operation=condition.operation,
            expected=condition.value,
            resolved_value=None if resolved is ABSENT else resolved,
            score=result,
        )
    return result


def score_conditions(
    conditions: Iterable[Condition],
    context: Mapping[str, Any],
    scorer: Optional[ConditionScorer] = None,
    trace: Optional[RuleTrace] = None
) -> float:
    """Sum of the numeric condition scores; False results are skipped."""
    total: float = 0
    for condition in conditions:
        total = add_score(total, score_condition(condition, context, scorer, trace))
    return total


def score(
    rule: Rule,
    context: Mapping[str, Any],
    scorer: Optional[ConditionScorer] = None,
    trace: Optional[RuleTrace] = None
) -> float:
    """Score of a rule against the context."""
    return score_conditions(rule.conditions, context, scorer, trace)


def score_all(
    rule_set: RuleSet,
    context: Mapping[str, Any],
    stage: Optional[str] = None,
    scorer: Optional[ConditionScorer] = None,
    collector: Optional[TraceCollector] = None
) -> List[Tuple[int, Rule, float]]:
    """Score every eligible rule. Returns (position, rule, score) in ruleset order."""
    scored = []
    for position, rule in enumerate(rule_set.rules):
        trace = collector.create_trace(rule.name, rule_set.name, rule.activation) if collector is not None else None
        if not is_eligible(rule, stage):
            if trace is not None:
                trace.set_result(0, Resolution.SKIPPED)
            continue

        total = score(rule, context, scorer, trace)
        if trace is not None:
            trace.set_result(total, Resolution.SCORED if total > 0 else Resolution.NOT_MATCHED)
        scored.append((position, rule, total))
    return scored


def select_winner(
    rule_set: RuleSet,
    context: Mapping[str, Any],
    stage: Optional[str] = None,
    scorer: Optional[ConditionScorer] = None,
    collector: Optional[TraceCollector] = None
) -> Optional[Rule]:
    """
    Pick the best scoring rule.

    Returns:
        The rule with the highest score above zero, ties broken by lower
        priority then earlier position; None when nothing scores above zero
    """
    scored = [entry for entry in score_all(rule_set, context, stage, scorer, collector) if entry[2] > 0]
    if not scored:
        logger.info("No rule scored above zero", rule_set=rule_set.name)
        return None

    position, winner, best = min(scored, key=lambda e: (-e[2], e[1].priority, e[0]))

    if collector is not None:
        trace = collector.get_trace(winner.name)
        if trace is not None:
            trace.set_result(best, Resolution.WINNER)

    logger.event(
        "RULE_SELECTED",
        rule_set=rule_set.name,
        rule=winner.name,
        rule_type=winner.type,
        score=best,
        position=position,
    )
    return winner


def next_activated_rule(
    rule_set: RuleSet,
    context: Mapping[str, Any],
    start_index: int = 0,
    stage: Optional[str] = None,
    scorer: Optional[ConditionScorer] = None,
    collector: Optional[TraceCollector] = None
) -> Optional[Rule]:
    """
    First eligible rule at or after start_index whose score reaches its activation.

    Returns None when no rule activates, so the caller can fall back to the
    return stack.
    """
    for rule in rule_set.rules[max(start_index, 0):]:
        trace = collector.create_trace(rule.name, rule_set.name, rule.activation) if collector is not None else None
        if not is_eligible(rule, stage):
            if trace is not None:
                trace.set_result(0, Resolution.SKIPPED)
            continue

        total = score(rule, context, scorer, trace)
        if total >= rule.activation:
            if trace is not None:
                trace.set_result(total, Resolution.ACTIVATED)
            logger.event(
                "RULE_SELECTED",
                rule_set=rule_set.name,
                rule=rule.name,
                rule_type=rule.type,
                score=total,
                activation=rule.activation,
            )
            return rule

        if trace is not None:
            trace.set_result(total, Resolution.SCORED if total > 0 else Resolution.NOT_MATCHED)

    logger.info("No rule activated", rule_set=rule_set.name, start_index=start_index)
    return None
