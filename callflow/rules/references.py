"""
Which rules point at a ruleset.

Used before renaming or deleting a ruleset: any rule whose params route a
caller to it must be updated too.
"""

from typing import Dict, Iterable, List

from callflow.rules.models import Rule, RuleSet


def _destinations(rule: Rule) -> List[str]:
    """Ruleset names a rule can route to, by rule type."""
    params = rule.params

    if rule.type == "DTMFMenu":
        names = [params.get("errorRuleSetName"), params.get("noInputRuleSetName")]
        names += [value for key, value in params.items() if key.startswith("dtmf")]
        return [n for n in names if n]

    if rule.type == "NLUMenu":
        return [v for k, v in params.items() if k.startswith("intentRuleSet_") and v]

    if rule.type == "RuleSet":
        return [n for n in [params.get("ruleSetName")] if n]

    if rule.type == "DTMFInput":
        return [n for n in [params.get("errorRuleSetName")] if n]

    if rule.type == "Queue":
        return [n for n in [params.get("outOfHoursRuleSetName"), params.get("unstaffedRuleSetName")] if n]

    return []


def refers_to(rule: Rule, rule_set_name: str) -> bool:
    return rule_set_name in _destinations(rule)


def find_referring_rules(rule_set_name: str, rule_sets: Iterable[RuleSet]) -> List[Rule]:
    """Every rule, across all rulesets, that routes to rule_set_name. Each rule appears once."""
    return [
        rule
        for rule_set in rule_sets
        for rule in rule_set.rules
        if refers_to(rule, rule_set_name)
    ]


def find_referring_rule_sets(rule_set_name: str, rule_sets: Iterable[RuleSet]) -> Dict[str, List[Rule]]:
    """Map of ruleset name to its rules that route to rule_set_name."""
    referring: Dict[str, List[Rule]] = {}
    for rule_set in rule_sets:
        matching = [rule for rule in rule_set.rules if refers_to(rule, rule_set_name)]
        if matching:
            referring[rule_set.name] = matching
    return referring
