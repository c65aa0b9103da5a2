"""
Rules: models, selection, templating, export and routing helpers.
"""

from callflow.rules.models import (
    Condition,
    QueueBehavior,
    Rule,
    RuleSet,
    QUEUE_GOTO,
    QUEUE_MESSAGE,
)
from callflow.rules.templater import (
    IGNORED_TEMPLATE_FIELDS,
    MessageClassification,
    classify_message,
    is_template,
    referenced_fields,
    template,
    template_params,
    write_message,
)
from callflow.rules.selector import (
    is_eligible,
    next_activated_rule,
    score,
    score_all,
    score_conditions,
    score_condition,
    select_winner,
)
from callflow.rules.export import (
    export_rule,
    next_rule_index,
    peek_return_stack,
    pop_return_stack,
    prune_rule_state,
    push_return_stack,
)
from callflow.rules.distribution import distribution_options, solve_distribution
from callflow.rules.references import find_referring_rule_sets, find_referring_rules

__all__ = [
    "Condition",
    "QueueBehavior",
    "Rule",
    "RuleSet",
    "QUEUE_GOTO",
    "QUEUE_MESSAGE",
    "IGNORED_TEMPLATE_FIELDS",
    "MessageClassification",
    "classify_message",
    "is_template",
    "referenced_fields",
    "template",
    "template_params",
    "write_message",
    "is_eligible",
    "next_activated_rule",
    "score",
    "score_all",
    "score_conditions",
    "score_condition",
    "select_winner",
    "export_rule",
    "next_rule_index",
    "peek_return_stack",
    "pop_return_stack",
    "prune_rule_state",
    "push_return_stack",
    "distribution_options",
    "solve_distribution",
    "find_referring_rule_sets",
    "find_referring_rules",
]
