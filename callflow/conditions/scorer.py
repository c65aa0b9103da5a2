"""
Weighted condition scorer.

evaluate() turns one condition and one already-resolved value into a score:
the condition's weight when the operator holds, otherwise 0, except for the
equals family which reports a mismatch as False. Callers summing scores must
skip False explicitly since False == 0 in Python.
"""

from typing import Any, Optional, Union, TYPE_CHECKING

from callflow.conditions.operators import operators
from callflow.conditions.registry import OperatorRegistry
from callflow.conditions.values import tag, to_number

if TYPE_CHECKING:
    from callflow.rules.models import Condition


Score = Union[float, bool]


class ConditionScorer:
    """
    Scores conditions against resolved values.

    Stateless apart from the operator registry it reads from, so one
    instance can be shared freely.
    """

    def __init__(self, registry: Optional[OperatorRegistry] = None):
        self.registry = registry if registry is not None else operators

    def evaluate(self, condition: "Condition", resolved_value: Any) -> Score:
        """
        Score a condition.

        Args:
            condition: Condition with operation, value and weight
            resolved_value: Value resolved from the context (None or ABSENT
                when missing)

        Returns:
            The weight as a number when the predicate holds; 0 or False
            otherwise. An unparsable weight counts as 0.

        Raises:
            OperatorNotFoundError: If the operation is not registered
        """
        metadata = self.registry.require(condition.operation)
        if metadata.func(condition.value, tag(resolved_value)):
            return to_number(condition.weight)
        return metadata.mismatch_score


_default_scorer = ConditionScorer()


def evaluate(condition: "Condition", resolved_value: Any) -> Score:
    """Score a condition with the default operator set."""
    return _default_scorer.evaluate(condition, resolved_value)


def add_score(total: float, score: Score) -> float:
    """Add a condition score to a running total, skipping False."""
    if score is False:
        return total
    return total + score
