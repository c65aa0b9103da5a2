"""
Weighted conditions.

Main components:
- Tagged values (Text, Items, ABSENT, Other) that operators match over
- OperatorRegistry and the default `operators` set
- resolve_field for dotted / flat context lookups
- ConditionScorer and evaluate()
- RuleTrace / TraceCollector for debugging selections
"""

from callflow.conditions.values import (
    ABSENT,
    Items,
    Other,
    TaggedValue,
    Text,
    is_number,
    tag,
    to_int,
    to_number,
    untag,
)
from callflow.conditions.registry import (
    OperatorMetadata,
    OperatorRegistry,
)
from callflow.conditions.operators import operators
from callflow.conditions.resolver import resolve_field
from callflow.conditions.scorer import ConditionScorer, add_score, evaluate
from callflow.conditions.trace import (
    ConditionEntry,
    Resolution,
    RuleTrace,
    TraceCollector,
)

__all__ = [
    "ABSENT",
    "Items",
    "Other",
    "TaggedValue",
    "Text",
    "is_number",
    "tag",
    "to_int",
    "to_number",
    "untag",
    "OperatorMetadata",
    "OperatorRegistry",
    "operators",
    "resolve_field",
    "ConditionScorer",
    "add_score",
    "evaluate",
    "ConditionEntry",
    "Resolution",
    "RuleTrace",
    "TraceCollector",
]
