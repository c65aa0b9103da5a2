"""
Evaluation traces for rule scoring.

Answers "why did this rule win" when a caller ends up somewhere unexpected:
every condition the selector scored is recorded with the value it saw and
what it contributed.
"""

from typing import Dict, List, Any, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Resolution(str, Enum):
    """
    Outcome of scoring one rule.

    - WINNER: the rule was chosen by select_winner
    - ACTIVATED: score reached the rule's activation threshold
    - SCORED: score above zero but not chosen / not activated
    - NOT_MATCHED: nothing contributed
    - SKIPPED: rule disabled or not eligible for the stage
    """
    WINNER = "winner"
    ACTIVATED = "activated"
    SCORED = "scored"
    NOT_MATCHED = "not_matched"
    SKIPPED = "skipped"


@dataclass
class ConditionEntry:
    """
    Record of a single condition evaluation.

    Attributes:
        field_name: Context path the condition read
        operation: Operator name
        expected: Condition value after template rendering
        resolved_value: What the context held (None when absent)
        score: Weight, 0 or False as returned by the scorer
    """
    field_name: str
    operation: str
    expected: str
    resolved_value: Any = None
    score: Union[float, bool] = 0

    @property
    def matched(self) -> bool:
        return self.score is not False and self.score != 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field_name,
            "operation": self.operation,
            "expected": self.expected,
            "resolved_value": self.resolved_value,
            "score": self.score,
        }

    def to_compact_string(self) -> str:
        result_str = "PASS" if self.matched else "FAIL"
        return (
            f"  {self.field_name} {self.operation} {self.expected!r}: "
            f"{result_str} ({self.resolved_value!r} -> {self.score})"
        )


@dataclass
class RuleTrace:
    """
    Trace of the conditions scored for a single rule.

    Attributes:
        rule_name: Name of the rule
        rule_set: Name of the ruleset being evaluated
        activation: Activation threshold of the rule
        entries: Condition evaluations in order
        total_score: Sum of the numeric condition scores
        resolution: Outcome of scoring
    """
    rule_name: str
    rule_set: str = ""
    activation: float = 0
    entries: List[ConditionEntry] = field(default_factory=list)
    total_score: float = 0
    resolution: Resolution = Resolution.NOT_MATCHED
    timestamp: datetime = field(default_factory=datetime.now)

    def record(
        self,
        field_name: str,
        operation: str,
        expected: str,
        resolved_value: Any,
        score: Union[float, bool]
    ) -> None:
        self.entries.append(ConditionEntry(
            field_name=field_name,
            operation=operation,
            expected=expected,
            resolved_value=resolved_value,
            score=score,
        ))

    def set_result(self, total_score: float, resolution: Resolution) -> None:
        self.total_score = total_score
        self.resolution = resolution

    @property
    def conditions_checked(self) -> int:
        return len(self.entries)

    @property
    def conditions_passed(self) -> int:
        return sum(1 for e in self.entries if e.matched)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_name": self.rule_name,
            "rule_set": self.rule_set,
            "activation": self.activation,
            "total_score": self.total_score,
            "resolution": self.resolution.value,
            "conditions_checked": self.conditions_checked,
            "conditions_passed": self.conditions_passed,
            "entries": [e.to_dict() for e in self.entries],
            "timestamp": self.timestamp.isoformat(),
        }

    def to_compact_string(self) -> str:
        """
        Format:
        [RULE] Business customers = 150 (winner)
          SN_SEGMENT equals 'BUSINESS': PASS ('BUSINESS' -> 100)
        """
        lines = [f"[RULE] {self.rule_name} = {self.total_score} ({self.resolution.value})"]
        for entry in self.entries:
            lines.append(entry.to_compact_string())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"RuleTrace(rule={self.rule_name!r}, "
            f"score={self.total_score}, "
            f"resolution={self.resolution.value})"
        )


class TraceCollector:
    """
    Collector for the rule traces of one selection.

    Example:
        collector = TraceCollector()
        winner = select_winner(rule_set, context, collector=collector)
        print(collector.to_compact_string())
    """

    def __init__(self):
        self._traces: List[RuleTrace] = []

    def create_trace(self, rule_name: str, rule_set: str = "", activation: float = 0) -> RuleTrace:
        trace = RuleTrace(rule_name=rule_name, rule_set=rule_set, activation=activation)
        self._traces.append(trace)
        return trace

    def get_traces(self) -> List[RuleTrace]:
        return list(self._traces)

    def get_trace(self, rule_name: str) -> Optional[RuleTrace]:
        for trace in self._traces:
            if trace.rule_name == rule_name:
                return trace
        return None

    def get_traces_by_resolution(self, resolution: Resolution) -> List[RuleTrace]:
        return [t for t in self._traces if t.resolution == resolution]

    def get_summary(self) -> Dict[str, Any]:
        by_resolution: Dict[str, int] = {}
        for trace in self._traces:
            key = trace.resolution.value
            by_resolution[key] = by_resolution.get(key, 0) + 1
        return {
            "total_traces": len(self._traces),
            "by_resolution": by_resolution,
            "total_conditions_checked": sum(t.conditions_checked for t in self._traces),
        }

    def to_compact_string(self) -> str:
        return "\n".join(t.to_compact_string() for t in self._traces)

    def clear(self) -> None:
        self._traces.clear()

    def __len__(self) -> int:
        return len(self._traces)

    def __iter__(self):
        return iter(self._traces)

    def __repr__(self) -> str:
        return f"TraceCollector(traces={len(self._traces)})"
