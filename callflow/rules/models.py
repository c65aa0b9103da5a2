"""
Rule configuration models.

Condition, Rule, RuleSet and QueueBehavior are plain dataclasses built from
the dicts the rule editor stores. from_dict() validates what can be checked
without a customer context: operations must be registered, queue behaviours
must have a known type, Goto targets must be integers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from callflow.conditions.operators import operators
from callflow.conditions.registry import OperatorRegistry
from callflow.conditions.values import is_number, to_number
from callflow.errors import ConfigurationError


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


@dataclass(frozen=True)
class Condition:
    """
    One weighted predicate.

    Attributes:
        field: Context path to resolve ("SN_SEGMENT", "Customer.Accounts.length")
        operation: Registered operator name
        value: Expected value, may contain {{Key}} templates
        weight: Contribution to the rule score when the predicate holds
    """
    field: str
    operation: str
    value: str = ""
    weight: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[OperatorRegistry] = None) -> "Condition":
        registry = registry if registry is not None else operators
        operation = _strip(data.get("operation") or "")
        registry.require(operation)

        field_name = _strip(data.get("field"))
        if not field_name:
            raise ConfigurationError("Condition is missing a field", reference=operation)

        value = data.get("value")
        return cls(
            field=field_name,
            operation=operation,
            value="" if value is None else str(value).strip(),
            weight=data.get("weight", 0),
        )

    @property
    def numeric_weight(self) -> float:
        return to_number(self.weight)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "operation": self.operation,
            "value": self.value,
            "weight": self.weight,
        }


@dataclass
class Rule:
    """
    A weighted decision unit inside a ruleset.

    Attributes:
        id: Stable identifier
        name: Name unique within its ruleset
        priority: Lower wins ties in select_winner
        activation: Minimum score for sequential activation
        type: Rule type (DTMFMenu, NLUMenu, Queue, RuleSet, Distribution, ...)
        params: Type-specific parameters, may contain templates
        conditions: Weighted conditions
        enabled: Disabled rules are never selected
        production_ready: Only production-ready rules run in production
    """
    id: str
    name: str
    priority: float = 0
    activation: float = 0
    type: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    conditions: List[Condition] = field(default_factory=list)
    enabled: bool = True
    production_ready: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[OperatorRegistry] = None) -> "Rule":
        name = data.get("name")
        if not name:
            raise ConfigurationError("Rule is missing a name", reference=str(data.get("id") or data.get("ruleId")))

        raw_conditions = data.get("conditions")
        if raw_conditions is None:
            raw_conditions = data.get("weights", [])

        try:
            conditions = [Condition.from_dict(c, registry) for c in raw_conditions]
        except ConfigurationError as e:
            raise ConfigurationError(f"Rule '{name}': {e}", reference=e.reference) from e

        production_ready = data.get("production_ready", data.get("productionReady"))

        return cls(
            id=str(data.get("id") or data.get("ruleId") or name),
            name=name,
            priority=to_number(data.get("priority"), 0),
            activation=to_number(data.get("activation"), 0),
            type=data.get("type", ""),
            params=dict(data.get("params") or {}),
            conditions=conditions,
            enabled=_as_bool(data.get("enabled"), True),
            production_ready=_as_bool(production_ready, True),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "priority": self.priority,
            "activation": self.activation,
            "type": self.type,
            "params": dict(self.params),
            "conditions": [c.to_dict() for c in self.conditions],
            "enabled": self.enabled,
            "production_ready": self.production_ready,
        }


@dataclass
class RuleSet:
    """Ordered collection of rules; order breaks ties and drives sequential inference."""
    name: str
    rules: List[Rule] = field(default_factory=list)
    enabled: bool = True
    end_points: List[str] = field(default_factory=list)
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[OperatorRegistry] = None) -> "RuleSet":
        name = data.get("name")
        if not name:
            raise ConfigurationError("RuleSet is missing a name")

        rules = [Rule.from_dict(r, registry) for r in data.get("rules", [])]
        seen = set()
        for rule in rules:
            if rule.name in seen:
                raise ConfigurationError(
                    f"Duplicate rule '{rule.name}' in ruleset '{name}'", reference=rule.name
                )
            seen.add(rule.name)

        return cls(
            name=name,
            rules=rules,
            enabled=_as_bool(data.get("enabled"), True),
            end_points=list(data.get("end_points", data.get("endPoints")) or []),
            description=data.get("description", ""),
        )

    def get_rule(self, name: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def index_of(self, name: str) -> int:
        for index, rule in enumerate(self.rules):
            if rule.name == name:
                return index
        return -1


QUEUE_MESSAGE = "Message"
QUEUE_GOTO = "Goto"
QUEUE_BEHAVIOUR_TYPES = {"message": QUEUE_MESSAGE, "goto": QUEUE_GOTO}


@dataclass
class QueueBehavior:
    """
    One step of an in-queue behaviour loop.

    Message behaviours play a message and advance the cursor; Goto
    behaviours move the cursor to target_index.
    """
    type: str
    message: Optional[str] = None
    target_index: Optional[int] = None
    conditions: List[Condition] = field(default_factory=list)
    activation: float = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], registry: Optional[OperatorRegistry] = None) -> "QueueBehavior":
        raw_type = str(data.get("type", "")).strip()
        behaviour_type = QUEUE_BEHAVIOUR_TYPES.get(raw_type.lower())
        if behaviour_type is None:
            raise ConfigurationError(f"Unknown queue behaviour type: '{raw_type}'", reference=raw_type)

        target_index = None
        if behaviour_type == QUEUE_GOTO:
            raw_target = data.get("target_index", data.get("targetIndex", data.get("index")))
            if not is_number(raw_target):
                raise ConfigurationError(
                    f"Goto queue behaviour needs a numeric target index, got {raw_target!r}"
                )
            target_index = int(to_number(raw_target))

        conditions = [Condition.from_dict(c, registry) for c in data.get("conditions") or []]

        return cls(
            type=behaviour_type,
            message=data.get("message"),
            target_index=target_index,
            conditions=conditions,
            activation=to_number(data.get("activation"), 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.message is not None:
            data["message"] = self.message
        if self.target_index is not None:
            data["index"] = self.target_index
        if self.conditions:
            data["conditions"] = [c.to_dict() for c in self.conditions]
            data["activation"] = self.activation
        return data
