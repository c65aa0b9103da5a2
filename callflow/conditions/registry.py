"""
Operator registry for weighted conditions.

Every condition operation ("equals", "contains", "ismobile", ...) is a
predicate registered under its name. The registry is the single place that
knows which operations exist, so rules can be rejected at load time when
they use an unknown operation instead of failing during scoring.

Predicates take the condition's expected value and the tagged resolved
value and return a bool; turning that into a score is the scorer's job.
"""

from typing import Callable, Dict, Optional, List, Any
from dataclasses import dataclass
from functools import wraps
import inspect

from callflow.conditions.values import TaggedValue
from callflow.errors import (
    OperatorNotFoundError,
    OperatorAlreadyRegisteredError,
    ConfigurationError,
)


Predicate = Callable[[str, TaggedValue], bool]

# Families whose mismatch is reported as False rather than 0
FALSE_ON_MISMATCH_FAMILIES = frozenset({"equals"})


@dataclass
class OperatorMetadata:
    """
    Metadata for a registered operator.

    Attributes:
        name: Operation name as it appears in rule configuration
        description: Human-readable description
        func: The predicate
        family: Family for grouping (equals, null, empty, mobile, compare,
            contains, prefix, suffix)
        negated: True for the "not" member of a family
    """
    name: str
    description: str
    func: Predicate
    family: str = "general"
    negated: bool = False

    @property
    def mismatch_score(self):
        """What the scorer reports when the predicate does not hold."""
        return False if self.family in FALSE_ON_MISMATCH_FAMILIES else 0


class OperatorRegistry:
    """
    Registry of condition operators.

    Example:
        registry = OperatorRegistry("conditions")

        @registry.operator("equals", family="equals")
        def equals(expected, value):
            return isinstance(value, Text) and value.text == expected

        registry.evaluate("equals", "BUSINESS", Text("BUSINESS"))  # True
    """

    def __init__(self, name: str, allow_overwrite: bool = False):
        self.name = name
        self.allow_overwrite = allow_overwrite
        self._operators: Dict[str, OperatorMetadata] = {}
        self._families: Dict[str, List[str]] = {}

    def operator(
        self,
        name: str,
        description: str = "",
        family: str = "general",
        negated: bool = False
    ) -> Callable[[Predicate], Predicate]:
        """
        Decorator for registering an operator.

        Raises:
            OperatorAlreadyRegisteredError: If the name is taken
            ConfigurationError: If the predicate does not take two parameters
        """
        def decorator(func: Predicate) -> Predicate:
            self._validate_signature(name, func)

            if name in self._operators and not self.allow_overwrite:
                raise OperatorAlreadyRegisteredError(name, self.name)

            metadata = OperatorMetadata(
                name=name,
                description=description or (func.__doc__ or "").strip(),
                func=func,
                family=family,
                negated=negated,
            )
            self._operators[name] = metadata

            members = self._families.setdefault(family, [])
            if name not in members:
                members.append(name)

            @wraps(func)
            def wrapper(expected: str, value: TaggedValue) -> bool:
                return func(expected, value)

            wrapper._operator_name = name  # type: ignore
            wrapper._metadata = metadata  # type: ignore
            return wrapper

        return decorator

    def _validate_signature(self, name: str, func: Predicate) -> None:
        params = list(inspect.signature(func).parameters.values())
        if len(params) != 2:
            raise ConfigurationError(
                f"Operator '{name}' must accept exactly two parameters, got {len(params)}",
                reference=name,
            )

    def register(self, name: str, func: Predicate, **kwargs: Any) -> None:
        """Register an operator programmatically (non-decorator style)."""
        self.operator(name, **kwargs)(func)

    def unregister(self, name: str) -> bool:
        if name not in self._operators:
            return False

        metadata = self._operators.pop(name)
        members = self._families.get(metadata.family, [])
        if name in members:
            members.remove(name)
            if not members:
                del self._families[metadata.family]
        return True

    def get(self, name: str) -> Optional[OperatorMetadata]:
        return self._operators.get(name)

    def require(self, name: str) -> OperatorMetadata:
        """
        Get metadata for an operator, failing loudly.

        Raises:
            OperatorNotFoundError: If the operation is not registered
        """
        metadata = self._operators.get(name)
        if metadata is None:
            raise OperatorNotFoundError(name, self.name)
        return metadata

    def evaluate(self, name: str, expected: str, value: TaggedValue) -> bool:
        """Run the predicate registered under name."""
        return bool(self.require(name).func(expected, value))

    def list_all(self) -> List[str]:
        return list(self._operators.keys())

    def list_by_family(self, family: str) -> List[str]:
        return list(self._families.get(family, []))

    def get_families(self) -> List[str]:
        return list(self._families.keys())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "total_operators": len(self._operators),
            "total_families": len(self._families),
            "operators_by_family": {
                fam: len(names) for fam, names in self._families.items()
            },
        }

    def __len__(self) -> int:
        return len(self._operators)

    def __contains__(self, name: str) -> bool:
        return name in self._operators

    def __repr__(self) -> str:
        return f"OperatorRegistry(name={self.name!r}, operators={len(self._operators)})"
