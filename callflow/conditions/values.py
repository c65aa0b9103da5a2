"""
Tagged values for condition operators.

A resolved context value is one of four shapes, and every operator is a
match over that shape instead of ad-hoc isinstance checks:

    Text("abc")        a string
    Items(("a", "b"))  a list of values
    ABSENT             nothing resolved (missing key or None)
    Other(42)          anything else (numbers, dicts, booleans)
"""

import math
from dataclasses import dataclass
from typing import Any, Tuple, Union


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Items:
    items: Tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.items)


class _Absent:
    """Marker for a value that did not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True)
class Other:
    value: Any


TaggedValue = Union[Text, Items, _Absent, Other]


def tag(value: Any) -> TaggedValue:
    """Wrap a raw context value in its tag."""
    if value is None or value is ABSENT:
        return ABSENT
    if isinstance(value, (Text, Items, Other)):
        return value
    if isinstance(value, str):
        return Text(value)
    if isinstance(value, (list, tuple)):
        return Items(tuple(value))
    return Other(value)


def untag(value: TaggedValue) -> Any:
    """Inverse of tag(): ABSENT becomes None."""
    if isinstance(value, Text):
        return value.text
    if isinstance(value, Items):
        return list(value.items)
    if isinstance(value, Other):
        return value.value
    return None


def is_number(value: Any) -> bool:
    """
    Permissive numeric check used by comparisons and counters.

    Accepts ints, floats and strings that parse as a finite float after
    trimming ("3", " 2.5 ", "-1e3"). Rejects None, booleans, empty strings,
    "nan" and "inf".
    """
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    if isinstance(value, str):
        try:
            return math.isfinite(float(value.strip()))
        except ValueError:
            return False
    return False


def to_number(value: Any, default: float = 0) -> float:
    """Coerce to a number, returning default when is_number() rejects it."""
    if not is_number(value):
        return default
    number = float(value.strip()) if isinstance(value, str) else float(value)
    return int(number) if number.is_integer() else number


def to_int(value: Any, default: int) -> int:
    """Coerce to an int (truncating), returning default when not numeric."""
    if not is_number(value):
        return default
    return int(to_number(value))
