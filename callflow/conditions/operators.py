"""
Condition operators.

All sixteen operations a rule condition may use, registered on the shared
`operators` registry. Operators are grouped by family:
- equals: equals, notequals
- null: isnull, isnotnull
- empty: isempty, isnotempty
- mobile: ismobile, isnotmobile
- compare: lessthan, greaterthan
- contains: contains, notcontains
- prefix: startswith, notstartswith
- suffix: endswith, notendswith

The negative members of the prefix and suffix families hold for any value
the positive member rejects, including lists and absent values.
"""

import re

from callflow.conditions.registry import OperatorRegistry
from callflow.conditions.values import (
    ABSENT,
    Items,
    TaggedValue,
    Text,
    Other,
    is_number,
    to_number,
)
from callflow.settings import settings


operators = OperatorRegistry("conditions")


def operator(name: str, description: str = "", family: str = "general", negated: bool = False):
    """Shorthand for operators.operator()"""
    return operators.operator(name, description=description, family=family, negated=negated)


# =============================================================================
# EQUALS
# =============================================================================

@operator("equals", family="equals", description="Value is exactly the expected string")
def equals(expected: str, value: TaggedValue) -> bool:
    return isinstance(value, Text) and value.text == expected


@operator("notequals", family="equals", negated=True, description="Value is not the expected string")
def notequals(expected: str, value: TaggedValue) -> bool:
    return not equals(expected, value)


# =============================================================================
# NULL / EMPTY
# =============================================================================

@operator("isnull", family="null", description="Value is missing")
def isnull(expected: str, value: TaggedValue) -> bool:
    return value is ABSENT


@operator("isnotnull", family="null", negated=True, description="Value is present")
def isnotnull(expected: str, value: TaggedValue) -> bool:
    return value is not ABSENT


@operator("isempty", family="empty", description="Value is missing, an empty string or an empty list")
def isempty(expected: str, value: TaggedValue) -> bool:
    if value is ABSENT:
        return True
    if isinstance(value, Text):
        return value.text == ""
    if isinstance(value, Items):
        return len(value) == 0
    return False


@operator("isnotempty", family="empty", negated=True, description="Value has content")
def isnotempty(expected: str, value: TaggedValue) -> bool:
    return not isempty(expected, value)


# =============================================================================
# MOBILE
# =============================================================================

def _mobile_pattern() -> str:
    return settings.get_nested("conditions.mobile_pattern", r"^\+614\d{8}$")


@operator("ismobile", family="mobile", description="Value is a mobile number in E.164 form")
def ismobile(expected: str, value: TaggedValue) -> bool:
    return isinstance(value, Text) and re.match(_mobile_pattern(), value.text) is not None


@operator("isnotmobile", family="mobile", negated=True, description="Value is not a mobile number")
def isnotmobile(expected: str, value: TaggedValue) -> bool:
    return not ismobile(expected, value)


# =============================================================================
# NUMERIC COMPARISON
# =============================================================================

def _numeric(value: TaggedValue):
    if isinstance(value, Text) and is_number(value.text):
        return to_number(value.text)
    if isinstance(value, Other) and is_number(value.value):
        return to_number(value.value)
    return None


@operator("lessthan", family="compare", description="Both sides numeric and value < expected")
def lessthan(expected: str, value: TaggedValue) -> bool:
    actual = _numeric(value)
    if actual is None or not is_number(expected):
        return False
    return actual < to_number(expected)


@operator("greaterthan", family="compare", description="Both sides numeric and value > expected")
def greaterthan(expected: str, value: TaggedValue) -> bool:
    actual = _numeric(value)
    if actual is None or not is_number(expected):
        return False
    return actual > to_number(expected)


# =============================================================================
# CONTAINS
# =============================================================================

@operator("contains", family="contains", description="List holds the value or string has it as a substring")
def contains(expected: str, value: TaggedValue) -> bool:
    if isinstance(value, Items):
        return expected in value.items
    if isinstance(value, Text):
        return expected in value.text
    return False


@operator("notcontains", family="contains", negated=True, description="Inverse of contains, true for absent values")
def notcontains(expected: str, value: TaggedValue) -> bool:
    return not contains(expected, value)


# =============================================================================
# PREFIX / SUFFIX
# =============================================================================

@operator("startswith", family="prefix", description="String value starts with expected")
def startswith(expected: str, value: TaggedValue) -> bool:
    return isinstance(value, Text) and value.text.startswith(expected)


@operator("notstartswith", family="prefix", negated=True, description="Anything that is not a string starting with expected")
def notstartswith(expected: str, value: TaggedValue) -> bool:
    return not startswith(expected, value)


@operator("endswith", family="suffix", description="String value ends with expected")
def endswith(expected: str, value: TaggedValue) -> bool:
    return isinstance(value, Text) and value.text.endswith(expected)


@operator("notendswith", family="suffix", negated=True, description="Anything that is not a string ending with expected")
def notendswith(expected: str, value: TaggedValue) -> bool:
    return not endswith(expected, value)
