"""
Field resolution for conditions and templates.

Context keys are flat ("System.LastSelectedDTMF" is one key) but values may
be nested dicts or lists, so a path is looked up as an exact key first and
only then walked segment by segment.
"""

import logging
from typing import Any, Mapping

from callflow.conditions.values import ABSENT

logger = logging.getLogger(__name__)


def resolve_field(context: Mapping[str, Any], path: str) -> Any:
    """
    Resolve path against context.

    Returns ABSENT when any step cannot be resolved. `length` applied to a
    list yields its length. Never raises.

    >>> resolve_field({"Customer": {"Accounts": ["a", "b"]}}, "Customer.Accounts.length")
    2
    """
    if path is None:
        return ABSENT
    path = path.strip()
    if not path:
        return ABSENT

    if path in context:
        value = context[path]
        return ABSENT if value is None else value

    current: Any = context
    for segment in path.split("."):
        if segment == "length" and isinstance(current, list):
            current = len(current)
        elif isinstance(current, Mapping):
            if segment not in current:
                return ABSENT
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return ABSENT
            current = current[index]
        else:
            logger.debug("Cannot resolve segment %r of %r", segment, path)
            return ABSENT

        if current is None:
            return ABSENT

    return current
