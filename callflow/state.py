"""
Per-turn customer state.

CallContext is the in-memory view of a caller's attributes during one turn.
Every write or delete goes through it so the StateDiffTracker knows exactly
which attributes changed; the store then persists only those.

Usage:
    ctx = CallContext("contact-123", store.load("contact-123"))
    ctx.set("CurrentRule_errorCount", "1")
    ctx.prune("QueueBehaviour_")
    store.save(ctx.call_id, ctx.tracker, ctx)
"""

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)


def is_defined(value: Any) -> bool:
    """None and empty strings are treated as deleted when persisting."""
    return value is not None and value != ""


def parse_json_value(value: Any) -> Any:
    """
    Parse strings that look like a JSON object or array.

    Anything else, including strings that fail to parse, is returned as is.
    """
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if not stripped:
        return value
    if (stripped[0], stripped[-1]) not in (("{", "}"), ("[", "]")):
        return value
    try:
        return json.loads(stripped)
    except ValueError:
        logger.warning("Value looks like JSON but failed to parse, keeping string: %.80s", stripped)
        return value


class StateDiffTracker:
    """
    Set of attribute names mutated during a turn.

    Membership means "write if defined, delete if undefined" at save time.
    """

    def __init__(self, keys: Optional[Set[str]] = None):
        self._touched: Set[str] = set(keys or ())

    def touch(self, key: str) -> None:
        self._touched.add(key)

    @property
    def touched(self) -> Set[str]:
        return set(self._touched)

    def changes(self, state: Mapping) -> Tuple[Dict[str, Any], List[str]]:
        """
        Split the touched keys into upserts and deletes.

        Returns:
            (upserts, deletes) where upserts maps key to its current value
            and deletes lists keys whose value is now undefined
        """
        upserts: Dict[str, Any] = {}
        deletes: List[str] = []
        for key in sorted(self._touched):
            value = state.get(key)
            if is_defined(value):
                upserts[key] = value
            else:
                deletes.append(key)
        return upserts, deletes

    def clear(self) -> None:
        self._touched.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._touched

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._touched))

    def __len__(self) -> int:
        return len(self._touched)

    def __repr__(self) -> str:
        return f"StateDiffTracker(touched={sorted(self._touched)})"


class CallContext(Mapping):
    """
    Read-only mapping over the caller's attributes with tracked mutation.

    Reads behave like a dict. Writes must use set() / delete() / prune()
    so the tracker sees them.
    """

    def __init__(
        self,
        call_id: str,
        data: Optional[Dict[str, Any]] = None,
        tracker: Optional[StateDiffTracker] = None
    ):
        self.call_id = call_id
        self._data: Dict[str, Any] = dict(data or {})
        self.tracker = tracker if tracker is not None else StateDiffTracker()

    # Mapping interface

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    # Mutation

    def set(self, key: str, value: Any) -> None:
        """
        Write an attribute and mark it changed.

        Setting None on a key that was never present is a no-op. JSON-looking
        strings are stored parsed.
        """
        if value is None:
            if key not in self._data:
                return
            self.delete(key)
            return

        self._data[key] = parse_json_value(value)
        self.tracker.touch(key)

    def update(self, values: Mapping) -> None:
        for key, value in values.items():
            self.set(key, value)

    def delete(self, key: str) -> None:
        """Remove an attribute and mark it changed (deleted at save)."""
        self._data.pop(key, None)
        self.tracker.touch(key)

    def prune(self, prefix: str) -> List[str]:
        """Delete every attribute whose name starts with prefix."""
        removed = [key for key in self._data if key.startswith(prefix)]
        for key in removed:
            self.delete(key)
        return removed

    def clone(self) -> "CallContext":
        """Scratch copy with its own data and an empty tracker."""
        return CallContext(self.call_id, copy.deepcopy(self._data))

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._data)

    def changes(self) -> Tuple[Dict[str, Any], List[str]]:
        return self.tracker.changes(self._data)

    def __repr__(self) -> str:
        return f"CallContext(call_id={self.call_id!r}, keys={len(self._data)}, changed={len(self.tracker)})"
