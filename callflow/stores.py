"""
Collaborators the handlers talk to.

- StateStore: load a caller's attributes, save the diff of one turn
- PromptResolver: recorded prompt name -> prompt identifier
- BotRegistry: recognizer simple name -> recognizer identifier

In-memory implementations back the tests; SQLiteStateStore is the default
persistent store. Attributes are stored one row per key with an expiry,
objects as JSON and everything else as its string form.
"""

import json
import logging
import os
import sqlite3
import time
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from callflow.settings import settings
from callflow.state import StateDiffTracker, parse_json_value

logger = logging.getLogger(__name__)

SQLITE_TIMEOUT_SECONDS = int(os.environ.get("SQLITE_TIMEOUT_SECONDS", "30"))
SQLITE_BUSY_TIMEOUT_MS = int(os.environ.get("SQLITE_BUSY_TIMEOUT_MS", "5000"))


def serialise_value(value: Any) -> str:
    """Storage form of an attribute value."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# =============================================================================
# Protocols
# =============================================================================

@runtime_checkable
class StateStore(Protocol):
    def load(self, call_id: str) -> Dict[str, Any]:
        ...

    def save(self, call_id: str, tracker: StateDiffTracker, state: Mapping[str, Any]) -> None:
        ...


@runtime_checkable
class PromptResolver(Protocol):
    def lookup(self, name: str) -> Optional[str]:
        ...


@runtime_checkable
class BotRegistry(Protocol):
    def lookup(self, simple_name: str) -> Optional[str]:
        ...


# =============================================================================
# State stores
# =============================================================================

class InMemoryStateStore:
    """Dict-backed store. Values round-trip through their storage form."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._calls: Dict[str, Dict[str, str]] = {}
        for call_id, state in (initial or {}).items():
            self._calls[call_id] = {k: serialise_value(v) for k, v in state.items()}

    def load(self, call_id: str) -> Dict[str, Any]:
        stored = self._calls.get(call_id, {})
        return {key: parse_json_value(value) for key, value in stored.items()}

    def save(self, call_id: str, tracker: StateDiffTracker, state: Mapping[str, Any]) -> None:
        upserts, deletes = tracker.changes(state)
        stored = self._calls.setdefault(call_id, {})
        for key, value in upserts.items():
            stored[key] = serialise_value(value)
        for key in deletes:
            stored.pop(key, None)
        logger.debug("Saved %d and deleted %d attributes for %s", len(upserts), len(deletes), call_id)

    def raw(self, call_id: str) -> Dict[str, str]:
        """Stored (serialised) attributes of a call."""
        return dict(self._calls.get(call_id, {}))


class SQLiteStateStore:
    """
    SQLite-backed store, one row per (call_id, key).

    Rows carry an expiry timestamp; expired rows are ignored on load and
    purged by purge_expired().
    """

    def __init__(self, db_path: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self.db_path = db_path or settings.get_nested("store.db_path", "data/call_state.db")
        self.ttl_seconds = int(ttl_seconds or settings.get_nested("store.ttl_seconds", 4 * 60 * 60))
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=SQLITE_TIMEOUT_SECONDS)
        conn.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        return conn

    def _init_db(self) -> None:
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        conn = self._connect()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS call_state (
                call_id    TEXT NOT NULL,
                attr_key   TEXT NOT NULL,
                attr_value TEXT,
                expiry     INTEGER NOT NULL,
                PRIMARY KEY (call_id, attr_key)
            )
        """)
        conn.commit()
        conn.close()

    def load(self, call_id: str) -> Dict[str, Any]:
        conn = self._connect()
        rows = conn.execute(
            "SELECT attr_key, attr_value FROM call_state WHERE call_id=? AND expiry>?",
            (call_id, int(time.time())),
        ).fetchall()
        conn.close()
        return {key: parse_json_value(value) for key, value in rows}

    def save(self, call_id: str, tracker: StateDiffTracker, state: Mapping[str, Any]) -> None:
        upserts, deletes = tracker.changes(state)
        if not upserts and not deletes:
            return

        expiry = int(time.time()) + self.ttl_seconds
        conn = self._connect()
        try:
            conn.executemany(
                """INSERT INTO call_state (call_id, attr_key, attr_value, expiry)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(call_id, attr_key)
                   DO UPDATE SET attr_value=excluded.attr_value, expiry=excluded.expiry""",
                [(call_id, key, serialise_value(value), expiry) for key, value in upserts.items()],
            )
            conn.executemany(
                "DELETE FROM call_state WHERE call_id=? AND attr_key=?",
                [(call_id, key) for key in deletes],
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Saved %d and deleted %d attributes for %s", len(upserts), len(deletes), call_id)

    def purge_expired(self) -> int:
        conn = self._connect()
        cursor = conn.execute("DELETE FROM call_state WHERE expiry<=?", (int(time.time()),))
        conn.commit()
        conn.close()
        return cursor.rowcount


# =============================================================================
# Lookups
# =============================================================================

class StaticPromptResolver:
    """Prompt lookup over a fixed name -> identifier mapping."""

    def __init__(self, prompts: Optional[Dict[str, str]] = None):
        self._prompts = dict(prompts or {})

    def lookup(self, name: str) -> Optional[str]:
        return self._prompts.get(name)


class StaticBotRegistry:
    """Recognizer lookup over a fixed simple name -> identifier mapping."""

    def __init__(self, bots: Optional[Dict[str, str]] = None):
        self._bots = dict(bots or {})

    def lookup(self, simple_name: str) -> Optional[str]:
        return self._bots.get(simple_name)
