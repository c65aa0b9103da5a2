"""
Tests for state stores and static lookups.
"""

import os
import sqlite3
from types import SimpleNamespace

import pytest

from callflow import stores
from callflow.state import CallContext
from callflow.stores import (
    BotRegistry,
    InMemoryStateStore,
    PromptResolver,
    SQLiteStateStore,
    StateStore,
    StaticBotRegistry,
    StaticPromptResolver,
    serialise_value,
)


def save_turn(store, call_id, changes):
    """Load, apply changes through a CallContext, save."""
    ctx = CallContext(call_id, store.load(call_id))
    ctx.update(changes)
    store.save(call_id, ctx.tracker, ctx)
    return ctx


class TestSerialiseValue:

    @pytest.mark.parametrize("value,expected", [
        ("text", "text"),
        (3, "3"),
        (2.5, "2.5"),
        (True, "true"),
        (False, "false"),
        (["a", "b"], '["a", "b"]'),
        ({"k": "é"}, '{"k": "é"}'),
    ])
    def test_serialise(self, value, expected):
        assert serialise_value(value) == expected


class TestInMemoryStateStore:

    def test_initial_state_round_trips(self):
        store = InMemoryStateStore({"c-1": {"A": "1", "Accounts": ["x"], "Flag": True}})
        assert store.load("c-1") == {"A": "1", "Accounts": ["x"], "Flag": "true"}

    def test_unknown_call_is_empty(self, memory_store):
        assert memory_store.load("nobody") == {}

    def test_save_applies_only_the_diff(self, memory_store):
        save_turn(memory_store, "c-1", {"A": "1", "B": "2"})
        save_turn(memory_store, "c-1", {"A": None, "C": ["x"]})

        assert memory_store.raw("c-1") == {"B": "2", "C": '["x"]'}
        assert memory_store.load("c-1") == {"B": "2", "C": ["x"]}

    def test_untouched_keys_not_rewritten(self, memory_store):
        save_turn(memory_store, "c-1", {"A": "1"})
        ctx = CallContext("c-1", {"A": "changed behind the tracker's back"})
        memory_store.save("c-1", ctx.tracker, ctx)
        assert memory_store.raw("c-1") == {"A": "1"}

    def test_calls_isolated(self, memory_store):
        save_turn(memory_store, "c-1", {"A": "1"})
        save_turn(memory_store, "c-2", {"A": "2"})
        assert memory_store.load("c-1") == {"A": "1"}
        assert memory_store.load("c-2") == {"A": "2"}


class TestSQLiteStateStore:

    def test_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "state.db"
        SQLiteStateStore(str(db_path))
        assert os.path.exists(db_path)

    def test_round_trip(self, sqlite_store):
        save_turn(sqlite_store, "c-1", {
            "CurrentRule_errorCount": 2,
            "ReturnStack": [{"ruleSetName": "Main menu", "ruleName": "A"}],
            "Name": "Sam",
        })

        loaded = sqlite_store.load("c-1")
        assert loaded == {
            "CurrentRule_errorCount": "2",
            "ReturnStack": [{"ruleSetName": "Main menu", "ruleName": "A"}],
            "Name": "Sam",
        }

    def test_upsert_and_delete(self, sqlite_store):
        save_turn(sqlite_store, "c-1", {"A": "1", "B": "2"})
        save_turn(sqlite_store, "c-1", {"A": "3", "B": ""})
        assert sqlite_store.load("c-1") == {"A": "3"}

    def test_no_changes_no_write(self, sqlite_store):
        ctx = CallContext("c-1")
        sqlite_store.save("c-1", ctx.tracker, ctx)
        conn = sqlite3.connect(sqlite_store.db_path)
        count = conn.execute("SELECT COUNT(*) FROM call_state").fetchone()[0]
        conn.close()
        assert count == 0

    def test_expired_rows_ignored_and_purged(self, tmp_path, monkeypatch):
        clock = SimpleNamespace(now=1_000)
        monkeypatch.setattr(stores, "time", SimpleNamespace(time=lambda: clock.now))

        store = SQLiteStateStore(str(tmp_path / "state.db"), ttl_seconds=60)
        save_turn(store, "c-1", {"A": "1"})
        assert store.load("c-1") == {"A": "1"}

        clock.now = 1_061
        assert store.load("c-1") == {}
        assert store.purge_expired() == 1

    def test_save_refreshes_expiry(self, tmp_path, monkeypatch):
        clock = SimpleNamespace(now=1_000)
        monkeypatch.setattr(stores, "time", SimpleNamespace(time=lambda: clock.now))

        store = SQLiteStateStore(str(tmp_path / "state.db"), ttl_seconds=60)
        save_turn(store, "c-1", {"A": "1"})
        clock.now = 1_050
        save_turn(store, "c-1", {"A": "2"})
        clock.now = 1_100
        assert store.load("c-1") == {"A": "2"}


class TestLookups:

    def test_static_prompt_resolver(self, prompts):
        assert prompts.lookup("welcome") == "arn:prompt:welcome"
        assert prompts.lookup("missing") is None

    def test_static_bot_registry(self, bots):
        assert bots.lookup("yesno") == "arn:bot:yesno"
        assert bots.lookup("other") is None

    def test_protocols(self, memory_store, sqlite_store):
        assert isinstance(memory_store, StateStore)
        assert isinstance(sqlite_store, StateStore)
        assert isinstance(StaticPromptResolver(), PromptResolver)
        assert isinstance(StaticBotRegistry(), BotRegistry)
