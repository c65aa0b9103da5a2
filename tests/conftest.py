"""
Shared pytest fixtures for call-flow tests.

Provides fixtures for:
- CallContext factories with preset menu / queue state
- In-memory and SQLite state stores
- Static prompt and recognizer lookups
- Sample rulesets and catalogs
"""

import random
from typing import Any, Dict, List, Optional

import pytest

from callflow.catalog import RuleSetCatalog
from callflow.state import CallContext
from callflow.stores import (
    InMemoryStateStore,
    SQLiteStateStore,
    StaticBotRegistry,
    StaticPromptResolver,
)


# =============================================================================
# Context Fixtures
# =============================================================================

@pytest.fixture
def make_context():
    """Factory for a CallContext over a copy of the given attributes."""
    def _create(data: Optional[Dict[str, Any]] = None, call_id: str = "call-1") -> CallContext:
        return CallContext(call_id, dict(data or {}))
    return _create


@pytest.fixture
def keypress_state() -> Dict[str, Any]:
    """Exported keypress menu: 1 -> Sales, 2 -> Support, two attempts."""
    return {
        "CurrentRuleSet": "Main menu",
        "CurrentRule": "Main menu options",
        "CurrentRuleType": "DTMFMenu",
        "CurrentRule_dtmf1": "Sales",
        "CurrentRule_dtmf2": "Support",
        "CurrentRule_dtmfStar": "Operator",
        "CurrentRule_inputCount": "2",
        "CurrentRule_errorCount": "0",
        "CurrentRule_errorMessage1": "Sorry, that is not a valid option",
        "CurrentRule_errorMessage1Type": "text",
        "CurrentRule_errorMessage2": "prompt:invalid-option",
        "CurrentRule_errorMessage2Type": "prompt",
        "CurrentRule_errorMessage2PromptArn": "arn:prompt:invalid-option",
        "CurrentRule_errorRuleSetName": "Error handling",
        "CurrentRule_noInputRuleSetName": "",
    }


@pytest.fixture
def keypad_state() -> Dict[str, Any]:
    """Exported keypad input collecting a phone number, read back before storing."""
    return {
        "CurrentRuleSet": "Callback",
        "CurrentRule": "Callback number",
        "CurrentRuleType": "DTMFInput",
        "CurrentRule_dataType": "Phone",
        "CurrentRule_minLength": "10",
        "CurrentRule_maxLength": "10",
        "CurrentRule_outputStateKey": "CallbackNumber",
        "CurrentRule_confirmationMessage": "<speak>You entered {{CallbackNumber}}, press 1 to confirm</speak>",
        "CurrentRule_inputCount": "2",
        "CurrentRule_errorCount": "0",
        "CurrentRule_errorMessage1": "That number is not valid",
        "CurrentRule_errorMessage1Type": "text",
        "CurrentRule_errorRuleSetName": "Agent transfer",
        "CurrentRule_noInputRuleSetName": "",
    }


@pytest.fixture
def nlu_state() -> Dict[str, Any]:
    """Exported NLU menu with auto confirmation at 0.9."""
    return {
        "CurrentRuleSet": "Main menu",
        "CurrentRule": "Speech menu",
        "CurrentRuleType": "NLUMenu",
        "CurrentRule_intentRuleSet_TechnicalSupport": "Technical support",
        "CurrentRule_intentRuleSet_Sales": "Sales",
        "CurrentRule_autoConfirm": "true",
        "CurrentRule_autoConfirmConfidence": "0.9",
        "CurrentRule_outputStateKey": "SelectedIntent",
        "CurrentRule_autoConfirmMessage": "<speak>Connecting you to {{SelectedIntent}}</speak>",
        "CurrentRule_intentConfirmationMessage_TechnicalSupport": "You need {{SelectedIntent}}, is that right?",
        "CurrentRule_intentConfirmationMessage_Sales": "prompt:confirm-sales",
        "CurrentRule_inputCount": "3",
        "CurrentRule_errorCount": "0",
        "CurrentRule_errorMessage1": "Sorry, I didn't catch that",
        "CurrentRule_errorMessage1Type": "text",
        "CurrentRule_errorMessage2": "<speak>Please say sales or support</speak>",
        "CurrentRule_errorMessage2Type": "ssml",
        "CurrentRule_errorRuleSetName": "Error handling",
    }


@pytest.fixture
def slot_state() -> Dict[str, Any]:
    """Exported slot input collecting an account number."""
    return {
        "CurrentRuleSet": "Payments",
        "CurrentRule": "Account number",
        "CurrentRuleType": "NLUInput",
        "CurrentRule_dataType": "number",
        "CurrentRule_autoConfirm": "true",
        "CurrentRule_autoConfirmConfidence": "0.8",
        "CurrentRule_outputStateKey": "AccountNumber",
        "CurrentRule_autoConfirmMessage": "Thanks, account {{AccountNumber}}",
        "CurrentRule_confirmationMessage": "I heard {{AccountNumber}}, is that right?",
        "CurrentRule_inputCount": "2",
        "CurrentRule_errorCount": "0",
        "CurrentRule_errorMessage1": "Please say your account number",
        "CurrentRule_errorMessage1Type": "text",
        "CurrentRule_errorRuleSetName": "Agent transfer",
        "CurrentRule_noInputRuleSetName": "No input handling",
    }


# =============================================================================
# Collaborator Fixtures
# =============================================================================

@pytest.fixture
def prompts() -> StaticPromptResolver:
    return StaticPromptResolver({
        "welcome": "arn:prompt:welcome",
        "confirm-sales": "arn:prompt:confirm-sales",
        "hold-music": "arn:prompt:hold-music",
    })


@pytest.fixture
def bots() -> StaticBotRegistry:
    return StaticBotRegistry({"yesno": "arn:bot:yesno"})


@pytest.fixture
def memory_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteStateStore:
    return SQLiteStateStore(str(tmp_path / "state" / "call_state.db"), ttl_seconds=3600)


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(42)


# =============================================================================
# Ruleset Fixtures
# =============================================================================

@pytest.fixture
def rule_set_dicts() -> List[Dict[str, Any]]:
    """A small routing tree: main menu, a jump into a shared ruleset and back."""
    return [
        {
            "name": "Main menu",
            "end_points": ["Inbound main"],
            "rules": [
                {
                    "name": "Count calls",
                    "type": "UpdateStates",
                    "params": {
                        "updateStates": [
                            {"key": "CallCount", "value": "increment"},
                            {"key": "Greeting", "value": "Hello {{CustomerName}}"},
                        ],
                    },
                },
                {
                    "name": "Tag business",
                    "type": "SetAttributes",
                    "activation": 100,
                    "params": {"setAttributes": [{"key": "Segment", "value": "{{SN_SEGMENT}}"}]},
                    "conditions": [
                        {"field": "SN_SEGMENT", "operation": "equals", "value": "BUSINESS", "weight": 100},
                    ],
                },
                {
                    "name": "Security checks",
                    "type": "RuleSet",
                    "params": {"ruleSetName": "Security", "returnHere": "true"},
                },
                {
                    "name": "Main options",
                    "type": "DTMFMenu",
                    "params": {
                        "offerMessage": "Hi {{CustomerName}}, press 1 for sales",
                        "dtmf1": "Sales",
                        "errorRuleSetName": "Error handling",
                    },
                },
            ],
        },
        {
            "name": "Security",
            "rules": [
                {
                    "name": "Verify caller",
                    "type": "DTMFInput",
                    "activation": 100,
                    "params": {"message": "Please enter your PIN", "errorRuleSetName": "Error handling"},
                    "conditions": [
                        {"field": "Verified", "operation": "notequals", "value": "true", "weight": 100},
                    ],
                },
            ],
        },
        {
            "name": "Sales",
            "rules": [
                {"name": "Sales queue", "type": "Queue", "params": {"outOfHoursRuleSetName": "Closed"}},
            ],
        },
        {
            "name": "Error handling",
            "rules": [
                {"name": "Goodbye", "type": "Terminate", "params": {"message": "Goodbye"}},
            ],
        },
    ]


@pytest.fixture
def catalog(rule_set_dicts) -> RuleSetCatalog:
    return RuleSetCatalog.from_dicts(rule_set_dicts)
