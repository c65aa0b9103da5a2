"""
Call-flow core: weighted rule selection, menu dialog state and minimal-diff
persistence for contact-centre call turns.
"""

from callflow.catalog import RuleSetCatalog
from callflow.errors import CallFlowError, ConfigurationError, OperatorNotFoundError, ValidationError
from callflow.events import TurnEvent, TurnResponse
from callflow.handlers import CallFlowHandlers
from callflow.inference import InferenceResult, RulesInference
from callflow.state import CallContext, StateDiffTracker
from callflow.stores import InMemoryStateStore, SQLiteStateStore, StaticBotRegistry, StaticPromptResolver

__version__ = "0.1.0"

__all__ = [
    "RuleSetCatalog",
    "CallFlowError",
    "ConfigurationError",
    "OperatorNotFoundError",
    "ValidationError",
    "TurnEvent",
    "TurnResponse",
    "CallFlowHandlers",
    "InferenceResult",
    "RulesInference",
    "CallContext",
    "StateDiffTracker",
    "InMemoryStateStore",
    "SQLiteStateStore",
    "StaticBotRegistry",
    "StaticPromptResolver",
]
