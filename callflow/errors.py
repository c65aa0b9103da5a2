"""
Error taxonomy for the call-flow core.

Two kinds of failure are fatal for a turn and surface to the caller as-is:

- ValidationError: the inbound turn is missing something required
  (no call id, no selected option, ...)
- ConfigurationError: a rule, recognizer, prompt or ruleset that the
  configuration refers to cannot be found or is malformed

Everything that can go wrong while *evaluating* (non-numeric operands,
unresolvable field paths, malformed counters) never raises; it degrades
to a default instead.
"""

from typing import Optional


class CallFlowError(Exception):
    """Base class for all call-flow errors."""


class ValidationError(CallFlowError):
    """Raised when a turn is missing a required input."""

    def __init__(self, field_name: str, call_id: Optional[str] = None):
        self.field_name = field_name
        self.call_id = call_id
        message = f"Missing required input '{field_name}'"
        if call_id:
            message += f" for call '{call_id}'"
        super().__init__(message)


class ConfigurationError(CallFlowError):
    """Raised when configuration refers to something that does not exist."""

    def __init__(self, message: str, reference: Optional[str] = None):
        self.reference = reference
        super().__init__(message)


class OperatorNotFoundError(ConfigurationError):
    """Raised when a condition uses an operation that is not registered."""

    def __init__(self, operation: str, registry_name: str = ""):
        self.operation = operation
        self.registry_name = registry_name
        message = f"Operator '{operation}' not found"
        if registry_name:
            message += f" in registry '{registry_name}'"
        super().__init__(message, reference=operation)


class OperatorAlreadyRegisteredError(CallFlowError):
    """Raised when trying to register an operator that already exists."""

    def __init__(self, operation: str, registry_name: str = ""):
        self.operation = operation
        self.registry_name = registry_name
        message = f"Operator '{operation}' already registered"
        if registry_name:
            message += f" in registry '{registry_name}'"
        super().__init__(message)
