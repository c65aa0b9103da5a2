"""
Inbound turn events and outbound turn responses.

The orchestrator posts one TurnEvent per caller interaction and gets back a
TurnResponse holding the decision plus the caller's attributes after the
turn. Contact-centre style payloads ({"Details": {"ContactData": ...,
"Parameters": ...}}) are accepted through TurnEvent.from_payload().
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from callflow.dialog.base import TurnOutcome
from callflow.state import CallContext


class TurnEvent(BaseModel):
    call_id: Optional[str] = None
    selected_option: Optional[str] = None
    selected_intent: Optional[str] = None
    intent_confidence: Optional[str] = None
    slot_value: Optional[str] = None
    input: Optional[str] = None
    end_point: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("selected_option", "intent_confidence", "slot_value", "input", mode="before")
    @classmethod
    def numbers_as_text(cls, v: Any) -> Any:
        """Orchestrators may send keys, digits and confidences as numbers."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TurnEvent":
        """Build an event from a contact-centre invocation payload."""
        details = payload.get("Details") or {}
        contact = details.get("ContactData") or {}
        params = dict(details.get("Parameters") or {})

        def text(name: str) -> Optional[str]:
            value = params.get(name)
            return None if value is None else str(value)

        return cls(
            call_id=contact.get("InitialContactId") or contact.get("ContactId"),
            selected_option=text("selectedOption"),
            selected_intent=text("selectedIntent") or text("matchedIntent"),
            intent_confidence=text("intentConfidence"),
            slot_value=text("slotValue"),
            input=text("input"),
            end_point=text("endPoint") or (contact.get("SystemEndpoint") or {}).get("Address"),
            parameters=params,
        )


class TurnResponse(BaseModel):
    call_id: str
    done: bool = False
    terminate: bool = False
    valid: Optional[bool] = None
    failure_reason: Optional[str] = None
    next_rule_set: Optional[str] = None
    confirmation_required: bool = False
    rule_set: Optional[str] = None
    rule: Optional[str] = None
    rule_type: Optional[str] = None
    state: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_outcome(cls, ctx: CallContext, outcome: TurnOutcome) -> "TurnResponse":
        return cls(
            call_id=ctx.call_id,
            done=outcome.done,
            terminate=outcome.terminate,
            valid=outcome.valid,
            failure_reason=outcome.failure_reason,
            next_rule_set=outcome.next_rule_set,
            confirmation_required=outcome.confirmation_required,
            rule_set=ctx.get("CurrentRuleSet"),
            rule=ctx.get("CurrentRule"),
            rule_type=ctx.get("CurrentRuleType"),
            state=ctx.as_dict(),
        )

    @classmethod
    def from_state(cls, ctx: CallContext, **kwargs: Any) -> "TurnResponse":
        """Response for turns that only change state (queue, inference)."""
        kwargs.setdefault("rule_set", ctx.get("CurrentRuleSet"))
        kwargs.setdefault("rule", ctx.get("CurrentRule"))
        kwargs.setdefault("rule_type", ctx.get("CurrentRuleType"))
        kwargs.setdefault("next_rule_set", ctx.get("NextRuleSet"))
        return cls(call_id=ctx.call_id, state=ctx.as_dict(), **kwargs)
