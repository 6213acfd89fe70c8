"""Routing and per-turn result models exchanged with the call orchestrator."""

from typing import Any, Optional

from pydantic import Field

from callflow.schemas.agent_schema import CamelModel, FieldSchema, MatchingType


class IntentMatchResult(CamelModel):
    """Outcome of matching one utterance against an agent's intents."""

    intent_name: str
    confidence: float = Field(ge=0.0, le=1.0)
    matching_type: MatchingType
    routing_action: str


class RoutingContext(CamelModel):
    """Everything a routing handler is given to decide its response."""

    agent_id: str
    intent_match: IntentMatchResult
    collected_fields: dict[str, Any] = Field(default_factory=dict)
    call_id: Optional[str] = None
    transcript: Optional[str] = None


class RoutingHandlerResult(CamelModel):
    """What the conversation should do next, as decided by a routing handler."""

    action: str
    success: bool = True
    message: Optional[str] = None
    should_end_call: bool = False
    next_prompt: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_fallback(self) -> bool:
        return bool(self.metadata.get("fallback"))


class TurnResult(CamelModel):
    """Result of processing one caller utterance end to end."""

    call_id: str
    routing: RoutingHandlerResult
    extracted_fields: list[str] = Field(default_factory=list)
    missing_required_fields: list[str] = Field(default_factory=list)
    next_field: Optional[FieldSchema] = None
    interrupted: bool = False

    @property
    def should_end_call(self) -> bool:
        return self.routing.should_end_call
