"""Shared test fixtures and helpers."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from callflow.agents.provider import InMemoryAgentConfigProvider
from callflow.conversation.context_store import ContextStore
from callflow.conversation.engine import ConversationEngine
from callflow.conversation.intent_detector import IntentDetector
from callflow.conversation.interruption import InterruptionTracker
from callflow.conversation.routing_dispatcher import RoutingDispatcher
from callflow.schemas.agent_schema import AgentConfig, FieldSchema, IntentDefinition

AGENT_ID = "agent-1"
CALL_ID = "CA-TEST-001"


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_field(field_name: str, data_type: str = "text", **kwargs: Any) -> FieldSchema:
    """Helper to create a FieldSchema."""
    return FieldSchema(field_name=field_name, data_type=data_type, **kwargs)


def make_intent(name: str, **kwargs: Any) -> IntentDefinition:
    """Helper to create an IntentDefinition."""
    return IntentDefinition(name=name, **kwargs)


def make_agent(
    agent_id: str = AGENT_ID,
    fields: Optional[list[FieldSchema]] = None,
    intents: Optional[list[IntentDefinition]] = None,
    locale: Optional[str] = "AU",
    custom_routing_actions: Optional[list[str]] = None,
) -> AgentConfig:
    """Helper to create an AgentConfig with sensible defaults."""
    if fields is None:
        fields = [
            make_field("email", "email", required=True, display_order=1),
            make_field("phone", "phone", required=True, display_order=2),
            make_field(
                "name",
                required=False,
                display_order=3,
                nlp_extraction_hints=["my name is", "this is", "i'm"],
            ),
        ]
    return AgentConfig(
        agent_id=agent_id,
        name="Test agent",
        locale=locale,
        field_schemas=fields,
        intent_definitions=intents or [],
        custom_routing_actions=custom_routing_actions or [],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def callback_intent():
    return make_intent(
        "Request Callback",
        matching_type="semantic",
        sample_utterances=["Call me back", "I'd like someone to contact me"],
        routing_action="callback",
        confidence_threshold=0.7,
    )


@pytest.fixture
def opt_out_intent():
    return make_intent(
        "Stop Recording",
        matching_type="regex",
        regex_pattern="/stop.*recording/i",
        routing_action="opt-out",
    )


@pytest.fixture
def agent(callback_intent, opt_out_intent):
    return make_agent(intents=[opt_out_intent, callback_intent])


@pytest.fixture
def provider(agent):
    return InMemoryAgentConfigProvider([agent])


@pytest.fixture
def store(provider, clock):
    context_store = ContextStore(provider, clock=clock, autostart=False)
    yield context_store
    context_store.stop()


@pytest.fixture
def detector(provider):
    return IntentDetector(provider)


@pytest.fixture
def dispatcher(detector, provider):
    return RoutingDispatcher(detector, provider)


@pytest.fixture
def tracker():
    return InterruptionTracker()


@pytest.fixture
def engine(provider, store, detector, dispatcher, tracker):
    conversation_engine = ConversationEngine(
        provider, store=store, detector=detector, dispatcher=dispatcher, tracker=tracker
    )
    yield conversation_engine
    conversation_engine.close()
