from callflow.conversation.context_store import (
    ContextStore,
    ConversationContext,
    FieldSource,
    FieldValue,
)
from callflow.conversation.engine import ConversationEngine
from callflow.conversation.errors import (
    AgentNotFoundError,
    ContextNotInitializedError,
    ConversationError,
)
from callflow.conversation.intent_detector import IntentDetector
from callflow.conversation.interruption import (
    InterruptionEvent,
    InterruptionTracker,
    InterruptType,
)
from callflow.conversation.routing_dispatcher import RoutingDispatcher

__all__ = [
    "AgentNotFoundError",
    "ContextNotInitializedError",
    "ContextStore",
    "ConversationContext",
    "ConversationEngine",
    "ConversationError",
    "FieldSource",
    "FieldValue",
    "IntentDetector",
    "InterruptType",
    "InterruptionEvent",
    "InterruptionTracker",
    "RoutingDispatcher",
]
