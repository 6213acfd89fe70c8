"""Errors surfaced by the conversation core.

Only setup and sequencing problems raise. Matching and extraction misses
are normal conversational outcomes and degrade to fallbacks instead.
"""


class ConversationError(Exception):
    """Base class for conversation core errors."""


class AgentNotFoundError(ConversationError, LookupError):
    """Raised when an agent id cannot be resolved to a configuration."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class ContextNotInitializedError(ConversationError, LookupError):
    """Raised when a call's context is mutated before initialize_context."""

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Context not initialized for call {call_id}")
        self.call_id = call_id
