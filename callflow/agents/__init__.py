from callflow.agents.provider import AgentConfigProvider, InMemoryAgentConfigProvider

__all__ = ["AgentConfigProvider", "InMemoryAgentConfigProvider"]
