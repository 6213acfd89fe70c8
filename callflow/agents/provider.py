"""
Agent configuration lookup.

The conversation core never talks to a database. It asks an
``AgentConfigProvider`` for an agent's field schemas and intent
definitions; how the host application stores and caches those is its own
concern. ``InMemoryAgentConfigProvider`` covers tests, the console demo
and deployments that ship agent definitions as JSON.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Union, runtime_checkable

from callflow.schemas.agent_schema import AgentConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class AgentConfigProvider(Protocol):
    """Resolves an agent id to its configuration, or None if unknown."""

    def get_agent_config(self, agent_id: str) -> Optional[AgentConfig]:
        ...


class InMemoryAgentConfigProvider:
    """Thread-safe dict-backed provider."""

    def __init__(self, agents: Optional[Iterable[AgentConfig]] = None) -> None:
        self._agents: dict[str, AgentConfig] = {}
        self._lock = threading.Lock()
        for agent in agents or ():
            self.register(agent)

    def register(self, agent: AgentConfig) -> None:
        """Add or replace an agent definition."""
        with self._lock:
            self._agents[agent.agent_id] = agent
        logger.debug("Agent config registered: %s", agent.agent_id)

    def remove(self, agent_id: str) -> bool:
        with self._lock:
            return self._agents.pop(agent_id, None) is not None

    def get_agent_config(self, agent_id: str) -> Optional[AgentConfig]:
        with self._lock:
            return self._agents.get(agent_id)

    def agent_ids(self) -> list[str]:
        with self._lock:
            return list(self._agents)

    @classmethod
    def from_dicts(cls, payloads: Iterable[dict[str, Any]]) -> "InMemoryAgentConfigProvider":
        """Build a provider from raw (camelCase or snake_case) agent payloads."""
        return cls(AgentConfig.model_validate(payload) for payload in payloads)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "InMemoryAgentConfigProvider":
        """Load agent definitions from a JSON file holding one agent or a list."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        payloads = data if isinstance(data, list) else [data]
        provider = cls.from_dicts(payloads)
        logger.info("Loaded %d agent config(s) from %s", len(payloads), path)
        return provider
