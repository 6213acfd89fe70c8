"""
Intent-driven routing: detect the caller's intent and run its handler.

The dispatcher never raises. No match, an action without a handler, a
detector or handler failure and a malformed handler result all degrade to
the continue-flow handler with ``metadata["fallback"] = True``, so a live
call always gets a usable next step.

Usage:
    dispatcher = RoutingDispatcher(detector, provider)
    dispatcher.register_handler("book-visit", my_handler)
    result = dispatcher.dispatch("agent-1", "call me back", {"call_id": "CA123"})
"""

import threading
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from callflow.agents.provider import AgentConfigProvider
from callflow.conversation.intent_detector import IntentDetector
from callflow.conversation.routing_actions import (
    CONTINUE_FLOW,
    DEFAULT_HANDLERS,
    RoutingHandler,
    get_all_standard_routing_actions,
)
from callflow.conversation.routing_actions import (
    get_routing_action_description as _describe_action,
)
from callflow.logging_context import get_call_logger
from callflow.schemas.agent_schema import MatchingType
from callflow.schemas.routing_schema import (
    IntentMatchResult,
    RoutingContext,
    RoutingHandlerResult,
)

logger = get_call_logger(__name__)

UNKNOWN_INTENT = IntentMatchResult(
    intent_name="unknown",
    confidence=0.0,
    matching_type=MatchingType.KEYWORD,
    routing_action=CONTINUE_FLOW,
)


class MalformedHandlerResult(TypeError):
    """A routing handler returned something that is not a routing result."""


class RoutingDispatcher:
    """Maps detected intents to routing handlers, with a guaranteed fallback."""

    def __init__(self, detector: IntentDetector, provider: AgentConfigProvider) -> None:
        self._detector = detector
        self._provider = provider
        self._handlers: dict[str, RoutingHandler] = {}
        self._lock = threading.Lock()
        for action, handler in DEFAULT_HANDLERS.items():
            self.register_handler(action, handler)

    def register_handler(self, action: str, handler: RoutingHandler) -> None:
        """Add or replace the handler for a routing action (case-insensitive)."""
        with self._lock:
            self._handlers[action.lower()] = handler
        logger.debug("Registered routing handler for action: %s", action)

    def has_handler(self, action: str) -> bool:
        with self._lock:
            return action.lower() in self._handlers

    def _handler_for(self, action: str) -> Optional[RoutingHandler]:
        with self._lock:
            return self._handlers.get(action.lower())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(
        self,
        agent_id: str,
        utterance: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> RoutingHandlerResult:
        """Route an utterance to its handler's result.

        Args:
            agent_id: Agent whose intents are matched.
            utterance: Caller transcript for this turn.
            context: Optional ``collected_fields``, ``call_id`` and
                ``transcript`` passed through to the handler.
        """
        context = context or {}
        try:
            match = self._detector.detect_intent(agent_id, utterance)
        except Exception:
            logger.exception("Intent detection failed for agent %s", agent_id)
            return self._fallback(agent_id, utterance, context)

        if match is None:
            logger.debug("No intent matched for utterance %r; falling back to continue-flow", utterance)
            return self._fallback(agent_id, utterance, context)

        action = match.routing_action or CONTINUE_FLOW
        handler = self._handler_for(action)
        if handler is None:
            logger.warning(
                "No handler found for routing action: %s. Falling back to continue-flow.",
                action,
            )
            return self._fallback(agent_id, utterance, context, match)

        logger.info(
            "Intent detected: %s (confidence: %.2f) -> routing action: %s",
            match.intent_name, match.confidence, action,
        )
        try:
            result = self._run(handler, self._routing_context(agent_id, utterance, context, match))
        except Exception:
            logger.exception("Routing handler for %s failed", action)
            return self._fallback(agent_id, utterance, context, match)

        logger.info("Routing handler executed: %s -> success: %s", action, result.success)
        return result

    def _fallback(
        self,
        agent_id: str,
        utterance: str,
        context: Mapping[str, Any],
        match: Optional[IntentMatchResult] = None,
    ) -> RoutingHandlerResult:
        handler = self._handler_for(CONTINUE_FLOW)
        if handler is not None:
            try:
                result = self._run(
                    handler,
                    self._routing_context(agent_id, utterance, context, match or UNKNOWN_INTENT),
                )
                return result.model_copy(
                    update={"metadata": {**result.metadata, "fallback": True}}
                )
            except Exception:
                logger.exception("continue-flow fallback handler failed")

        return RoutingHandlerResult(
            action=CONTINUE_FLOW,
            success=True,
            should_end_call=False,
            metadata={"fallback": True},
        )

    @staticmethod
    def _routing_context(
        agent_id: str,
        utterance: str,
        context: Mapping[str, Any],
        match: IntentMatchResult,
    ) -> RoutingContext:
        return RoutingContext(
            agent_id=agent_id,
            intent_match=match,
            collected_fields=dict(context.get("collected_fields") or {}),
            call_id=context.get("call_id"),
            transcript=context.get("transcript") or utterance,
        )

    @staticmethod
    def _run(handler: RoutingHandler, routing_context: RoutingContext) -> RoutingHandlerResult:
        result = handler(routing_context)
        if isinstance(result, RoutingHandlerResult):
            return result
        if isinstance(result, Mapping):
            try:
                return RoutingHandlerResult.model_validate(result)
            except ValidationError as e:
                raise MalformedHandlerResult(f"Invalid routing handler result: {e}") from e
        raise MalformedHandlerResult(
            f"Routing handler returned {type(result).__name__}, expected RoutingHandlerResult"
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def get_routing_action_description(self, action: str) -> str:
        return _describe_action(action)

    def get_all_routing_actions(self) -> dict[str, str]:
        """Standard action names mapped to their descriptions."""
        return {d.action: d.description for d in get_all_standard_routing_actions()}

    def get_custom_routing_actions(self, agent_id: str) -> list[str]:
        try:
            agent = self._provider.get_agent_config(agent_id)
        except Exception:
            logger.exception("Error fetching custom routing actions for agent %s", agent_id)
            return []
        return list(agent.custom_routing_actions) if agent is not None else []
