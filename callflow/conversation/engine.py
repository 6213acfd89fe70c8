"""
Per-call conversation engine.

Wires the context store, intent detector, routing dispatcher and
interruption tracker into the per-utterance control flow:

    transcript -> update context -> dispatch intent -> TurnResult

The host orchestrator owns transport, STT and TTS. It calls
``start_call`` when a call connects, ``handle_utterance`` for every final
transcript, ``handle_user_started_speaking`` (or a vendor event handler)
on barge-in, and ``end_call`` when the call is over.

Usage:
    engine = ConversationEngine(provider)
    engine.start_call("CA123", "agent-1")
    turn = engine.handle_utterance("CA123", "my email is jo@example.com")
    speak(turn.routing.message or turn.next_field.prompt_text)
    engine.end_call("CA123")
    engine.close()
"""

from typing import Any, Mapping, Optional

from callflow.agents.provider import AgentConfigProvider
from callflow.conversation.context_store import ContextStore, ConversationContext
from callflow.conversation.errors import ContextNotInitializedError
from callflow.conversation.intent_detector import IntentDetector
from callflow.conversation.interruption import (
    InterruptionEvent,
    InterruptionTracker,
    SpeechControl,
)
from callflow.conversation.routing_dispatcher import RoutingDispatcher
from callflow.logging_context import bind_call_id, get_call_logger
from callflow.schemas.routing_schema import RoutingHandlerResult, TurnResult
from callflow.speech import sanitize_speech_output

logger = get_call_logger(__name__)


class ConversationEngine:
    """Facade over the four per-call collaborators."""

    def __init__(
        self,
        provider: AgentConfigProvider,
        *,
        store: Optional[ContextStore] = None,
        detector: Optional[IntentDetector] = None,
        dispatcher: Optional[RoutingDispatcher] = None,
        tracker: Optional[InterruptionTracker] = None,
        speech_control: Optional[SpeechControl] = None,
    ) -> None:
        self.provider = provider
        self.store = store or ContextStore(provider)
        self.detector = detector or IntentDetector(provider)
        self.dispatcher = dispatcher or RoutingDispatcher(self.detector, provider)
        self.tracker = tracker or InterruptionTracker(speech_control)

    def __enter__(self) -> "ConversationEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Stop background work. Active contexts are left in place."""
        self.store.stop()

    # ------------------------------------------------------------------
    # Call lifecycle
    # ------------------------------------------------------------------

    def start_call(
        self,
        call_id: str,
        agent_id: str,
        initial_routing_path: Optional[list[str]] = None,
    ) -> ConversationContext:
        with bind_call_id(call_id):
            return self.store.initialize_context(call_id, agent_id, initial_routing_path)

    def end_call(self, call_id: str) -> bool:
        """Release all state held for the call. Returns whether a context existed."""
        with bind_call_id(call_id):
            self.tracker.clear_interrupt(call_id)
            return self.store.clear_context(call_id)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def handle_utterance(self, call_id: str, utterance: str) -> TurnResult:
        """Process one final caller transcript.

        Raises:
            ContextNotInitializedError: If ``start_call`` was not called.
        """
        utterance = utterance or ""
        with bind_call_id(call_id):
            filled_before = set(self.store.get_filled_fields(call_id))
            context = self.store.update_context(call_id, utterance)

            # The interrupt is only consumed once the turn has a context.
            interrupted = False
            if self.tracker.has_active_interrupt(call_id):
                interrupted = self.tracker.capture_interrupt_utterance(call_id, utterance) is not None
                self.tracker.clear_interrupt(call_id)

            extracted = [
                name for name, slot in context.fields.items()
                if slot.filled and name not in filled_before
            ]

            collected = {
                name: slot.spoken_value if slot.spoken_value is not None else slot.value
                for name, slot in context.fields.items()
                if slot.filled
            }
            routing = self.dispatcher.dispatch(
                context.agent_id,
                utterance,
                {"collected_fields": collected, "call_id": call_id, "transcript": utterance},
            )

            if not routing.is_fallback:
                self.store.update_routing_path(call_id, routing.action)
            elif not extracted and not utterance.strip():
                attempts = self.store.increment_failed_attempts(call_id)
                logger.debug("Empty turn for call %s (failed attempts: %d)", call_id, attempts)

            next_field = self.store.get_next_unfilled_field(call_id)
            if next_field is not None:
                self.store.update_current_step(call_id, next_field.field_name, next_field.prompt_text)

            turn = TurnResult(
                call_id=call_id,
                routing=self._sanitized(routing),
                extracted_fields=extracted,
                missing_required_fields=self.store.get_missing_required_fields(call_id),
                next_field=next_field,
                interrupted=interrupted,
            )
            logger.info(
                "Turn complete: action=%s extracted=%s missing=%s",
                routing.action, extracted, turn.missing_required_fields,
            )
            return turn

    @staticmethod
    def _sanitized(routing: RoutingHandlerResult) -> RoutingHandlerResult:
        update: dict[str, Any] = {}
        if routing.message:
            update["message"] = sanitize_speech_output(routing.message)
        if routing.next_prompt:
            update["next_prompt"] = sanitize_speech_output(routing.next_prompt)
        return routing.model_copy(update=update) if update else routing

    # ------------------------------------------------------------------
    # Barge-in
    # ------------------------------------------------------------------

    def handle_user_started_speaking(
        self, call_id: str, metadata: Optional[Mapping[str, Any]] = None
    ) -> InterruptionEvent:
        with bind_call_id(call_id):
            event = self.tracker.handle_user_started_speaking(call_id, metadata)
            self._count_interrupt(call_id)
            return event

    def handle_retell_event(
        self, call_id: str, event: Mapping[str, Any]
    ) -> Optional[InterruptionEvent]:
        with bind_call_id(call_id):
            interrupt = self.tracker.handle_retell_event(call_id, event)
            if interrupt is not None:
                self._count_interrupt(call_id)
            return interrupt

    def handle_twilio_media_stream_event(
        self, call_id: str, event: Mapping[str, Any]
    ) -> Optional[InterruptionEvent]:
        with bind_call_id(call_id):
            interrupt = self.tracker.handle_twilio_media_stream_event(call_id, event)
            if interrupt is not None:
                self._count_interrupt(call_id)
            return interrupt

    def _count_interrupt(self, call_id: str) -> None:
        # Speech events can arrive before start_call or after end_call.
        try:
            self.store.increment_interrupt_count(call_id)
        except ContextNotInitializedError:
            logger.debug("Interrupt for call %s has no context to count against", call_id)
