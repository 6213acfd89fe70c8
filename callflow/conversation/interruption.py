"""
Barge-in tracking for live calls.

When the caller starts talking over the agent, the tracker records an
InterruptionEvent for that call and asks the audio layer to stop agent
playback. The caller's full utterance is attached once transcribed. The
tracker only emits the intent to pause; the injected ``speech_control``
callback (for example, sending a Twilio ``clear`` message) does the rest.

Listeners registered with ``on()`` observe:
- user.interrupted
- agent.speech.paused
- user.interrupt.complete
"""

import copy
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from callflow.config import settings
from callflow.conversation.call_state import CallStateMap
from callflow.conversation.interrupt_adapters import (
    translate_retell_event,
    translate_twilio_event,
)
from callflow.logging_context import get_call_logger

logger = get_call_logger(__name__)

USER_INTERRUPTED = "user.interrupted"
AGENT_SPEECH_PAUSED = "agent.speech.paused"
USER_INTERRUPT_COMPLETE = "user.interrupt.complete"


class InterruptType(str, Enum):
    BARGE_IN = "barge-in"
    PAUSE = "pause"
    CLEAR = "clear"


@dataclass
class InterruptionEvent:
    """The active interrupt for one call."""

    call_id: str
    timestamp: datetime
    agent_was_speaking: bool = True
    user_utterance: Optional[str] = None
    interrupt_type: InterruptType = InterruptType.BARGE_IN
    audio_level: Optional[float] = None


InterruptListener = Callable[[InterruptionEvent], None]
SpeechControl = Callable[[str], None]


class InterruptionTracker:
    """Per-call barge-in state with listener notifications."""

    def __init__(
        self,
        speech_control: Optional[SpeechControl] = None,
        *,
        stripes: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._speech_control = speech_control
        self._interrupts: CallStateMap[InterruptionEvent] = CallStateMap(
            stripes if stripes is not None else settings.context.stripes
        )
        self._listeners: dict[str, InterruptListener] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def on(self, event_name: str, callback: InterruptListener) -> None:
        """Register the listener for an event, replacing any previous one."""
        self._listeners[event_name] = callback

    def _notify(self, event_name: str, event: InterruptionEvent) -> None:
        listener = self._listeners.get(event_name)
        if listener is None:
            return
        try:
            listener(copy.copy(event))
        except Exception:
            logger.exception("Error in interrupt listener for %s", event_name)

    # ------------------------------------------------------------------
    # Interrupt lifecycle
    # ------------------------------------------------------------------

    def handle_user_started_speaking(
        self, call_id: str, metadata: Optional[Mapping[str, Any]] = None
    ) -> InterruptionEvent:
        """Record a barge-in for the call and request that agent speech stop.

        Metadata may carry ``agent_was_speaking`` (assumed True when
        absent), ``timestamp`` and ``audio_level``.
        """
        metadata = metadata or {}
        agent_was_speaking = metadata.get("agent_was_speaking")
        event = InterruptionEvent(
            call_id=call_id,
            timestamp=metadata.get("timestamp") or self._clock(),
            agent_was_speaking=True if agent_was_speaking is None else bool(agent_was_speaking),
            interrupt_type=InterruptType.BARGE_IN,
            audio_level=metadata.get("audio_level"),
        )
        self._interrupts.set(call_id, event)
        logger.debug("User started speaking during call %s", call_id)

        self._notify(USER_INTERRUPTED, event)
        self.pause_agent_speech(call_id)
        return copy.copy(event)

    def pause_agent_speech(self, call_id: str) -> None:
        """Signal the audio layer to stop agent playback for the call."""
        logger.debug("Pausing agent speech for call %s", call_id)
        if self._speech_control is not None:
            try:
                self._speech_control(call_id)
            except Exception:
                logger.exception("Speech control failed to pause call %s", call_id)

        active = self._interrupts.get(call_id)
        paused = (
            replace(active, interrupt_type=InterruptType.PAUSE)
            if active is not None
            else InterruptionEvent(
                call_id=call_id, timestamp=self._clock(), interrupt_type=InterruptType.PAUSE
            )
        )
        self._notify(AGENT_SPEECH_PAUSED, paused)

    def capture_interrupt_utterance(
        self, call_id: str, user_utterance: str
    ) -> Optional[InterruptionEvent]:
        """Attach the transcribed utterance to the active interrupt, if any."""
        with self._interrupts.locked(call_id) as shard:
            event = shard.get(call_id)
            if event is None:
                logger.warning("No active interrupt found for call %s", call_id)
                return None
            event.user_utterance = user_utterance
            snapshot = copy.copy(event)

        self._notify(USER_INTERRUPT_COMPLETE, snapshot)
        return snapshot

    def has_active_interrupt(self, call_id: str) -> bool:
        return call_id in self._interrupts

    def get_active_interrupt(self, call_id: str) -> Optional[InterruptionEvent]:
        event = self._interrupts.get(call_id)
        return copy.copy(event) if event is not None else None

    def clear_interrupt(self, call_id: str) -> bool:
        removed = self._interrupts.pop(call_id) is not None
        logger.debug("Cleared interrupt for call %s", call_id)
        return removed

    # ------------------------------------------------------------------
    # Vendor events
    # ------------------------------------------------------------------

    def handle_retell_event(
        self, call_id: str, event: Mapping[str, Any]
    ) -> Optional[InterruptionEvent]:
        metadata = translate_retell_event(event)
        if metadata is None:
            return None
        return self.handle_user_started_speaking(call_id, metadata)

    def handle_twilio_media_stream_event(
        self, call_id: str, event: Mapping[str, Any]
    ) -> Optional[InterruptionEvent]:
        metadata = translate_twilio_event(event)
        if metadata is None:
            return None
        return self.handle_user_started_speaking(call_id, metadata)
