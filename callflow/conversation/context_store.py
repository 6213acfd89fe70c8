"""
Per-call conversation memory: field slots, counters and routing trail.

Each active call gets a ConversationContext holding one FieldValue per
field the agent declared when the call started. Utterances fill slots via
rule-based extraction; callers read snapshots and issue mutation
commands, never holding a live reference.

Contexts are removed explicitly at call end or by a background sweep once
idle longer than the TTL, so abandoned calls do not leak memory.

Usage:
    store = ContextStore(provider)
    store.initialize_context("CA123", "agent-1")
    store.update_context("CA123", "my email is jo@example.com")
    store.get_missing_required_fields("CA123")  # ['phone']
    store.stop()
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from callflow.agents.provider import AgentConfigProvider
from callflow.config import settings
from callflow.conversation.call_state import CallStateMap
from callflow.conversation.errors import AgentNotFoundError, ContextNotInitializedError
from callflow.conversation.extraction import extract_fields
from callflow.logging_context import get_call_logger
from callflow.normalizers.phone import get_phone_ruleset
from callflow.normalizers.postcode import get_postcode_ruleset
from callflow.schemas.agent_schema import FieldSchema
from callflow.speech import format_summary_as_natural_sentences

logger = get_call_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FieldSource(str, Enum):
    """Who supplied a field value."""

    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


@dataclass
class FieldValue:
    """Current state of one field slot in a call."""

    value: Any = None
    raw_value: Any = None
    spoken_value: Optional[str] = None
    filled: bool = False
    confirmed: bool = False
    timestamp: Optional[datetime] = None
    source: Optional[FieldSource] = None


@dataclass
class ConversationContext:
    """Everything remembered about one call."""

    call_id: str
    agent_id: str
    fields: dict[str, FieldValue]
    field_schemas: tuple[FieldSchema, ...] = ()
    locale: Optional[str] = None
    current_step: Optional[str] = None
    last_question: Optional[str] = None
    last_user_response: Optional[str] = None
    failed_attempts: int = 0
    interrupt_count: int = 0
    routing_path: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def schema_for(self, field_name: str) -> FieldSchema:
        for schema in self.field_schemas:
            if schema.field_name == field_name:
                return schema
        raise ValueError(f"Unknown field: {field_name}")


class ContextStore:
    """
    Owns all ConversationContexts and the sweep that expires them.

    State lives in a lock-striped map so concurrent calls do not contend
    with each other or with the sweep. The sweep thread starts on
    construction unless ``autostart=False`` and must be stopped with
    ``stop()`` (or by using the store as a context manager).
    """

    def __init__(
        self,
        provider: AgentConfigProvider,
        *,
        ttl_seconds: Optional[float] = None,
        sweep_interval_seconds: Optional[float] = None,
        stripes: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        autostart: bool = True,
    ) -> None:
        cfg = settings.context
        self._provider = provider
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else cfg.ttl_seconds)
        self._sweep_interval = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else cfg.sweep_interval_seconds
        )
        self._contexts: CallStateMap[ConversationContext] = CallStateMap(
            stripes if stripes is not None else cfg.stripes
        )
        self._clock = clock or _utcnow
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        self._lifecycle_lock = threading.Lock()
        if autostart:
            self.start()

    # ------------------------------------------------------------------
    # Sweep lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background TTL sweep. No-op if already running."""
        with self._lifecycle_lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._stop_event.clear()
            self._sweeper = threading.Thread(
                target=self._sweep_loop, name="context-sweeper", daemon=True
            )
            self._sweeper.start()
        logger.info(
            "Context sweep started (ttl=%ss, interval=%ss)",
            self._ttl.total_seconds(), self._sweep_interval,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the background sweep and wait for it to exit."""
        with self._lifecycle_lock:
            sweeper, self._sweeper = self._sweeper, None
            self._stop_event.set()
        if sweeper is not None:
            sweeper.join(timeout)
            logger.info("Context sweep stopped")

    @property
    def is_sweeping(self) -> bool:
        sweeper = self._sweeper
        return sweeper is not None and sweeper.is_alive()

    def __enter__(self) -> "ContextStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            try:
                self.sweep_expired()
            except Exception:
                logger.exception("Context sweep failed; will retry next interval")

    def sweep_expired(self, now: Optional[datetime] = None) -> list[str]:
        """Remove contexts idle for longer than the TTL. Returns removed call ids."""
        now = now or self._clock()
        removed = self._contexts.evict(lambda _, ctx: now - ctx.updated_at > self._ttl)
        for call_id in removed:
            logger.debug("Cleaned up old context for call %s", call_id)
        return removed

    # ------------------------------------------------------------------
    # Internal access helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _mutating(self, call_id: str) -> Iterator[ConversationContext]:
        """Yield the live context under its stripe lock, stamping updated_at."""
        with self._contexts.locked(call_id) as shard:
            context = shard.get(call_id)
            if context is None:
                logger.warning("No context found for call %s", call_id)
                raise ContextNotInitializedError(call_id)
            context.updated_at = self._clock()
            yield context

    @contextmanager
    def _reading(self, call_id: str) -> Iterator[Optional[ConversationContext]]:
        with self._contexts.locked(call_id) as shard:
            yield shard.get(call_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize_context(
        self,
        call_id: str,
        agent_id: str,
        initial_routing_path: Optional[list[str]] = None,
    ) -> ConversationContext:
        """Create a fresh context for a call from the agent's field schema.

        Raises:
            AgentNotFoundError: If the agent id cannot be resolved.
        """
        agent = self._provider.get_agent_config(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        locale = agent.locale or settings.locale.default_locale
        # Fail at call start rather than mid-call on an unsupported locale.
        get_phone_ruleset(locale)
        get_postcode_ruleset(locale)

        now = self._clock()
        context = ConversationContext(
            call_id=call_id,
            agent_id=agent_id,
            fields={
                schema.field_name: FieldValue(value=schema.default_value)
                for schema in agent.field_schemas
            },
            field_schemas=tuple(agent.field_schemas),
            locale=locale,
            routing_path=list(initial_routing_path or []),
            created_at=now,
            updated_at=now,
        )
        with self._contexts.locked(call_id) as shard:
            if call_id in shard:
                logger.debug("Replacing existing context for call %s", call_id)
            shard[call_id] = context
            snapshot = copy.deepcopy(context)

        logger.info(
            "Initialized context for call %s (agent %s, %d fields)",
            call_id, agent_id, len(context.fields),
        )
        return snapshot

    def update_context(self, call_id: str, utterance: str) -> ConversationContext:
        """Record a caller utterance and fill any fields it contains.

        Only fields not yet filled are attempted. A non-empty utterance or
        any extracted field resets the consecutive failure counter.

        Raises:
            ContextNotInitializedError: If the call has no context.
        """
        utterance = utterance or ""
        with self._mutating(call_id) as context:
            already_filled = [name for name, fv in context.fields.items() if fv.filled]
            extracted = extract_fields(
                utterance, context.field_schemas, context.locale, skip=already_filled
            )

            context.last_user_response = utterance
            now = context.updated_at
            for field_name, result in extracted.items():
                context.fields[field_name] = FieldValue(
                    value=result.value,
                    raw_value=result.raw_value,
                    spoken_value=result.spoken_value,
                    filled=True,
                    timestamp=now,
                    source=FieldSource.USER,
                )
                logger.debug(
                    "Updated field %s = %r for call %s", field_name, result.value, call_id
                )

            if extracted or utterance.strip():
                context.failed_attempts = 0
            return copy.deepcopy(context)

    def clear_context(self, call_id: str) -> bool:
        """Drop a call's context at call end. Returns whether one existed."""
        removed = self._contexts.pop(call_id) is not None
        if removed:
            logger.info("Cleared context for call %s", call_id)
        return removed

    # ------------------------------------------------------------------
    # Field mutation
    # ------------------------------------------------------------------

    def confirm_field(self, call_id: str, field_name: str) -> bool:
        """Mark a filled field as verbally accepted by the caller.

        Returns False if the field has no value to confirm yet.
        """
        with self._mutating(call_id) as context:
            context.schema_for(field_name)
            slot = context.fields[field_name]
            if not slot.filled:
                logger.debug("Cannot confirm unfilled field %s for call %s", field_name, call_id)
                return False
            slot.confirmed = True
            return True

    def set_field(
        self,
        call_id: str,
        field_name: str,
        value: Any,
        *,
        raw_value: Any = None,
        spoken_value: Optional[str] = None,
        source: FieldSource = FieldSource.AGENT,
    ) -> None:
        """Write a field directly, e.g. caller ID prefill or an agent correction."""
        with self._mutating(call_id) as context:
            context.schema_for(field_name)
            context.fields[field_name] = FieldValue(
                value=value,
                raw_value=raw_value,
                spoken_value=spoken_value,
                filled=True,
                timestamp=context.updated_at,
                source=source,
            )

    def reset_field(self, call_id: str, field_name: str) -> None:
        """Clear a field so the next utterance can fill it again."""
        with self._mutating(call_id) as context:
            schema = context.schema_for(field_name)
            context.fields[field_name] = FieldValue(value=schema.default_value)

    def increment_failed_attempts(self, call_id: str) -> int:
        with self._mutating(call_id) as context:
            context.failed_attempts += 1
            return context.failed_attempts

    def increment_interrupt_count(self, call_id: str) -> int:
        with self._mutating(call_id) as context:
            context.interrupt_count += 1
            return context.interrupt_count

    def update_routing_path(self, call_id: str, routing_step: str) -> None:
        """Append a routing block name to the call's audit trail."""
        with self._mutating(call_id) as context:
            context.routing_path.append(routing_step)

    def update_current_step(
        self, call_id: str, step: str, question: Optional[str] = None
    ) -> None:
        with self._mutating(call_id) as context:
            context.current_step = step
            context.last_question = question

    # ------------------------------------------------------------------
    # Readers (unknown calls read as empty)
    # ------------------------------------------------------------------

    def get_context(self, call_id: str) -> Optional[ConversationContext]:
        with self._reading(call_id) as context:
            return copy.deepcopy(context) if context is not None else None

    def has_context(self, call_id: str) -> bool:
        return call_id in self._contexts

    def active_call_ids(self) -> list[str]:
        return self._contexts.keys()

    def __len__(self) -> int:
        return len(self._contexts)

    def is_filled(self, call_id: str, field_name: str) -> bool:
        with self._reading(call_id) as context:
            if context is None or field_name not in context.fields:
                return False
            return context.fields[field_name].filled

    def is_confirmed(self, call_id: str, field_name: str) -> bool:
        with self._reading(call_id) as context:
            if context is None or field_name not in context.fields:
                return False
            return context.fields[field_name].confirmed

    def get_spoken_format(self, call_id: str, field_name: str) -> Optional[Any]:
        """Value to read back to the caller: spoken rendering if any, else the value."""
        with self._reading(call_id) as context:
            if context is None or field_name not in context.fields:
                return None
            slot = context.fields[field_name]
            return slot.spoken_value if slot.spoken_value is not None else slot.value

    def get_filled_fields(self, call_id: str) -> list[str]:
        with self._reading(call_id) as context:
            if context is None:
                return []
            return [name for name, slot in context.fields.items() if slot.filled]

    def get_all_fields(self, call_id: str) -> dict[str, Any]:
        """Filled fields as a flat name -> value dict."""
        with self._reading(call_id) as context:
            if context is None:
                return {}
            return {name: slot.value for name, slot in context.fields.items() if slot.filled}

    def get_missing_required_fields(self, call_id: str) -> list[str]:
        with self._reading(call_id) as context:
            if context is None:
                return []
            return [
                schema.field_name
                for schema in context.field_schemas
                if schema.required and not context.fields[schema.field_name].filled
            ]

    def get_next_unfilled_field(self, call_id: str) -> Optional[FieldSchema]:
        """Lowest display_order field still unfilled; declaration order breaks ties."""
        with self._reading(call_id) as context:
            if context is None:
                return None
            for schema in sorted(context.field_schemas, key=lambda s: s.display_order):
                if not context.fields[schema.field_name].filled:
                    return schema
            return None

    def did_user_answer_last_question(self, call_id: str) -> bool:
        with self._reading(call_id) as context:
            if context is None or not context.last_question:
                return False
            return bool(context.last_user_response and context.last_user_response.strip())

    def get_confirmation_summary(self, call_id: str) -> str:
        """Natural-sentence read-back of filled fields, using spoken forms."""
        with self._reading(call_id) as context:
            if context is None:
                return format_summary_as_natural_sentences({})
            readback: dict[str, Any] = {}
            for schema in sorted(context.field_schemas, key=lambda s: s.display_order):
                slot = context.fields[schema.field_name]
                if slot.filled:
                    spoken = slot.spoken_value if slot.spoken_value is not None else slot.value
                    readback[schema.label or schema.field_name] = spoken
        return format_summary_as_natural_sentences(readback)

    def get_stats(self, call_id: str) -> dict[str, Any]:
        """Slot collection statistics for a call."""
        with self._reading(call_id) as context:
            if context is None:
                return {}
            required = [s for s in context.field_schemas if s.required]
            filled = sum(1 for s in required if context.fields[s.field_name].filled)
            return {
                "slots_filled": filled,
                "slots_required": len(required),
                "fill_rate": filled / len(required) if required else 0,
                "confirmed": sum(1 for slot in context.fields.values() if slot.confirmed),
                "failed_attempts": context.failed_attempts,
                "interrupt_count": context.interrupt_count,
            }
