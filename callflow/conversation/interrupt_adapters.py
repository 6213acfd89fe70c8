"""
Vendor event translation for barge-in detection.

Only this module knows telephony vendor event names. Each translator turns
a raw vendor event into the metadata mapping accepted by
``InterruptionTracker.handle_user_started_speaking``, or None when the
event does not signal that the caller started speaking.

Retell webhook events of interest:
- user_started_speaking
- function_call.user_interrupted

Twilio Media Streams inbound events of interest:
- start, with customParameters.direction == "inbound"

Twilio outbound:
- clear: drop buffered agent audio so the caller is not talked over
"""

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

RETELL_INTERRUPT_EVENTS = frozenset({"user_started_speaking", "function_call.user_interrupted"})


def _retell_timestamp(raw: Any) -> Optional[datetime]:
    """Retell sends epoch milliseconds."""
    if raw is None:
        return None
    try:
        return datetime.fromtimestamp(float(raw) / 1000.0, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def translate_retell_event(event: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Map a Retell webhook event to interrupt metadata."""
    if event.get("event") not in RETELL_INTERRUPT_EVENTS:
        return None
    metadata: dict[str, Any] = {
        "agent_was_speaking": bool(event.get("agent_was_speaking", True)),
    }
    timestamp = _retell_timestamp(event.get("timestamp"))
    if timestamp is not None:
        metadata["timestamp"] = timestamp
    if event.get("audio_level") is not None:
        metadata["audio_level"] = event["audio_level"]
    return metadata


def translate_twilio_event(event: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    """Map a Twilio Media Streams event to interrupt metadata."""
    if event.get("event") != "start":
        return None
    start = event.get("start") or {}
    custom_parameters = start.get("customParameters") or {}
    if custom_parameters.get("direction") != "inbound":
        return None
    return {"agent_was_speaking": True}


def build_twilio_clear_message(stream_sid: str) -> str:
    """JSON ``clear`` message that flushes Twilio's buffered playback."""
    return json.dumps({"event": "clear", "streamSid": stream_sid})
