"""
Speech output hygiene for text bound for TTS.

Timing and pacing belong to the TTS engine, so stage directions such as
"[pause 2s]" or "SLOWLY" must never reach synthesis. Summaries for
read-back are rendered as sentences because periods give TTS natural
pauses without any explicit markup.
"""

import logging
import re
from typing import Any, Mapping

logger = logging.getLogger(__name__)

# Bracketed and compound directions are listed before the bare words they contain.
FORBIDDEN_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\[[^\]]*pause[^\]]*\]", re.IGNORECASE),
    re.compile(r"\([^)]*pause[^)]*\)", re.IGNORECASE),
    re.compile(r"\.\.\.\s*pause|pause\s*\.\.\.", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*-\s*\d+(?:\.\d+)?\s*seconds?", re.IGNORECASE),
    re.compile(r"\d+\s*second\s*pause", re.IGNORECASE),
    re.compile(r"\b(?:brief|short|natural)\s*pause\b", re.IGNORECASE),
    re.compile(r"\bpause\b", re.IGNORECASE),
    # Upper-case only: "clearly" in ordinary speech is fine.
    re.compile(r"\b(?:SLOWLY|CLEARLY)\b"),
    re.compile(r"\bbreathe\b", re.IGNORECASE),
    re.compile(r"\bslow\s*down\b", re.IGNORECASE),
    re.compile(r"\bpacing\b", re.IGNORECASE),
]


def sanitize_speech_output(text: str) -> str:
    """Remove timing instructions and control words from text sent to TTS."""
    if not text or not isinstance(text, str):
        return text or ""

    sanitized = text
    for pattern in FORBIDDEN_PATTERNS:
        sanitized = pattern.sub("", sanitized)

    sanitized = re.sub(r"\s+", " ", sanitized).strip()
    sanitized = re.sub(r"\s+([.,!?;:])", r"\1", sanitized)
    sanitized = re.sub(r"^[.,;:\s]+|[,;:\s]+$", "", sanitized)

    if sanitized != text.strip():
        logger.debug("Sanitized speech output: %r -> %r", text, sanitized)
    return sanitized


def validate_speech_output(text: str) -> tuple[bool, list[str]]:
    """Check text for forbidden tokens without modifying it.

    Returns:
        (valid, violations) where violations are the offending patterns.
    """
    if not text or not isinstance(text, str):
        return True, []

    violations = [p.pattern for p in FORBIDDEN_PATTERNS if p.search(text)]
    return not violations, violations


def readable_field_name(field_name: str) -> str:
    """'postCode' / 'post_code' -> 'Post code'."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", field_name).replace("_", " ")
    spaced = re.sub(r"\s+", " ", spaced).strip().lower()
    return spaced[:1].upper() + spaced[1:]


def format_summary_as_natural_sentences(fields: Mapping[str, Any]) -> str:
    """Render collected fields as one sentence each, for caller read-back."""
    sentences = ["Here's a quick summary of what I have."]
    for name, value in fields.items():
        if value is None or value == "":
            continue
        sentences.append(f"{readable_field_name(name)}: {value}.")
    return " ".join(sentences)
