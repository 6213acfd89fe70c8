"""
Caller intent detection against an agent's configured intent definitions.

Intents are scanned in declaration order and the first one that matches
wins; there is no best-of-all ranking, so reordering intents changes which
one claims an ambiguous utterance. Regex intents match with confidence
1.0. Semantic intents are tried with keyword similarity first and then
token overlap, each checked against the intent's own threshold.

Usage:
    detector = IntentDetector(provider)
    match = detector.detect_intent("agent-1", "please stop the recording")
    if match:
        print(match.intent_name, match.routing_action)
"""

import re
import threading
from typing import Optional

from callflow.agents.provider import AgentConfigProvider
from callflow.config import IntentConfig, settings
from callflow.logging_context import get_call_logger
from callflow.schemas.agent_schema import IntentDefinition, MatchingType
from callflow.schemas.routing_schema import IntentMatchResult

logger = get_call_logger(__name__)

SLASH_PATTERN_RE = re.compile(r"^/(.+)/([gimsuy]*)$", re.DOTALL)

# g, y and u have no re equivalent and are accepted without effect.
REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


def parse_regex_pattern(raw: str) -> tuple[str, int]:
    """Split a bare or ``/pattern/flags`` string into (pattern, re flags).

    Flags default to case-insensitive when none are given.
    """
    if raw.startswith("/"):
        match = SLASH_PATTERN_RE.match(raw)
        if match:
            pattern, letters = match.group(1), match.group(2) or "i"
        else:
            pattern, letters = raw[1:], "i"
    else:
        pattern, letters = raw, "i"

    flags = 0
    for letter in letters:
        flags |= REGEX_FLAGS.get(letter, 0)
    return pattern, flags


def keyword_similarity(utterance: str, sample: str) -> float:
    """Exact match scores 1.0, containment scores the length ratio, else 0."""
    if utterance == sample:
        return 1.0
    if utterance and sample and (sample in utterance or utterance in sample):
        return min(len(sample), len(utterance)) / max(len(sample), len(utterance))
    return 0.0


def _tokens(text: str, min_length: int) -> set[str]:
    return {word for word in text.split() if len(word) > min_length}


def token_overlap_similarity(
    utterance: str,
    sample: str,
    min_token_length: int = 2,
    long_word_length: int = 4,
    long_word_boost: float = 0.1,
) -> float:
    """Jaccard similarity of word sets, boosted for each shared long word."""
    utterance_words = _tokens(utterance, min_token_length)
    sample_words = _tokens(sample, min_token_length)
    union = utterance_words | sample_words
    if not union:
        return 0.0

    shared = utterance_words & sample_words
    score = len(shared) / len(union)
    score += long_word_boost * sum(1 for word in shared if len(word) > long_word_length)
    return min(1.0, score)


class IntentDetector:
    """Matches utterances to intents for any agent known to the provider."""

    def __init__(
        self,
        provider: AgentConfigProvider,
        config: Optional[IntentConfig] = None,
    ) -> None:
        self._provider = provider
        self._config = config or settings.intent
        # agent_id -> raw pattern -> compiled pattern, or None if invalid
        self._pattern_cache: dict[str, dict[str, Optional[re.Pattern[str]]]] = {}
        self._cache_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect_intent(self, agent_id: str, utterance: str) -> Optional[IntentMatchResult]:
        """Return the first enabled intent matching the utterance, or None."""
        if not utterance or not utterance.strip():
            return None

        agent = self._provider.get_agent_config(agent_id)
        if agent is None or not agent.intent_definitions:
            logger.debug("No intent definitions found for agent %s", agent_id)
            return None

        normalized = utterance.lower().strip()
        for intent in agent.intent_definitions:
            if not intent.enabled:
                continue

            if intent.matching_type == MatchingType.REGEX:
                match = self._match_regex(agent_id, intent, utterance, normalized)
            else:
                match = self._match_semantic(intent, normalized)

            if match is not None:
                logger.debug(
                    "Intent '%s' matched via %s (confidence %.2f)",
                    match.intent_name, match.matching_type.value, match.confidence,
                )
                return match
        return None

    def get_enabled_intents(self, agent_id: str) -> list[IntentDefinition]:
        agent = self._provider.get_agent_config(agent_id)
        if agent is None:
            return []
        return [intent for intent in agent.intent_definitions if intent.enabled]

    def refresh_cache(self, agent_id: str) -> None:
        """Drop compiled patterns for an agent after its intents change."""
        with self._cache_lock:
            self._pattern_cache.pop(agent_id, None)
        logger.info("Refreshed intent cache for agent %s", agent_id)

    # ------------------------------------------------------------------
    # Matchers
    # ------------------------------------------------------------------

    def _compiled(self, agent_id: str, intent: IntentDefinition) -> Optional[re.Pattern[str]]:
        raw = intent.regex_pattern or ""
        with self._cache_lock:
            patterns = self._pattern_cache.setdefault(agent_id, {})
            if raw in patterns:
                return patterns[raw]

            pattern, flags = parse_regex_pattern(raw)
            try:
                compiled: Optional[re.Pattern[str]] = re.compile(pattern, flags)
            except re.error as e:
                logger.warning(
                    "Invalid regex pattern for intent %s: %s (%s)", intent.name, raw, e
                )
                compiled = None
            patterns[raw] = compiled
            return compiled

    def _match_regex(
        self,
        agent_id: str,
        intent: IntentDefinition,
        utterance: str,
        normalized: str,
    ) -> Optional[IntentMatchResult]:
        if not intent.regex_pattern:
            return None
        compiled = self._compiled(agent_id, intent)
        if compiled is None:
            return None
        if compiled.search(utterance) or compiled.search(normalized):
            return self._result(intent, 1.0, MatchingType.REGEX)
        return None

    def _match_semantic(
        self, intent: IntentDefinition, normalized: str
    ) -> Optional[IntentMatchResult]:
        if not intent.sample_utterances:
            return None

        cfg = self._config
        threshold = (
            intent.confidence_threshold
            if intent.confidence_threshold is not None
            else cfg.default_threshold
        )
        samples = [sample.lower().strip() for sample in intent.sample_utterances]

        keyword_score = max(keyword_similarity(normalized, sample) for sample in samples)
        if keyword_score >= cfg.keyword_min_similarity and keyword_score >= threshold:
            return self._result(intent, keyword_score, MatchingType.KEYWORD)

        token_score = max(
            token_overlap_similarity(
                normalized,
                sample,
                min_token_length=cfg.min_token_length,
                long_word_length=cfg.long_word_length,
                long_word_boost=cfg.long_word_boost,
            )
            for sample in samples
        )
        if token_score >= cfg.token_min_similarity and token_score >= threshold:
            return self._result(intent, token_score, MatchingType.SEMANTIC)
        return None

    @staticmethod
    def _result(
        intent: IntentDefinition, confidence: float, matching_type: MatchingType
    ) -> IntentMatchResult:
        return IntentMatchResult(
            intent_name=intent.name,
            confidence=confidence,
            matching_type=matching_type,
            routing_action=intent.routing_action,
        )
