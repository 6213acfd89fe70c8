"""
Centralized configuration with environment variable overrides.

Matching thresholds, context lifetimes and locale defaults for the
conversation engine live here. Nothing is hardcoded in detector or store
logic; each value can be overridden per deployment through the environment
or a ``.env`` file.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class ContextConfig:
    """Lifetime and sharding of per-call conversation state."""

    ttl_seconds: float = _safe_float("CONTEXT_TTL_SECONDS", "3600")
    sweep_interval_seconds: float = _safe_float("CONTEXT_SWEEP_INTERVAL_SECONDS", "60")
    stripes: int = _safe_int("CALL_STATE_STRIPES", "16")


@dataclass(frozen=True)
class IntentConfig:
    """Similarity thresholds for keyword and token-overlap intent matching."""

    default_threshold: float = _safe_float("INTENT_DEFAULT_THRESHOLD", "0.7")
    keyword_min_similarity: float = _safe_float("INTENT_KEYWORD_MIN_SIMILARITY", "0.5")
    token_min_similarity: float = _safe_float("INTENT_TOKEN_MIN_SIMILARITY", "0.3")
    long_word_boost: float = _safe_float("INTENT_LONG_WORD_BOOST", "0.1")
    long_word_length: int = _safe_int("INTENT_LONG_WORD_LENGTH", "4")
    min_token_length: int = _safe_int("INTENT_MIN_TOKEN_LENGTH", "2")


@dataclass(frozen=True)
class LocaleConfig:
    """Numbering plan used when an agent does not declare its own locale."""

    default_locale: str = os.getenv("DEFAULT_LOCALE", "AU")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    context: ContextConfig = field(default_factory=ContextConfig)
    intent: IntentConfig = field(default_factory=IntentConfig)
    locale: LocaleConfig = field(default_factory=LocaleConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "callflow")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.context.ttl_seconds <= 0:
        raise ValueError(
            f"CONTEXT_TTL_SECONDS must be > 0, got {config.context.ttl_seconds}"
        )
    if config.context.sweep_interval_seconds <= 0:
        raise ValueError(
            "CONTEXT_SWEEP_INTERVAL_SECONDS must be > 0, "
            f"got {config.context.sweep_interval_seconds}"
        )
    if config.context.stripes < 1:
        raise ValueError(
            f"CALL_STATE_STRIPES must be >= 1, got {config.context.stripes}"
        )

    for name, value in [
        ("INTENT_DEFAULT_THRESHOLD", config.intent.default_threshold),
        ("INTENT_KEYWORD_MIN_SIMILARITY", config.intent.keyword_min_similarity),
        ("INTENT_TOKEN_MIN_SIMILARITY", config.intent.token_min_similarity),
        ("INTENT_LONG_WORD_BOOST", config.intent.long_word_boost),
    ]:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")

    if config.intent.long_word_length < 1:
        raise ValueError(
            f"INTENT_LONG_WORD_LENGTH must be >= 1, got {config.intent.long_word_length}"
        )
    if config.intent.min_token_length < 0:
        raise ValueError(
            f"INTENT_MIN_TOKEN_LENGTH must be >= 0, got {config.intent.min_token_length}"
        )
    if not config.locale.default_locale.strip():
        raise ValueError("DEFAULT_LOCALE must not be empty")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
