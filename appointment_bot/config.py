"""
Centralized configuration with environment variable overrides.

Model settings, channel credentials, and the scheduling tunables (debounce
delay, idempotency window, conflict policy) are configurable here. Nothing
is hardcoded in extraction or booking logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


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


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class ModelConfig:
    """Language-model completion settings."""

    llm_model: str = os.getenv("LLM_MODEL", "gpt-4o-mini")
    llm_temperature: float = _safe_float("LLM_TEMPERATURE", "0.3")
    extraction_temperature: float = _safe_float("EXTRACTION_TEMPERATURE", "0.0")
    max_tokens: int = _safe_int("LLM_MAX_TOKENS", "500")
    timeout_sec: float = _safe_float("LLM_TIMEOUT_SEC", "30.0")


@dataclass(frozen=True)
class ChannelConfig:
    """Messaging channel (WhatsApp gateway) settings."""

    api_url: str = os.getenv("CHANNEL_API_URL", "http://localhost:8080")
    api_key: str = os.getenv("CHANNEL_API_KEY", "")
    timeout_sec: float = _safe_float("CHANNEL_TIMEOUT_SEC", "15.0")


@dataclass(frozen=True)
class SchedulingConfig:
    """Booking pipeline tunables."""

    timezone: str = os.getenv("TIMEZONE", "America/Sao_Paulo")
    debounce_delay_sec: float = _safe_float("DEBOUNCE_DELAY_SEC", "15.0")
    idempotency_window_minutes: int = _safe_int("IDEMPOTENCY_WINDOW_MINUTES", "5")
    availability_days: int = _safe_int("AVAILABILITY_DAYS", "7")
    default_duration_minutes: int = _safe_int("DEFAULT_DURATION_MINUTES", "30")
    block_conflicting_bookings: bool = _safe_bool("BLOCK_CONFLICTING_BOOKINGS", "true")
    model_fallback_enabled: bool = _safe_bool("MODEL_FALLBACK_ENABLED", "true")
    history_limit: int = _safe_int("HISTORY_LIMIT", "50")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    model: ModelConfig = field(default_factory=ModelConfig)
    channel: ChannelConfig = field(default_factory=ChannelConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "appointment-bot")
    seed_data_path: str = os.getenv("SEED_DATA_PATH", "")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    for name, value in [
        ("LLM_TEMPERATURE", config.model.llm_temperature),
        ("EXTRACTION_TEMPERATURE", config.model.extraction_temperature),
    ]:
        if not 0.0 <= value <= 2.0:
            raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")
    if config.model.max_tokens < 1:
        raise ValueError(f"LLM_MAX_TOKENS must be >= 1, got {config.model.max_tokens}")
    if config.model.timeout_sec <= 0:
        raise ValueError(f"LLM_TIMEOUT_SEC must be > 0, got {config.model.timeout_sec}")
    if config.channel.timeout_sec <= 0:
        raise ValueError(
            f"CHANNEL_TIMEOUT_SEC must be > 0, got {config.channel.timeout_sec}"
        )

    sched = config.scheduling
    if sched.debounce_delay_sec < 0:
        raise ValueError(f"DEBOUNCE_DELAY_SEC must be >= 0, got {sched.debounce_delay_sec}")
    if sched.idempotency_window_minutes < 1:
        raise ValueError(
            "IDEMPOTENCY_WINDOW_MINUTES must be >= 1, "
            f"got {sched.idempotency_window_minutes}"
        )
    if not 1 <= sched.availability_days <= 31:
        raise ValueError(
            f"AVAILABILITY_DAYS must be between 1 and 31, got {sched.availability_days}"
        )
    if sched.default_duration_minutes < 5:
        raise ValueError(
            "DEFAULT_DURATION_MINUTES must be >= 5, "
            f"got {sched.default_duration_minutes}"
        )
    if sched.history_limit < 2:
        raise ValueError(f"HISTORY_LIMIT must be >= 2, got {sched.history_limit}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
