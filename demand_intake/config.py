"""
Centralized configuration with environment variable overrides.

Persona wording, session timings, AI backend settings and guard thresholds
are configurable here. Nothing is hardcoded in the conversation or tool logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from demand_intake.logging_context import install_sender_filter

load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] [%(sender_id)s] %(levelname)s: %(message)s"


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
    return os.getenv(env_var, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class BotConfig:
    """Persona and municipality wording used in replies."""

    persona_name: str = os.getenv("BOT_PERSONA_NAME", "Luma")
    secretariat: str = os.getenv("BOT_SECRETARIAT", "SEMSUR")
    city: str = os.getenv("BOT_CITY", "Parnamirim")
    timezone: str = os.getenv("BOT_TIMEZONE", "America/Fortaleza")
    enabled: bool = _safe_bool("BOT_ENABLED", "true")


@dataclass(frozen=True)
class SessionConfig:
    """Session lifetime and bookkeeping limits."""

    idle_warning_minutes: int = _safe_int("SESSION_IDLE_WARNING_MINUTES", "10")
    ttl_minutes: int = _safe_int("SESSION_TTL_MINUTES", "30")
    sweep_interval_sec: float = _safe_float("SESSION_SWEEP_INTERVAL", "60")
    log_size: int = _safe_int("SESSION_LOG_SIZE", "10")
    ai_context_turns: int = _safe_int("SESSION_AI_CONTEXT_TURNS", "6")
    recent_replies: int = _safe_int("SESSION_RECENT_REPLIES", "5")
    seen_message_cache: int = _safe_int("SEEN_MESSAGE_CACHE", "1000")


@dataclass(frozen=True)
class AIConfig:
    """Generative AI backend settings."""

    api_key: str = os.getenv("GEMINI_API_KEY", "")
    model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
    base_url: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )
    timeout_sec: float = _safe_float("AI_TIMEOUT", "30")
    text_temperature: float = _safe_float("AI_TEXT_TEMPERATURE", "0.7")
    media_temperature: float = _safe_float("AI_MEDIA_TEMPERATURE", "0.4")
    audio_temperature: float = _safe_float("AI_AUDIO_TEMPERATURE", "0.3")
    max_output_tokens: int = _safe_int("AI_MAX_OUTPUT_TOKENS", "1024")
    audio_replies: bool = _safe_bool("AUDIO_REPLIES_ENABLED", "true")
    tts_model: str = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
    tts_voice: str = os.getenv("GEMINI_TTS_VOICE", "Kore")
    tts_max_chars: int = _safe_int("TTS_MAX_CHARS", "800")
    tts_sample_rate: int = _safe_int("TTS_SAMPLE_RATE", "24000")


@dataclass(frozen=True)
class GeoConfig:
    """Reverse geocoding settings."""

    enabled: bool = _safe_bool("GEO_ENABLED", "true")
    nominatim_url: str = os.getenv(
        "NOMINATIM_URL", "https://nominatim.openstreetmap.org/reverse"
    )
    user_agent: str = os.getenv("GEO_USER_AGENT", "demand-intake/0.1")
    timeout_sec: float = _safe_float("GEO_TIMEOUT", "10")


@dataclass(frozen=True)
class GuardConfig:
    """Anti-repetition thresholds."""

    similarity_threshold: float = _safe_float("REPETITION_SIMILARITY_THRESHOLD", "0.7")
    min_word_length: int = _safe_int("REPETITION_MIN_WORD_LENGTH", "4")


@dataclass(frozen=True)
class StoreConfig:
    """Session store backend selection."""

    backend: str = os.getenv("SESSION_STORE", "memory")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    key_prefix: str = os.getenv("SESSION_KEY_PREFIX", "intake:session:")


@dataclass(frozen=True)
class MediaConfig:
    """Inbound media and outbound message limits."""

    max_video_bytes: int = _safe_int("MAX_VIDEO_BYTES", str(10 * 1024 * 1024))
    download_timeout_sec: float = _safe_float("MEDIA_DOWNLOAD_TIMEOUT", "20")
    max_message_chars: int = _safe_int("MAX_MESSAGE_CHARS", "4000")
    delivery_attempts: int = _safe_int("DELIVERY_ATTEMPTS", "3")
    delivery_backoff_sec: float = _safe_float("DELIVERY_BACKOFF", "0.5")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    bot: BotConfig = field(default_factory=BotConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    ai: AIConfig = field(default_factory=AIConfig)
    geo: GeoConfig = field(default_factory=GeoConfig)
    guard: GuardConfig = field(default_factory=GuardConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.session.idle_warning_minutes < 1:
        raise ValueError(
            "SESSION_IDLE_WARNING_MINUTES must be >= 1, "
            f"got {config.session.idle_warning_minutes}"
        )
    if config.session.ttl_minutes <= config.session.idle_warning_minutes:
        raise ValueError(
            "SESSION_TTL_MINUTES must be greater than SESSION_IDLE_WARNING_MINUTES, "
            f"got {config.session.ttl_minutes}"
        )
    if config.session.sweep_interval_sec <= 0:
        raise ValueError(
            f"SESSION_SWEEP_INTERVAL must be > 0, got {config.session.sweep_interval_sec}"
        )
    if config.session.log_size < 1:
        raise ValueError(f"SESSION_LOG_SIZE must be >= 1, got {config.session.log_size}")
    if config.session.recent_replies < 1:
        raise ValueError(
            f"SESSION_RECENT_REPLIES must be >= 1, got {config.session.recent_replies}"
        )
    if config.ai.timeout_sec <= 0:
        raise ValueError(f"AI_TIMEOUT must be > 0, got {config.ai.timeout_sec}")
    if config.ai.tts_max_chars < 1:
        raise ValueError(f"TTS_MAX_CHARS must be >= 1, got {config.ai.tts_max_chars}")

    for name, value in [
        ("AI_TEXT_TEMPERATURE", config.ai.text_temperature),
        ("AI_MEDIA_TEMPERATURE", config.ai.media_temperature),
        ("AI_AUDIO_TEMPERATURE", config.ai.audio_temperature),
    ]:
        if not 0.0 <= value <= 2.0:
            raise ValueError(f"{name} must be between 0.0 and 2.0, got {value}")

    if not 0.0 < config.guard.similarity_threshold <= 1.0:
        raise ValueError(
            "REPETITION_SIMILARITY_THRESHOLD must be in (0.0, 1.0], "
            f"got {config.guard.similarity_threshold}"
        )
    if config.store.backend not in ("memory", "redis"):
        raise ValueError(
            f"SESSION_STORE must be 'memory' or 'redis', got {config.store.backend!r}"
        )
    if config.media.max_message_chars < 100:
        raise ValueError(
            f"MAX_MESSAGE_CHARS must be >= 100, got {config.media.max_message_chars}"
        )
    if config.media.delivery_attempts < 1:
        raise ValueError(
            f"DELIVERY_ATTEMPTS must be >= 1, got {config.media.delivery_attempts}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_sender_filter()
    logger.info(
        "Configuration loaded for %s (%s)", config.bot.secretariat, config.bot.city
    )
    return config


# Singleton instance
settings = load_config()
