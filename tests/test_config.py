"""Tests for configuration loading and validation."""

import pytest

from demand_intake.config import (
    AIConfig,
    AppConfig,
    GuardConfig,
    MediaConfig,
    SessionConfig,
    StoreConfig,
    _safe_bool,
    _safe_float,
    _safe_int,
    _validate_config,
)


def _override(section_cls, **values):
    """Build a frozen config section with some fields replaced."""
    section = section_cls.__new__(section_cls)
    defaults = section_cls()
    for name in defaults.__dataclass_fields__:
        object.__setattr__(section, name, values.get(name, getattr(defaults, name)))
    return section


def _config(**sections) -> AppConfig:
    config = AppConfig.__new__(AppConfig)
    defaults = AppConfig()
    for name in defaults.__dataclass_fields__:
        object.__setattr__(config, name, sections.get(name, getattr(defaults, name)))
    return config


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_ttl_must_exceed_idle_warning(self):
        config = _config(session=_override(SessionConfig, idle_warning_minutes=30, ttl_minutes=30))
        with pytest.raises(ValueError, match="SESSION_TTL_MINUTES"):
            _validate_config(config)

    def test_idle_warning_must_be_positive(self):
        config = _config(session=_override(SessionConfig, idle_warning_minutes=0))
        with pytest.raises(ValueError, match="SESSION_IDLE_WARNING_MINUTES"):
            _validate_config(config)

    def test_sweep_interval_must_be_positive(self):
        config = _config(session=_override(SessionConfig, sweep_interval_sec=0))
        with pytest.raises(ValueError, match="SESSION_SWEEP_INTERVAL"):
            _validate_config(config)

    def test_invalid_temperature_too_high(self):
        config = _config(ai=_override(AIConfig, text_temperature=3.0))
        with pytest.raises(ValueError, match="AI_TEXT_TEMPERATURE"):
            _validate_config(config)

    def test_invalid_temperature_negative(self):
        config = _config(ai=_override(AIConfig, media_temperature=-0.5))
        with pytest.raises(ValueError, match="AI_MEDIA_TEMPERATURE"):
            _validate_config(config)

    def test_invalid_ai_timeout(self):
        config = _config(ai=_override(AIConfig, timeout_sec=0))
        with pytest.raises(ValueError, match="AI_TIMEOUT"):
            _validate_config(config)

    def test_tts_limit_must_be_positive(self):
        config = _config(ai=_override(AIConfig, tts_max_chars=0))
        with pytest.raises(ValueError, match="TTS_MAX_CHARS"):
            _validate_config(config)

    def test_invalid_similarity_threshold(self):
        config = _config(guard=_override(GuardConfig, similarity_threshold=1.5))
        with pytest.raises(ValueError, match="REPETITION_SIMILARITY_THRESHOLD"):
            _validate_config(config)

    def test_unknown_store_backend(self):
        config = _config(store=_override(StoreConfig, backend="postgres"))
        with pytest.raises(ValueError, match="SESSION_STORE"):
            _validate_config(config)

    def test_message_limit_too_small(self):
        config = _config(media=_override(MediaConfig, max_message_chars=50))
        with pytest.raises(ValueError, match="MAX_MESSAGE_CHARS"):
            _validate_config(config)

    def test_delivery_attempts_at_least_one(self):
        config = _config(media=_override(MediaConfig, delivery_attempts=0))
        with pytest.raises(ValueError, match="DELIVERY_ATTEMPTS"):
            _validate_config(config)


class TestEnvParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_int_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("SESSION_TTL_TEST", "thirty")
        with pytest.raises(ValueError, match="SESSION_TTL_TEST"):
            _safe_int("SESSION_TTL_TEST", "30")

    def test_safe_float_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("AI_TIMEOUT_TEST", "fast")
        with pytest.raises(ValueError, match="AI_TIMEOUT_TEST"):
            _safe_float("AI_TIMEOUT_TEST", "30")

    @pytest.mark.parametrize("raw, expected", [
        ("true", True), ("1", True), ("YES", True), ("on", True),
        ("false", False), ("0", False), ("", False),
    ])
    def test_safe_bool(self, monkeypatch, raw, expected):
        monkeypatch.setenv("BOT_ENABLED_TEST", raw)
        assert _safe_bool("BOT_ENABLED_TEST", "true") is expected
