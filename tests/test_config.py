"""
Unit Tests for configuration, logging setup and exceptions
"""

import logging

from protocol_bridge.config import Settings, get_settings, reset_settings
from protocol_bridge.exceptions import (
    ConversionError,
    InvalidPayloadError,
    StreamStateError,
    UnsupportedProtocolError,
)
from protocol_bridge.logging_config import setup_logging


class TestSettings:
    """Tests for Settings"""

    def test_defaults(self):
        settings = Settings()

        assert settings.DEBUG is False
        assert settings.LOG_LEVEL == "INFO"
        assert settings.CLAUDE_DEFAULT_MAX_TOKENS == 8192
        assert settings.DEFAULT_REASONING_EFFORT == "auto"
        assert settings.STREAM_LOG_EVENT_LIMIT == 3
        assert settings.STREAM_LOG_PREVIEW_CHARS == 80

    def test_cached_until_reset(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("PROTOCOL_BRIDGE_LOG_LEVEL", "WARNING")

        assert get_settings() is first
        assert get_settings().LOG_LEVEL == "INFO"

        reset_settings()
        assert get_settings().LOG_LEVEL == "WARNING"

    def test_env_prefix_is_required(self, monkeypatch):
        monkeypatch.setenv("CLAUDE_DEFAULT_MAX_TOKENS", "10")
        assert Settings().CLAUDE_DEFAULT_MAX_TOKENS == 8192


class TestLoggingSetup:
    """Tests for setup_logging"""

    def test_uses_configured_level(self, monkeypatch, restore_package_logger):
        monkeypatch.setenv("PROTOCOL_BRIDGE_LOG_LEVEL", "warning")
        reset_settings()

        setup_logging()

        assert restore_package_logger.level == logging.WARNING
        assert restore_package_logger.propagate is False
        assert len(restore_package_logger.handlers) == 1

    def test_debug_overrides_level(self, monkeypatch, restore_package_logger):
        monkeypatch.setenv("PROTOCOL_BRIDGE_DEBUG", "true")
        reset_settings()

        setup_logging()

        assert restore_package_logger.level == logging.DEBUG


class TestExceptions:
    """Tests for exception serialization"""

    def test_conversion_error(self):
        error = ConversionError("bad", source_protocol="openai", field="messages")

        assert str(error) == "bad"
        assert error.to_dict() == {
            "error": "conversion_error",
            "message": "bad",
            "source_protocol": "openai",
            "target_protocol": None,
            "field": "messages",
            "details": {},
        }

    def test_invalid_payload(self):
        error = InvalidPayloadError("Invalid JSON payload", source_protocol="openai", preview="{oops")

        assert isinstance(error, ConversionError)
        assert error.to_dict()["error"] == "invalid_payload"
        assert error.to_dict()["details"] == {"preview": "{oops"}

    def test_unsupported_protocol(self):
        data = UnsupportedProtocolError("gemini").to_dict()

        assert data["error"] == "unsupported_protocol"
        assert data["message"] == "Unsupported protocol: gemini"
        assert data["protocol"] == "gemini"
        assert data["field"] == "protocol"

    def test_stream_state_error(self):
        data = StreamStateError("cannot restore", state_type="ClaudeStreamState").to_dict()

        assert data["error"] == "stream_state_error"
        assert data["state_type"] == "ClaudeStreamState"
