"""
Configuration Management Module

Conversion defaults, overridable via environment variables prefixed with
``PROTOCOL_BRIDGE_`` or a .env file. The defaults reproduce the wire
behavior expected by both protocols, so no configuration is required.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Converter Configuration Class

    Each field can be overridden by ``PROTOCOL_BRIDGE_<FIELD>``.
    """

    # Logging Config
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Anthropic Messages Config
    # max_tokens is mandatory on Anthropic requests; used when the source omits it
    CLAUDE_DEFAULT_MAX_TOKENS: int = 8192

    # Reasoning Config
    # Effort emitted when a thinking budget is "auto" (-1)
    DEFAULT_REASONING_EFFORT: str = "auto"

    # Stream Debug Logging
    # Number of IR events logged per stream converter
    STREAM_LOG_EVENT_LIMIT: int = 3
    # Max characters of event text included in debug previews
    STREAM_LOG_PREVIEW_CHARS: int = 80

    model_config = SettingsConfigDict(
        env_prefix="PROTOCOL_BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get converter configuration (Singleton)

    Returns:
        Settings: Converter configuration instance
    """
    return Settings()


def reset_settings() -> None:
    """Drop the cached configuration so the next access re-reads the environment."""
    get_settings.cache_clear()
