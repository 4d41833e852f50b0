"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from pullstream.config import get_settings
    >>> settings = get_settings()
    >>> settings.stream.read_size
    65536
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # PULLSTREAM_STREAM_READ_SIZE=4096
    # PULLSTREAM_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, PositiveInt, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PULLSTREAM_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = Field(default=None, description="Force console colors (None = auto-detect)")

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class StreamSettings(BaseSettings):
    """Byte stream reading defaults."""

    model_config = SettingsConfigDict(
        env_prefix="PULLSTREAM_STREAM_",
        extra="ignore",
    )

    read_size: PositiveInt = Field(
        default=65536,
        description="Buffer size allocated for a BYOB pull that carries no explicit request",
    )
    chunk_size: PositiveInt = Field(
        default=65536,
        description="Max bytes read per chunk when adapting an asyncio.StreamReader",
    )


class PullstreamSettings(BaseSettings):
    """Root settings for pullstream.

    Loads configuration from environment variables with PULLSTREAM_ prefix.
    Supports nested configuration and .env files.

    Example environment variables:
        PULLSTREAM_DEBUG=true
        PULLSTREAM_LOG_LEVEL=DEBUG
        PULLSTREAM_LOG_FORMAT=json
        PULLSTREAM_STREAM_READ_SIZE=16384
    """

    model_config = SettingsConfigDict(
        env_prefix="PULLSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings (loaded with PULLSTREAM_LOG_, PULLSTREAM_STREAM_)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)

    @computed_field
    @property
    def effective_log_level(self) -> str:
        """Debug mode forces DEBUG regardless of the configured level."""
        return "DEBUG" if self.debug else self.logging.level


@lru_cache(maxsize=1)
def get_settings() -> PullstreamSettings:
    """Get the global settings instance (cached).

    Example:
        >>> settings = get_settings()
        >>> settings.debug
        False
    """
    return PullstreamSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
