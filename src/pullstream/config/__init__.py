"""Configuration management using pydantic-settings."""

from .settings import (
    LoggingSettings,
    PullstreamSettings,
    StreamSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "LoggingSettings",
    "PullstreamSettings",
    "StreamSettings",
    "clear_settings_cache",
    "get_settings",
]
