"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    ArborSettings,
    LoggingSettings,
    ReactorSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "ArborSettings",
    "LoggingSettings",
    "ReactorSettings",
    "clear_settings_cache",
    "get_settings",
]
