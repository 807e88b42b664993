"""Runtime configuration read from ``ARBOR_*`` environment variables.

Two sections, each loadable on its own: ``LoggingSettings`` decides how
events are rendered, ``ReactorSettings`` tunes the scheduler. A ``.env``
file in the working directory is honoured by the root ``ArborSettings``.

Example:
    >>> from arbor.foundation.config import get_settings
    >>> get_settings().reactor.max_idle
    60.0

    # ARBOR_REACTOR_MAX_IDLE=5 caps each blocking select at five seconds
    # ARBOR_LOG_FORMAT=json switches to JSON lines
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, PositiveFloat, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """How runtime events are rendered (``ARBOR_LOG_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="ARBOR_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"
    colors: bool | None = Field(default=None, description="Force colored console output (None = auto)")

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class ReactorSettings(BaseSettings):
    """Scheduler behaviour knobs."""

    model_config = SettingsConfigDict(
        env_prefix="ARBOR_REACTOR_",
        extra="ignore",
    )

    report_unobserved_failures: bool = Field(
        default=True,
        description="Log a warning when a task fails and nobody is waiting on it",
    )
    max_idle: PositiveFloat = Field(
        default=60.0,
        description="Upper bound in seconds for a single blocking wait on the readiness source",
    )
    trace_steps: bool = Field(default=False, description="Debug-log every task resumption")


class ArborSettings(BaseSettings):
    """Root settings for the arbor runtime.

    Loads configuration from environment variables with ARBOR_ prefix.

    Example environment variables:
        ARBOR_DEBUG=true
        ARBOR_LOG_LEVEL=DEBUG
        ARBOR_LOG_FORMAT=json
        ARBOR_REACTOR_MAX_IDLE=5
        ARBOR_REACTOR_REPORT_UNOBSERVED_FAILURES=false
    """

    model_config = SettingsConfigDict(
        env_prefix="ARBOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings (loaded with ARBOR_LOG_, ARBOR_REACTOR_)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    reactor: ReactorSettings = Field(default_factory=ReactorSettings)

    @computed_field
    @property
    def effective_log_level(self) -> str:
        """Debug mode forces DEBUG logging regardless of the configured level."""
        return "DEBUG" if self.debug else self.logging.level


@lru_cache(maxsize=1)
def get_settings() -> ArborSettings:
    """Process-wide settings, read from the environment on first use.

    Reactors created without an explicit ``settings`` argument use this.
    """
    return ArborSettings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next ``get_settings()`` rereads the environment."""
    get_settings.cache_clear()
