"""Foundation layer: configuration and error taxonomy shared by the runtime."""

from .config import ArborSettings, LoggingSettings, ReactorSettings, clear_settings_cache, get_settings
from .errors import (
    ArborError,
    DeadlockError,
    ErrorCode,
    FailureReport,
    InvalidStateError,
    ResourceBusy,
    Stop,
    TaskTimeout,
    UnexpectedYield,
    is_fatal_exception,
)

__all__ = [
    "ArborSettings", "LoggingSettings", "ReactorSettings", "clear_settings_cache", "get_settings",
    "ArborError", "DeadlockError", "ErrorCode", "FailureReport", "InvalidStateError",
    "ResourceBusy", "Stop", "TaskTimeout", "UnexpectedYield", "is_fatal_exception",
]
