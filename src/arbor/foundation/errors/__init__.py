"""Unified error handling for arbor.

- ErrorCode: Machine-readable classification
- ArborError and subclasses: errors raised by the runtime
- Stop: the cooperative cancellation signal
- FailureReport: structured diagnostics for failed tasks
"""

from .errors import (
    ArborError,
    DeadlockError,
    ErrorCode,
    InvalidStateError,
    ResourceBusy,
    Stop,
    TaskTimeout,
    UnexpectedYield,
    is_fatal_exception,
)
from .types import FailureReport, JsonDict, JsonMapping, JsonPrimitive, JsonValue

__all__ = [
    # Core errors
    "ErrorCode", "ArborError", "TaskTimeout", "DeadlockError", "ResourceBusy",
    "InvalidStateError", "UnexpectedYield", "is_fatal_exception",
    # Control signals
    "Stop",
    # Diagnostics
    "FailureReport",
    # JSON aliases
    "JsonDict", "JsonMapping", "JsonPrimitive", "JsonValue",
]
