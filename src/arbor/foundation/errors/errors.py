"""Error taxonomy for the task runtime.

Three families matter to the scheduler:
    - Recoverable errors: any ``Exception`` raised by task code. Captured as
      the task's result and re-raised to whoever waits on it.
    - Non-recoverable errors: ``BaseException`` subclasses that signal the
      process itself is compromised. Never captured by a task boundary.
    - Control signals: ``Stop`` (full task cancellation) and ``TaskTimeout``
      (scoped cancellation raised out of a timeout block).
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from arbor.runtime.concurrency.timeout import TimeoutScope


class ErrorCode(StrEnum):
    """Machine-readable classification of runtime errors."""
    TASK_FAILED = "TASK_FAILED"
    TIMEOUT = "TIMEOUT"
    DEADLOCK = "DEADLOCK"
    RESOURCE_BUSY = "RESOURCE_BUSY"
    INVALID_STATE = "INVALID_STATE"
    UNEXPECTED_YIELD = "UNEXPECTED_YIELD"


class ArborError(Exception):
    """Base class for errors raised by the runtime itself."""

    code: ErrorCode = ErrorCode.TASK_FAILED

    def __init__(self, message: str, *, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class TaskTimeout(ArborError, TimeoutError):
    """Raised out of a ``with_timeout`` block whose deadline expired.

    Catchable like any other error; left unhandled it fails the enclosing
    task rather than stopping it.
    """

    code = ErrorCode.TIMEOUT

    def __init__(self, scope: TimeoutScope) -> None:
        super().__init__(f"timed out after {scope.seconds}s")
        self.scope = scope


class DeadlockError(ArborError):
    """No task can ever become ready again but the root is not finished."""

    code = ErrorCode.DEADLOCK


class ResourceBusy(ArborError):
    """Another task is already waiting on the same readiness interest."""

    code = ErrorCode.RESOURCE_BUSY


class InvalidStateError(ArborError):
    """Operation not valid for the task's current lifecycle state."""

    code = ErrorCode.INVALID_STATE


class UnexpectedYield(ArborError):
    """Task code awaited something that is not a runtime suspension point."""

    code = ErrorCode.UNEXPECTED_YIELD


class Stop(BaseException):
    """Cooperative cancellation signal delivered at a suspension point.

    Derives from ``BaseException`` so ``except Exception`` blocks in task code
    don't swallow it. ``finally`` clauses and context managers still run.
    """


def is_fatal_exception(exc: BaseException) -> bool:
    """Check if an exception must escape task boundaries and the reactor.

    Args:
        exc: The exception to classify.

    Returns:
        True for process-level failures (interrupts, exits, memory exhaustion).
    """
    if isinstance(exc, Stop):
        return False
    if isinstance(exc, MemoryError):
        return True
    return not isinstance(exc, Exception)
