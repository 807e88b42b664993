"""Scoped deadlines inside a task.

A TimeoutScope arms a timer on entry. If the timer fires before the block
exits, ``TaskTimeout`` is raised inside the task at its current or next
suspension point, unwinding only the block. Exiting the block first cancels
the timer. Scopes nest; each keeps its own deadline.

Example:
    >>> async def main(task):
    ...     try:
    ...         with task.with_timeout(1.0):
    ...             await sleep(100)
    ...     except TaskTimeout:
    ...         return "gave up"
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from arbor.foundation.errors import InvalidStateError, TaskTimeout

from .task import current_task

if TYPE_CHECKING:
    from types import TracebackType

    from .task import Task
    from .timers import Timer


class TimeoutScope:
    """Deadline over a block of one task's code. Usable with ``with`` or ``async with``.

    Attributes:
        seconds: Relative timeout requested
        deadline: Absolute expiry on the reactor clock (set on entry)
        fired: Whether the deadline expired while the block was active
    """

    __slots__ = ("task", "seconds", "deadline", "fired", "_timer")

    def __init__(self, task: Task[Any], seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"timeout must be non-negative, got {seconds}")
        self.task = task
        self.seconds = seconds
        self.deadline: float | None = None
        self.fired = False
        self._timer: Timer | None = None

    def __repr__(self) -> str:
        return f"TimeoutScope(seconds={self.seconds}, deadline={self.deadline}, fired={self.fired})"

    def __enter__(self) -> TimeoutScope:
        if self._timer is not None or self.deadline is not None:
            raise InvalidStateError("a TimeoutScope can only be entered once")
        reactor = self.task.reactor
        self.deadline = reactor.clock.now() + self.seconds
        self.task._timeout_depth += 1
        # Inner scopes fire first on a shared deadline
        self._timer = reactor.timers.schedule(self.deadline, self._expire, priority=-self.task._timeout_depth)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.task._timeout_depth -= 1
        pending = self.task._interrupt
        if isinstance(pending, TaskTimeout) and pending.scope is self:
            self.task._interrupt = None
        return False

    async def __aenter__(self) -> TimeoutScope:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        return self.__exit__(exc_type, exc_val, exc_tb)

    def _expire(self) -> None:
        self._timer = None
        self.fired = True
        self.task._log.debug("timeout expired", seconds=self.seconds)
        self.task.reactor.interrupt(self.task, TaskTimeout(self))


def with_timeout(seconds: float, task: Task[Any] | None = None) -> TimeoutScope:
    """Timeout scope for ``task`` (default: the running task)."""
    if (owner := task or current_task()) is None:
        raise InvalidStateError("with_timeout() needs a running task")
    return TimeoutScope(owner, seconds)
