"""Semaphore: bounded fan-out with FIFO admission.

Every ``spawn`` returns a Task immediately. Up to ``limit`` of them are
admitted (started) at once; the rest wait ``initialized`` in a FIFO queue
and are admitted one by one as admitted tasks terminate.

A queued task that is stopped before admission leaves the queue at once,
ends ``stopped`` without ever running, and never occupies a slot.

Example:
    >>> async def main(task):
    ...     semaphore = Semaphore(2, task)
    ...     for job in range(5):
    ...         semaphore.spawn(work, job)
    ...     await semaphore.wait()   # 3 rounds of 2
"""

from __future__ import annotations

from collections import deque
from contextlib import suppress
from typing import Any

from .barrier import Barrier
from .task import Spawner, Task, TaskFn, T


class Semaphore:
    """Limit how many tracked tasks run concurrently.

    Args:
        limit: Maximum number of admitted, non-terminal tasks
        parent: Owner of created tasks (default: the running task)
    """

    __slots__ = ("limit", "_barrier", "_active", "_pending")

    def __init__(self, limit: int, parent: Spawner | None = None) -> None:
        if limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit}")
        self.limit = limit
        self._barrier = Barrier(parent)
        self._active: dict[int, Task[Any]] = {}
        self._pending: deque[Task[Any]] = deque()

    def __repr__(self) -> str:
        return f"Semaphore(limit={self.limit}, running={self.running}, pending={self.pending})"

    @property
    def running(self) -> int:
        """Admitted tasks that have not terminated."""
        return len(self._active)

    @property
    def pending(self) -> int:
        """Requests waiting for a free slot."""
        return len(self._pending)

    @property
    def blocking(self) -> bool:
        """Whether the next ``spawn`` would be queued."""
        return len(self._active) >= self.limit

    @property
    def tasks(self) -> tuple[Task[Any], ...]:
        return self._barrier.tasks

    def spawn(self, fn: TaskFn[T], /, *args: Any, **options: Any) -> Task[T]:
        """Create a tracked task; start it now if a slot is free, else queue it."""
        task = self._barrier.spawn(fn, *args, start=False, **options)
        task.add_done_callback(self._release)
        if self.blocking:
            self._pending.append(task)
        else:
            self._admit(task)
        return task

    async def wait(self) -> None:
        """Join every tracked task (running, queued and finished)."""
        await self._barrier.wait()

    def stop(self) -> None:
        """Stop every tracked task; queued ones are dropped without running."""
        self._barrier.stop()

    def _admit(self, task: Task[Any]) -> None:
        self._active[task.task_id] = task
        task.start()

    def _release(self, task: Task[Any]) -> None:
        if self._active.pop(task.task_id, None) is None:
            with suppress(ValueError):
                self._pending.remove(task)
        while self._pending and not self.blocking:
            candidate = self._pending.popleft()
            if not candidate.done:
                self._admit(candidate)
