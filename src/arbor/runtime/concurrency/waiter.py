"""Waiter: join the first N completions of a growing set of tasks.

Completion counts accumulate from the waiter's creation. ``wait(n)`` blocks
until at least ``n`` tracked tasks have terminated in total, then returns the
ones that terminated since the previous ``wait`` call, in completion order.
Tasks still running are left alone.

Example:
    >>> async def main(task):
    ...     barrier = Barrier(task)
    ...     waiter = Waiter(barrier)
    ...     for mirror in mirrors:
    ...         waiter.spawn(download, mirror)
    ...     first, = await waiter.wait(1)
    ...     barrier.stop()  # cancel the slower mirrors
    ...     return first.result()
"""

from __future__ import annotations

from typing import Any

from .barrier import resolve_parent
from .condition import Condition
from .task import Spawner, Task, TaskFn, T


class Waiter:
    """Track tasks and wait for the first ``n`` of them to terminate."""

    __slots__ = ("_parent", "_tasks", "_done", "_returned", "_finished")

    def __init__(self, parent: Spawner | None = None) -> None:
        self._parent = resolve_parent(parent)
        self._tasks: list[Task[Any]] = []
        self._done: list[Task[Any]] = []
        self._returned = 0
        self._finished = Condition()

    @property
    def tasks(self) -> tuple[Task[Any], ...]:
        return tuple(self._tasks)

    @property
    def completed(self) -> int:
        """Tracked tasks that reached a terminal state so far."""
        return len(self._done)

    def spawn(self, fn: TaskFn[T], /, *args: Any, **options: Any) -> Task[T]:
        """Create a task under the waiter's parent and track its completion."""
        task = self._parent.spawn(fn, *args, **options)
        self._tasks.append(task)
        task.add_done_callback(self._complete)
        return task

    async def wait(self, n: int = 1) -> list[Task[Any]]:
        """Suspend until ``n`` tracked tasks have terminated since creation.

        Returns:
            Tasks that terminated since the previous call, in completion order.
            A task is never returned twice.
        """
        if n < 1:
            raise ValueError(f"n must be a positive integer, got {n}")
        while len(self._done) < n:
            await self._finished.wait()
        fresh = self._done[self._returned:]
        self._returned = len(self._done)
        return fresh

    def _complete(self, task: Task[Any]) -> None:
        self._done.append(task)
        self._finished.signal(task)
