"""Barrier: a tracked group of tasks with join-all and stop-all.

The barrier does not own its tasks; they belong to whatever parent it was
given (default: the running task). It only remembers membership.

Example:
    >>> async def main(task):
    ...     barrier = Barrier(task)
    ...     for url in urls:
    ...         barrier.spawn(fetch, url)
    ...     try:
    ...         await barrier.wait()
    ...     finally:
    ...         barrier.stop()
"""

from __future__ import annotations

from typing import Any

from arbor.foundation.errors import InvalidStateError

from .task import Spawner, Task, TaskFn, TaskState, T, current_task


def resolve_parent(parent: Spawner | None) -> Spawner:
    """Explicit parent, or the running task."""
    if parent is not None:
        return parent
    if (task := current_task()) is None:
        raise InvalidStateError("no parent given and no task is running")
    return task


class Barrier:
    """Join-all / stop-all over the tasks created through it."""

    __slots__ = ("_parent", "_tasks")

    def __init__(self, parent: Spawner | None = None) -> None:
        self._parent = resolve_parent(parent)
        self._tasks: list[Task[Any]] = []

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def tasks(self) -> tuple[Task[Any], ...]:
        return tuple(self._tasks)

    @property
    def empty(self) -> bool:
        """No member is still running its own code."""
        return all(task.done for task in self._tasks)

    def spawn(self, fn: TaskFn[T], /, *args: Any, **options: Any) -> Task[T]:
        """Create a task under the barrier's parent and track it."""
        task = self._parent.spawn(fn, *args, **options)
        self._tasks.append(task)
        return task

    async def wait(self) -> None:
        """Suspend until every member is terminal, including members added meanwhile.

        Raises:
            Exception: The error of the first failed member, in creation order
        """
        while (pending := next((task for task in self._tasks if not task.done), None)) is not None:
            await pending.join()
        for task in self._tasks:
            if task.status is TaskState.FAILED:
                task.result()

    def stop(self) -> None:
        """Stop every member. Membership is left unchanged."""
        for task in tuple(self._tasks):
            task.stop()
