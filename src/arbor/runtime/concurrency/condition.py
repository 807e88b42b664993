"""Condition: park tasks until someone signals.

``signal(value)`` resumes every task currently waiting, in the order they
started waiting, each receiving ``value`` from its ``await wait()``.
"""

from __future__ import annotations

from collections import deque
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from .traps import Disarm, Suspend

if TYPE_CHECKING:
    from .task import Task


class Condition:
    """FIFO wait list with broadcast wake-up.

    Example:
        >>> ready = Condition()
        >>> async def consumer(task):
        ...     item = await ready.wait()
        >>> async def producer(task):
        ...     ready.signal("item")
    """

    __slots__ = ("_waiting",)

    def __init__(self) -> None:
        self._waiting: deque[Task[Any]] = deque()

    def __len__(self) -> int:
        return len(self._waiting)

    @property
    def empty(self) -> bool:
        return not self._waiting

    async def wait(self) -> Any:
        """Suspend the running task until the next ``signal``."""
        return await Suspend(self._enqueue)

    def signal(self, value: object = None) -> int:
        """Wake every current waiter with ``value``. Returns how many woke."""
        waiting, self._waiting = self._waiting, deque()
        return sum(task.reactor.wake(task, value) for task in waiting)

    def _enqueue(self, task: Task[Any]) -> Disarm:
        self._waiting.append(task)

        def remove() -> None:
            with suppress(ValueError):
                self._waiting.remove(task)
        return remove
