"""FIFO queue of resumable tasks.

Each entry records what to feed the task on resumption (a value or an
exception to throw). Removal is a soft delete: the slot is blanked and
skipped on a later pop, so removal is O(1) from any position.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .task import Task


@dataclass(slots=True, frozen=True)
class Resumption:
    """One pending resumption of a task."""

    task: Task
    value: object = None
    exc: BaseException | None = None


class ReadyQueue:
    """Resumable contexts in insertion order."""

    __slots__ = ("_queue", "_live")

    def __init__(self) -> None:
        self._queue: deque[list[Resumption | None]] = deque()
        self._live = 0

    def __len__(self) -> int:
        return self._live

    def __bool__(self) -> bool:
        return self._live > 0

    def push(self, task: Task, value: object = None, exc: BaseException | None = None) -> Callable[[], None]:
        """Append a resumption. Returns a callable that removes it again."""
        item: list[Resumption | None] = [Resumption(task, value, exc)]
        self._queue.append(item)
        self._live += 1

        def remove() -> None:
            if item[0] is not None:
                item[0] = None
                self._live -= 1
        return remove

    def pop(self) -> Resumption | None:
        """Oldest live resumption, or None when empty."""
        while self._queue:
            item = self._queue.popleft()
            if (resumption := item[0]) is not None:
                item[0] = None
                self._live -= 1
                return resumption
        return None
