"""Deadline timer queue.

Min-heap of timers keyed by absolute expiry. Cancellation is a soft delete:
the entry stays in the heap and is discarded when it reaches the top.
"""

from __future__ import annotations

import heapq
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass(slots=True, order=True)
class Timer:
    """A scheduled callback. Ordered by (deadline, priority, insertion sequence).

    Lower ``priority`` fires first among timers sharing a deadline.
    """

    deadline: float
    priority: int
    seq: int
    callback: Callable[[], object] = field(compare=False, repr=False)
    _queue: TimerQueue | None = field(default=None, compare=False, repr=False)

    @property
    def active(self) -> bool:
        """Still waiting to fire."""
        return self._queue is not None

    def cancel(self) -> None:
        """Prevent the callback from running. Idempotent, also after firing."""
        if (queue := self._queue) is not None:
            self._queue = None
            queue._live -= 1


class TimerQueue:
    """Priority queue of timers, advanced once per scheduler iteration.

    Example:
        >>> timers = TimerQueue()
        >>> fired = []
        >>> t = timers.schedule(1.0, lambda: fired.append("a"))
        >>> timers.advance(0.5), timers.advance(1.0), fired
        (0, 1, ['a'])
    """

    __slots__ = ("_heap", "_seq", "_live")

    def __init__(self) -> None:
        self._heap: list[Timer] = []
        self._seq = itertools.count()
        self._live = 0

    def __len__(self) -> int:
        return self._live

    def __bool__(self) -> bool:
        return self._live > 0

    def schedule(self, deadline: float, callback: Callable[[], object], *, priority: int = 0) -> Timer:
        """Register ``callback`` to run once the clock reaches ``deadline``."""
        timer = Timer(deadline, priority, next(self._seq), callback, self)
        heapq.heappush(self._heap, timer)
        self._live += 1
        return timer

    def next_deadline(self) -> float | None:
        """Earliest live deadline, or None when no timer is pending."""
        self._prune()
        return self._heap[0].deadline if self._heap else None

    def advance(self, now: float) -> int:
        """Fire every timer whose deadline is <= now, in deadline order.

        Returns:
            Number of callbacks run.
        """
        fired = 0
        while self._heap and self._heap[0].deadline <= now:
            timer = heapq.heappop(self._heap)
            if not timer.active:
                continue
            timer.cancel()
            timer.callback()
            fired += 1
        return fired

    def _prune(self) -> None:
        while self._heap and not self._heap[0].active:
            heapq.heappop(self._heap)
