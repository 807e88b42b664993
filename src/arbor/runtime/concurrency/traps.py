"""Suspension points.

Task code suspends by awaiting a Trap. The trap travels up through the
coroutine to the reactor, which calls ``park`` with the task that yielded
it. ``park`` arms whatever will later wake the task (a timer, a readiness
interest, a waiter list) and returns a callable that disarms it again, so a
stop or timeout can pull the task out of its wait.

Example:
    >>> async def worker(task):
    ...     await sleep(0.5)           # timer
    ...     await checkpoint()         # explicit yield to the scheduler
    ...     await wait_readable(sock)  # readiness source
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from .selector import READ, WRITE

if TYPE_CHECKING:
    from .reactor import Reactor
    from .task import Task

Disarm = Callable[[], None]


def _noop() -> None:
    return None


class Trap:
    """Base awaitable understood by the reactor."""

    __slots__ = ()

    def park(self, reactor: Reactor, task: Task) -> Disarm:
        raise NotImplementedError

    def __await__(self) -> Generator[Trap, Any, Any]:
        return (yield self)


@dataclass(slots=True, frozen=True)
class Reschedule(Trap):
    """Go to the back of the ready queue."""

    def park(self, reactor: Reactor, task: Task) -> Disarm:
        reactor.wake(task)
        return _noop


@dataclass(slots=True, frozen=True)
class Sleep(Trap):
    """Wake after ``seconds`` on the reactor's clock."""

    seconds: float

    def park(self, reactor: Reactor, task: Task) -> Disarm:
        timer = reactor.timers.schedule(reactor.clock.now() + max(0.0, self.seconds), partial(reactor.wake, task))
        return timer.cancel


@dataclass(slots=True, frozen=True)
class WaitIO(Trap):
    """Wake when ``fileobj`` is ready for the given direction."""

    fileobj: object
    event: int

    def park(self, reactor: Reactor, task: Task) -> Disarm:
        return reactor.selector.register(self.fileobj, self.event, partial(reactor.wake, task))


@dataclass(slots=True, frozen=True)
class Join(Trap):
    """Wake once ``target`` reaches a terminal state."""

    target: Task

    def park(self, reactor: Reactor, task: Task) -> Disarm:
        return self.target._add_waiter(task)


@dataclass(slots=True, frozen=True)
class Suspend(Trap):
    """Generic park: ``register(task)`` stores the task somewhere that will
    later call ``reactor.wake(task, value)``; it returns the disarm callable."""

    register: Callable[[Task], Disarm]

    def park(self, reactor: Reactor, task: Task) -> Disarm:
        return self.register(task)


# ─────────────────────────────────────────────────────────────────────────────
# Public suspension points
# ─────────────────────────────────────────────────────────────────────────────


async def sleep(seconds: float) -> None:
    """Suspend the running task for ``seconds``."""
    await Sleep(seconds)


async def checkpoint() -> None:
    """Yield to the scheduler; pending stops and timeouts are observed here.

    Example:
        >>> async def process_many(task, items):
        ...     for item in items:
        ...         process_sync(item)
        ...         await checkpoint()
    """
    await Reschedule()


async def wait_readable(fileobj: object) -> None:
    """Suspend until ``fileobj`` is readable."""
    await WaitIO(fileobj, READ)


async def wait_writable(fileobj: object) -> None:
    """Suspend until ``fileobj`` is writable."""
    await WaitIO(fileobj, WRITE)
