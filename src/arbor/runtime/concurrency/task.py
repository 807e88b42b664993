"""Tasks: the unit of cooperatively scheduled, cancellable work.

A Task wraps one coroutine and sits in a strict parent/child tree. It moves
through ``initialized -> running -> {complete, failed, stopped}`` (or straight
from ``initialized`` to ``stopped``) and writes its result exactly once.

Key Features:
    - Structured lifetime: a task is ``finished`` only when its own code is
      terminal and every non-transient child is finished
    - Transient children: excluded from ``finished`` and promoted to the
      grandparent instead of being stopped when their parent terminates
    - One-shot result cell: any number of waiters resume on the single
      terminal transition

Example:
    >>> async def fetch(task, url):
    ...     await sleep(1)
    ...     return url.upper()
    >>>
    >>> async def main(task):
    ...     a = task.spawn(fetch, "a")
    ...     b = task.spawn(fetch, "b")
    ...     return [await a.wait(), await b.wait()]
    >>>
    >>> run_reactor(main)
    ['A', 'B']
"""

from __future__ import annotations

import itertools
import weakref
from collections.abc import Callable, Coroutine, Iterator
from contextlib import suppress
from contextvars import ContextVar
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from arbor.foundation.errors import InvalidStateError

from .traps import Disarm, Join

if TYPE_CHECKING:
    from arbor.runtime.observability.logging import BoundLogger

    from .reactor import Reactor
    from .timeout import TimeoutScope

T = TypeVar("T")

TaskFn = Callable[..., Coroutine[Any, Any, T]]

# Task whose coroutine is currently on the stack
_current_task: ContextVar[Task[Any] | None] = ContextVar("current_task", default=None)

_task_ids = itertools.count(1)


class TaskState(StrEnum):
    """Task lifecycle states."""
    INITIALIZED = "initialized"  # Created, never resumed
    RUNNING = "running"          # Resumed at least once
    COMPLETE = "complete"        # Returned normally
    FAILED = "failed"            # Raised an error
    STOPPED = "stopped"          # Unwound by a stop request

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({TaskState.COMPLETE, TaskState.FAILED, TaskState.STOPPED})


class Spawner(Protocol):
    """Anything tasks can be created under: a Task or a grouping primitive."""

    def spawn(self, fn: TaskFn[T], /, *args: Any, **options: Any) -> Task[T]: ...


class Task(Generic[T]):
    """Handle to one coroutine in the task tree.

    Tasks are created by the reactor (the root) or by ``spawn`` on another
    task; never instantiate directly.

    Attributes:
        task_id: Process-unique identifier, stable across reparenting
        name: Human-readable label (defaults to the function's qualname)
        transient: Excluded from ancestors' ``finished``; promoted on parent exit
    """

    __slots__ = (
        "task_id", "name", "transient", "_reactor", "_coro", "_state", "_parent", "_children",
        "_value", "_error", "_waiters", "_callbacks", "_stopping", "_interrupt", "_parked",
        "_disarm", "_unschedule", "_on_stack", "_held", "_timeout_depth", "_log", "__weakref__",
    )

    def __init__(self, reactor: Reactor, name: str, *, transient: bool = False) -> None:
        self.task_id: int = next(_task_ids)
        self.name = name
        self.transient = transient
        self._reactor = reactor
        self._coro: Coroutine[Any, Any, T] | None = None
        self._state = TaskState.INITIALIZED
        self._parent: weakref.ref[Task[Any]] | None = None
        self._children: dict[int, Task[Any]] = {}
        self._value: T | None = None
        self._error: BaseException | None = None
        self._waiters: list[Task[Any]] = []
        self._callbacks: list[Callable[[Task[T]], object]] = []
        self._stopping = False
        self._interrupt: BaseException | None = None
        self._parked = False
        self._disarm: Disarm | None = None
        self._unschedule: Disarm | None = None
        self._on_stack = False
        self._held = False
        self._timeout_depth = 0
        self._log: BoundLogger = reactor.log.bind_task(self.task_id, name, transient=transient)

    def __repr__(self) -> str:
        flag = " transient" if self.transient else ""
        return f"<Task {self.name}#{self.task_id} {self._state}{flag}>"

    # ─────────────────────────────────────────────────────────────────────
    # State
    # ─────────────────────────────────────────────────────────────────────

    @property
    def status(self) -> TaskState:
        """Current lifecycle state."""
        return self._state

    @property
    def done(self) -> bool:
        """Own code has reached a terminal state."""
        return self._state.terminal

    @property
    def finished(self) -> bool:
        """Own code terminal and every non-transient child finished."""
        return self._state.terminal and all(
            child.finished for child in self._children.values() if not child.transient
        )

    @property
    def stopping(self) -> bool:
        """A stop was requested and has not yet unwound the task."""
        return self._stopping and not self.done

    @property
    def reactor(self) -> Reactor:
        return self._reactor

    @property
    def parent(self) -> Task[Any] | None:
        return self._parent() if self._parent is not None else None

    @property
    def children(self) -> tuple[Task[Any], ...]:
        """Snapshot of owned children, in creation order."""
        return tuple(self._children.values())

    def walk(self) -> Iterator[tuple[int, Task[Any]]]:
        """Depth-first ``(depth, task)`` pairs for this subtree."""
        stack: list[tuple[int, Task[Any]]] = [(0, self)]
        while stack:
            depth, task = stack.pop()
            yield depth, task
            stack.extend((depth + 1, child) for child in reversed(task.children))

    # ─────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────

    def spawn(
        self,
        fn: TaskFn[T],
        /,
        *args: Any,
        transient: bool = False,
        name: str | None = None,
        start: bool = True,
        **kwargs: Any,
    ) -> Task[T]:
        """Create a child task running ``fn(child, *args, **kwargs)``.

        Args:
            fn: Async function; receives the new task as its first argument
            transient: Mark the child transient
            name: Optional label (defaults to ``fn.__qualname__``)
            start: False leaves the child ``initialized`` until ``start()``

        Raises:
            InvalidStateError: If this task's own code already terminated
        """
        if self.done:
            raise InvalidStateError(f"cannot spawn under {self!r}: its code has already finished")
        return self._reactor.spawn(fn, args, kwargs, parent=self, transient=transient, name=name, start=start)

    def start(self) -> None:
        """Schedule the first resumption of a task created with ``start=False``."""
        self._reactor.start(self)

    def stop(self) -> None:
        """Stop this task and its non-transient descendants. No-op once terminal."""
        self._reactor.stop(self)

    def with_timeout(self, seconds: float) -> TimeoutScope:
        """Scope a deadline over a block of this task's code.

        Example:
            >>> with task.with_timeout(1.0):
            ...     await sleep(100)  # raises TaskTimeout after 1s
        """
        from .timeout import TimeoutScope
        return TimeoutScope(self, seconds)

    def add_done_callback(self, fn: Callable[[Task[T]], object]) -> None:
        """Run ``fn(task)`` on the terminal transition (immediately if already terminal)."""
        if self.done:
            fn(self)
        else:
            self._callbacks.append(fn)

    # ─────────────────────────────────────────────────────────────────────
    # Results
    # ─────────────────────────────────────────────────────────────────────

    def result(self) -> T | None:
        """Value if complete, None if stopped; re-raises the captured error if failed.

        Raises:
            InvalidStateError: If the task is not terminal yet
        """
        match self._state:
            case TaskState.COMPLETE:
                return self._value
            case TaskState.STOPPED:
                return None
            case TaskState.FAILED:
                assert self._error is not None
                raise self._error
            case _:
                raise InvalidStateError(f"{self!r} has no result yet")

    def exception(self) -> BaseException | None:
        """Captured error if failed, else None."""
        return self._error if self._state is TaskState.FAILED else None

    async def wait(self) -> T | None:
        """Suspend until terminal, then return/raise as ``result()``."""
        if not self.done:
            await Join(self)
        return self.result()

    async def join(self) -> Task[T]:
        """Suspend until terminal without raising. Returns the task."""
        if not self.done:
            await Join(self)
        return self

    # ─────────────────────────────────────────────────────────────────────
    # Tree maintenance (driven by the reactor)
    # ─────────────────────────────────────────────────────────────────────

    def _attach(self, child: Task[Any]) -> None:
        self._children[child.task_id] = child
        child._parent = weakref.ref(self)

    def _promote_transients(self, to: Task[Any]) -> None:
        """Hand live transient children to ``to`` without touching their state."""
        for child in self.children:
            if child.transient and not child.finished:
                del self._children[child.task_id]
                to._attach(child)
                child._log.debug("transient task promoted", parent_id=to.task_id, previous_parent_id=self.task_id)

    def _consume(self) -> None:
        """Detach from the parent once finished; the parent may finish in turn."""
        if self._held:
            self._reactor.release(self)
            return
        if (parent := self.parent) is None or not self.finished:
            return
        self._promote_transients(parent)
        parent._children.pop(self.task_id, None)
        parent._consume()

    def _add_waiter(self, task: Task[Any]) -> Disarm:
        if task is self:
            raise InvalidStateError(f"{self!r} cannot wait on itself")
        if self.done:
            self._reactor.wake(task)
            return _noop
        self._waiters.append(task)

        def remove() -> None:
            with suppress(ValueError):
                self._waiters.remove(task)
        return remove

    def _finish(self, state: TaskState, value: T | None = None, error: BaseException | None = None) -> None:
        """Write the result and run the terminal transition side effects."""
        self._state = state
        self._value, self._error = value, error
        self._coro = None
        self._parked, self._held, self._disarm, self._unschedule, self._interrupt = False, False, None, None, None
        self._log.debug("task finished", state=state.value)
        if (parent := self.parent) is not None:
            self._promote_transients(parent)
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception as exc:
                self._log.error("done callback raised", callback=repr(callback), error=repr(exc))
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            self._reactor.wake(waiter)
        self._consume()


def _noop() -> None:
    return None


def current_task() -> Task[Any] | None:
    """Task whose code is currently executing, or None outside the reactor."""
    return _current_task.get()
