"""The reactor: a single-threaded scheduler driving a task tree to completion.

Each iteration:
    1. Resume every task that was ready when the iteration began, in FIFO order
    2. Fire expired timers (their callbacks make tasks ready)
    3. If nothing is ready, block on the readiness source until the next
       timer deadline or I/O event

The loop ends once the root task is ``finished``. Transient tasks still
attached at that point are stopped before ``run`` returns.

Example:
    >>> async def main(task):
    ...     children = [task.spawn(sleeper, 1) for _ in range(3)]
    ...     for child in children:
    ...         await child.wait()
    ...     return "done"
    >>>
    >>> run_reactor(main, clock=VirtualClock())
    'done'
"""

from __future__ import annotations

import inspect
import sys
from typing import TYPE_CHECKING, Any, TextIO, TypeVar

from arbor.foundation.config import ArborSettings, ReactorSettings, get_settings
from arbor.foundation.errors import (
    DeadlockError,
    FailureReport,
    InvalidStateError,
    Stop,
    UnexpectedYield,
    is_fatal_exception,
)
from arbor.runtime.observability.logging import BoundLogger, get_logger

from .clock import Clock, MonotonicClock
from .ready import ReadyQueue
from .selector import ReadinessSource, SelectorSource
from .task import Task, TaskFn, TaskState, _current_task, current_task
from .timers import TimerQueue
from .traps import Trap

if TYPE_CHECKING:
    from collections.abc import Mapping

T = TypeVar("T")


class Reactor:
    """Event loop owning one task tree.

    Args:
        clock: Time source for timers (default: MonotonicClock)
        selector: Readiness source for I/O waits (default: SelectorSource)
        settings: Root settings; defaults to ``get_settings()``
        logger: Structured logger; defaults to ``get_logger("arbor.reactor")``
    """

    __slots__ = ("clock", "selector", "timers", "config", "log", "_ready", "_root", "_current", "_failed")

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        selector: ReadinessSource | None = None,
        settings: ArborSettings | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self.clock: Clock = clock or MonotonicClock()
        self.selector: ReadinessSource = selector or SelectorSource()
        self.timers = TimerQueue()
        self.config: ReactorSettings = (settings or get_settings()).reactor
        self.log = logger or get_logger("arbor.reactor")
        self._ready = ReadyQueue()
        self._root: Task[Any] | None = None
        self._current: Task[Any] | None = None
        self._failed = False

    @property
    def root(self) -> Task[Any] | None:
        return self._root

    @property
    def current(self) -> Task[Any] | None:
        """Task whose code is executing right now."""
        return self._current

    @property
    def failed(self) -> bool:
        """A non-recoverable error escaped the loop."""
        return self._failed

    # ─────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────

    def run(self, fn: TaskFn[T], /, *args: Any, **kwargs: Any) -> Task[T]:
        """Create the root task and drive the tree until it is finished.

        Returns:
            The terminal root task; read its outcome with ``result()``.

        Raises:
            DeadlockError: If the tree can never make progress again
            BaseException: Any non-recoverable error raised by task code
        """
        if self._root is not None:
            raise InvalidStateError("a reactor runs exactly one root task")
        root = self._root = self.spawn(fn, args, kwargs, parent=None)
        self.log.debug("reactor started", root=root.name, root_id=root.task_id)
        try:
            while True:
                while not root.finished:
                    self._tick(root)
                stragglers = [child for child in root.children if not child.finished]
                if not stragglers:
                    break
                for child in stragglers:
                    self._stop_subtree(child)
        except BaseException as error:
            self._failed = True
            self.log.error("reactor failed", error_type=type(error).__name__, error=str(error))
            self._abandon()
            raise
        self.log.debug("reactor finished", state=root.status.value)
        return root

    def close(self) -> None:
        self.selector.close()

    # ─────────────────────────────────────────────────────────────────────
    # Task lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def spawn(
        self,
        fn: TaskFn[T],
        args: tuple[Any, ...] = (),
        kwargs: Mapping[str, Any] | None = None,
        *,
        parent: Task[Any] | None,
        transient: bool = False,
        name: str | None = None,
        start: bool = True,
    ) -> Task[T]:
        """Create a task running ``fn(task, *args, **kwargs)`` under ``parent``."""
        task: Task[T] = Task(self, name or getattr(fn, "__qualname__", repr(fn)), transient=transient)
        coro = fn(task, *args, **(kwargs or {}))
        if not inspect.iscoroutine(coro):
            raise TypeError(f"{fn!r} must be an async function, got {type(coro).__name__}")
        task._coro = coro
        if parent is not None:
            parent._attach(task)
        task._log.debug("task created", parent_id=parent.task_id if parent else None)
        if start:
            self.start(task)
        return task

    def start(self, task: Task[Any]) -> None:
        """Give an initialized task its first place in the ready queue."""
        if task.status is not TaskState.INITIALIZED or task._unschedule is not None or task._stopping:
            raise InvalidStateError(f"{task!r} cannot be started")
        task._unschedule = self._ready.push(task)

    def wake(self, task: Task[Any], value: object = None, exc: BaseException | None = None) -> bool:
        """Move a parked task to the ready queue. False if it was not parked."""
        if not task._parked or task._held:
            return False
        task._parked, task._disarm = False, None
        task._unschedule = self._ready.push(task, value, exc)
        return True

    def interrupt(self, task: Task[Any], exc: BaseException) -> None:
        """Raise ``exc`` inside ``task`` at its current or next suspension point."""
        if task.done or task._held:
            return
        if task._parked:
            self._disarm_wait(task)
            task._unschedule = self._ready.push(task, exc=exc)
        else:
            task._interrupt = exc

    def stop(self, task: Task[Any]) -> None:
        """Stop non-transient descendants depth-first, then the task itself.

        A task that is not executing is unwound synchronously. A task whose
        code is on the stack gets the signal at its next suspension point, and
        again at every one after that until it terminates. Ancestors of such a
        task are held, parked, until it has unwound, so no task becomes
        terminal before its descendants. A task whose own code already
        finished still has its subtree stopped.
        """
        self._stop(task)

    def release(self, task: Task[Any]) -> None:
        """Deliver a held stop once no non-transient child is left."""
        if not task._held or any(not child.transient for child in task.children):
            return
        task._held = False
        self.wake(task, exc=Stop())

    def _stop(self, task: Task[Any]) -> bool:
        """Returns True while part of the subtree is still unwinding."""
        unwinding = False
        for child in task.children:
            if not child.transient and self._stop(child):
                unwinding = True
        if task.done:
            return unwinding
        task._stopping = True
        if task._on_stack:
            task._log.debug("stop deferred to next suspension point")
            return True
        self._disarm_wait(task)
        if unwinding:
            task._parked = task._held = True
            task._log.debug("stop held until descendants unwind")
            return True
        if task.status is TaskState.INITIALIZED:
            if task._coro is not None:
                task._coro.close()
            task._finish(TaskState.STOPPED)
        else:
            self._step(task, exc=Stop())
        return not task.done

    # ─────────────────────────────────────────────────────────────────────
    # Introspection
    # ─────────────────────────────────────────────────────────────────────

    def print_hierarchy(self, output: TextIO | None = None) -> str:
        """Indented dump of the task tree; written to ``output`` when given."""
        lines = [f"{'  ' * depth}{task!r}" for depth, task in self._root.walk()] if self._root else []
        text = "\n".join(lines)
        if output is not None:
            print(text, file=output)
        return text

    # ─────────────────────────────────────────────────────────────────────
    # Loop internals
    # ─────────────────────────────────────────────────────────────────────

    def _tick(self, root: Task[Any]) -> None:
        for _ in range(len(self._ready)):
            if (resumption := self._ready.pop()) is None:
                break
            task = resumption.task
            task._unschedule = None
            if not task.done:
                self._step(task, resumption.value, resumption.exc)
        self.timers.advance(self.clock.now())
        if not self._ready and not root.finished:
            self._idle()

    def _idle(self) -> None:
        deadline = self.timers.next_deadline()
        timeout = None if deadline is None else max(0.0, deadline - self.clock.now())
        if len(self.selector):
            if self.clock.virtual and timeout is not None:
                fired = self.selector.select(0.0)
            else:
                limit = self.config.max_idle
                fired = self.selector.select(limit if timeout is None else min(timeout, limit))
            for callback in fired:
                callback()
            if fired or not self.clock.virtual or timeout is None:
                return
        elif timeout is None:
            raise DeadlockError("no task can make progress: nothing is ready, no timer or I/O interest is pending")
        self.clock.sleep(timeout)

    def _step(self, task: Task[Any], value: object = None, exc: BaseException | None = None) -> None:
        """Resume ``task`` and run it to its next suspension point or to the end."""
        coro = task._coro
        assert coro is not None, f"{task!r} has no execution context"
        previous, self._current = self._current, task
        token = _current_task.set(task)
        task._on_stack = True
        if task.status is TaskState.INITIALIZED:
            task._state = TaskState.RUNNING
            task._log.debug("task running")
        elif self.config.trace_steps:
            task._log.debug("task resumed", throw=type(exc).__name__ if exc else None)
        try:
            while True:
                try:
                    trap = coro.send(value) if exc is None else coro.throw(exc)
                except StopIteration as returned:
                    if task._stopping:
                        task._finish(TaskState.STOPPED)
                    else:
                        task._finish(TaskState.COMPLETE, returned.value)
                    return
                except Stop:
                    task._finish(TaskState.STOPPED)
                    return
                except BaseException as error:
                    self._fail(task, error)
                    if is_fatal_exception(error):
                        raise
                    return
                value, exc = None, None
                if not isinstance(trap, Trap):
                    exc = UnexpectedYield(f"{task!r} awaited {trap!r}; only arbor suspension points can be awaited")
                elif task._stopping:
                    exc = Stop()
                elif task._interrupt is not None:
                    exc, task._interrupt = task._interrupt, None
                else:
                    task._parked = True
                    try:
                        disarm = trap.park(self, task)
                    except Exception as error:
                        task._parked = False
                        exc = error
                    else:
                        if task._parked:
                            task._disarm = disarm
                        return
        finally:
            task._on_stack = False
            self._current = previous
            _current_task.reset(token)

    def _fail(self, task: Task[Any], error: BaseException) -> None:
        observed = bool(task._waiters) or task is self._root
        report = FailureReport.from_exception(task.task_id, task.name, error, observed=observed)
        fields = report.model_dump(exclude={"task_id", "task_name"})
        if is_fatal_exception(error):
            task._log.error("fatal error escaped task", **fields)
        elif not report.observed and self.config.report_unobserved_failures:
            task._log.warning("task failed with unobserved error", **fields)
        else:
            task._log.debug("task failed", error_type=report.error_type, message=report.message)
        task._finish(TaskState.FAILED, error=error)

    def _disarm_wait(self, task: Task[Any]) -> None:
        if task._parked:
            disarm, task._disarm, task._parked = task._disarm, None, False
            if disarm is not None:
                disarm()
        if task._unschedule is not None:
            unschedule, task._unschedule = task._unschedule, None
            unschedule()

    def _stop_subtree(self, task: Task[Any]) -> None:
        if not task.done:
            self.stop(task)
            return
        for child in task.children:
            self._stop_subtree(child)

    def _abandon(self) -> None:
        """Close every coroutine left in the tree after a fatal error."""
        if self._root is None:
            return
        for _, task in list(self._root.walk()):
            if task._coro is None or task._on_stack:
                continue
            self._disarm_wait(task)
            try:
                task._coro.close()
            except RuntimeError as error:
                task._log.warning("coroutine refused to close", error=str(error))


# ─────────────────────────────────────────────────────────────────────────────
# Convenience entry points
# ─────────────────────────────────────────────────────────────────────────────


def run_reactor(
    fn: TaskFn[T],
    /,
    *args: Any,
    clock: Clock | None = None,
    selector: ReadinessSource | None = None,
    settings: ArborSettings | None = None,
    **kwargs: Any,
) -> T | None:
    """Run ``fn`` as the root task of a fresh reactor and return its result.

    Returns the root's value, None if the root was stopped, and re-raises the
    root's error if it failed.
    """
    reactor = Reactor(clock=clock, selector=selector, settings=settings)
    try:
        root = reactor.run(fn, *args, **kwargs)
    finally:
        reactor.close()
    return root.result()


def spawn(
    fn: TaskFn[T],
    /,
    *args: Any,
    parent: Any = None,
    transient: bool = False,
    name: str | None = None,
    **kwargs: Any,
) -> Task[T]:
    """Create a task under ``parent`` (default: the running task).

    With no parent and no running task, ``fn`` becomes the root of a new
    reactor which runs to completion; the finished root task is returned.
    """
    if (owner := parent if parent is not None else current_task()) is None:
        reactor = Reactor()
        try:
            return reactor.run(fn, *args, **kwargs)
        finally:
            reactor.close()
    return owner.spawn(fn, *args, transient=transient, name=name, **kwargs)


def print_hierarchy(output: TextIO | None = None) -> str:
    """Dump the tree of the reactor running the current task."""
    if (task := current_task()) is None:
        raise InvalidStateError("print_hierarchy() needs a running task")
    return task.reactor.print_hierarchy(output or sys.stdout)
