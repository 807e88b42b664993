"""Structured concurrency runtime: a single-threaded reactor and its task tree.

Key Components:
    - Reactor / run_reactor: the scheduler loop that owns the root task
    - Task / TaskState: the lifecycle state machine and parent/child tree
    - Barrier, Semaphore, Waiter: join-all, bounded fan-out, join-first-N
    - TimeoutScope / with_timeout: scoped deadlines
    - sleep, checkpoint, wait_readable, wait_writable: suspension points

Design Philosophy:
    - Structured lifetime: children never outlive a stopped parent
    - Cooperative: control changes hands only at suspension points
    - Explicit context: task functions receive their own Task

Example:
    >>> from arbor.runtime.concurrency import run_reactor, sleep, VirtualClock
    >>>
    >>> async def child(task, n):
    ...     await sleep(1)
    ...     return n * 2
    >>>
    >>> async def main(task):
    ...     kids = [task.spawn(child, n) for n in range(3)]
    ...     return [await kid.wait() for kid in kids]
    >>>
    >>> run_reactor(main, clock=VirtualClock())
    [0, 2, 4]
"""

from __future__ import annotations

# Scheduler
from .reactor import Reactor, print_hierarchy, run_reactor, spawn

# Tasks
from .task import Spawner, Task, TaskState, current_task

# Composition primitives
from .barrier import Barrier
from .condition import Condition
from .semaphore import Semaphore
from .waiter import Waiter

# Timeouts
from .timeout import TimeoutScope, with_timeout

# Suspension points
from .traps import Trap, checkpoint, sleep, wait_readable, wait_writable

# Plumbing
from .clock import Clock, MonotonicClock, VirtualClock
from .ready import ReadyQueue, Resumption
from .selector import ReadinessSource, SelectorSource
from .timers import Timer, TimerQueue

__all__ = [
    # Scheduler
    "Reactor",
    "run_reactor",
    "spawn",
    "print_hierarchy",
    # Tasks
    "Task",
    "TaskState",
    "Spawner",
    "current_task",
    # Composition
    "Barrier",
    "Condition",
    "Semaphore",
    "Waiter",
    # Timeouts
    "TimeoutScope",
    "with_timeout",
    # Suspension points
    "Trap",
    "sleep",
    "checkpoint",
    "wait_readable",
    "wait_writable",
    # Plumbing
    "Clock",
    "MonotonicClock",
    "VirtualClock",
    "ReadyQueue",
    "Resumption",
    "ReadinessSource",
    "SelectorSource",
    "Timer",
    "TimerQueue",
]
