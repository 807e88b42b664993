"""arbor - a single-threaded structured concurrency runtime.

Tasks are ``async def`` functions that receive their own Task handle. They
form a parent/child tree driven by a reactor; stopping a task stops its
non-transient descendants first, and transient tasks are promoted to the
grandparent instead of being stopped when their parent terminates.

Example:
    >>> from arbor import Semaphore, VirtualClock, run_reactor, sleep
    >>>
    >>> async def job(task, n):
    ...     await sleep(1)
    ...     return n
    >>>
    >>> async def main(task):
    ...     semaphore = Semaphore(2, task)
    ...     jobs = [semaphore.spawn(job, n) for n in range(5)]
    ...     await semaphore.wait()
    ...     return [j.result() for j in jobs]
    >>>
    >>> clock = VirtualClock()
    >>> run_reactor(main, clock=clock), clock.now()
    ([0, 1, 2, 3, 4], 3.0)
"""

from __future__ import annotations

from arbor.foundation.config import (
    ArborSettings,
    LoggingSettings,
    ReactorSettings,
    clear_settings_cache,
    get_settings,
)
from arbor.foundation.errors import (
    ArborError,
    DeadlockError,
    ErrorCode,
    FailureReport,
    InvalidStateError,
    ResourceBusy,
    Stop,
    TaskTimeout,
    UnexpectedYield,
    is_fatal_exception,
)
from arbor.runtime.concurrency import (
    Barrier,
    Clock,
    Condition,
    MonotonicClock,
    ReadinessSource,
    Reactor,
    SelectorSource,
    Semaphore,
    Spawner,
    Task,
    TaskState,
    TimeoutScope,
    VirtualClock,
    Waiter,
    checkpoint,
    current_task,
    print_hierarchy,
    run_reactor,
    sleep,
    spawn,
    wait_readable,
    wait_writable,
    with_timeout,
)
from arbor.runtime.observability import (
    configure_logging,
    configure_logging_from,
    get_logger,
    reset_logging,
)

__version__ = "0.1.0"

__all__ = [
    # Scheduler
    "Reactor", "run_reactor", "spawn", "print_hierarchy",
    # Tasks
    "Task", "TaskState", "Spawner", "current_task",
    # Composition
    "Barrier", "Semaphore", "Waiter", "Condition",
    # Timeouts
    "TimeoutScope", "with_timeout",
    # Suspension points
    "sleep", "checkpoint", "wait_readable", "wait_writable",
    # Clocks & I/O
    "Clock", "MonotonicClock", "VirtualClock", "ReadinessSource", "SelectorSource",
    # Errors
    "ArborError", "DeadlockError", "ErrorCode", "FailureReport", "InvalidStateError",
    "ResourceBusy", "Stop", "TaskTimeout", "UnexpectedYield", "is_fatal_exception",
    # Configuration & logging
    "ArborSettings", "LoggingSettings", "ReactorSettings", "clear_settings_cache", "get_settings",
    "configure_logging", "configure_logging_from", "get_logger", "reset_logging",
]
