"""Runtime layer: the scheduler, its primitives and observability."""

from .concurrency import (
    Barrier,
    Condition,
    Reactor,
    Semaphore,
    Task,
    TaskState,
    TimeoutScope,
    VirtualClock,
    Waiter,
    checkpoint,
    current_task,
    run_reactor,
    sleep,
    spawn,
    with_timeout,
)
from .observability import configure_logging, get_logger

__all__ = [
    "Barrier", "Condition", "Reactor", "Semaphore", "Task", "TaskState", "TimeoutScope",
    "VirtualClock", "Waiter", "checkpoint", "current_task", "run_reactor", "sleep", "spawn",
    "with_timeout", "configure_logging", "get_logger",
]
