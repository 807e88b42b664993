"""Tests for the grouping primitives: Barrier, Semaphore, Waiter, Condition.

Validates:
- Barrier joins every member (including late joiners) and re-raises failures
- Barrier stop also reaches the subtrees of members that already returned
- Semaphore never runs more than ``limit`` members and admits FIFO
- Stopping a queued semaphore member drops it without running it
- Waiter returns completions cumulatively and never twice
"""

from __future__ import annotations

from typing import Any

import pytest

from arbor import (
    Barrier,
    Condition,
    InvalidStateError,
    Semaphore,
    Task,
    TaskState,
    VirtualClock,
    Waiter,
    run_reactor,
    sleep,
)


async def nap(task: Task[Any], seconds: float) -> float:
    await sleep(seconds)
    return seconds


async def explode(task: Task[Any], delay: float) -> None:
    await sleep(delay)
    raise ValueError("boom")


# ═════════════════════════════════════════════════════════════════════════════
# Barrier
# ═════════════════════════════════════════════════════════════════════════════


def test_barrier_waits_for_every_member(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> list[Any]:
        barrier = Barrier(task)
        members = [barrier.spawn(nap, n) for n in (3, 1, 2)]
        await barrier.wait()
        assert barrier.empty and len(barrier) == 3
        return [m.result() for m in members]

    assert run_reactor(main, clock=clock) == [3, 1, 2]
    assert clock.now() == 3.0


def test_barrier_includes_members_added_while_waiting(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> float:
        barrier = Barrier(task)

        async def recruiter(t: Task[Any]) -> None:
            await sleep(1)
            barrier.spawn(nap, 5)

        barrier.spawn(recruiter)
        await barrier.wait()
        return clock.now()

    assert run_reactor(main, clock=clock) == 6.0


def test_barrier_reraises_first_failure_then_stop(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> list[Task[Any]]:
        barrier = Barrier(task)
        members = [barrier.spawn(nap, 2), barrier.spawn(explode, 1), barrier.spawn(nap, 3)]
        try:
            with pytest.raises(ValueError, match="boom"):
                await barrier.wait()
        finally:
            barrier.stop()
        return members

    members = run_reactor(main, clock=clock)
    assert members is not None
    assert [m.status for m in members] == [TaskState.COMPLETE, TaskState.FAILED, TaskState.COMPLETE]
    assert clock.now() == 3.0


def test_barrier_stop_leaves_nothing_running(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> list[TaskState]:
        barrier = Barrier(task)
        for n in range(3):
            barrier.spawn(nap, 10 + n)
        await sleep(1)
        barrier.stop()
        assert barrier.empty
        await barrier.wait()
        return [m.status for m in barrier.tasks]

    assert run_reactor(main, clock=clock) == [TaskState.STOPPED] * 3
    assert clock.now() == 1.0


def test_barrier_stop_reaches_subtrees_of_returned_members(clock: VirtualClock) -> None:
    async def launcher(task: Task[Any]) -> str:
        task.spawn(nap, 100, name="grandchild")
        return "launched"

    async def main(task: Task[Any]) -> tuple[TaskState, TaskState]:
        barrier = Barrier(task)
        member = barrier.spawn(launcher)
        await sleep(1)
        (grandchild,) = member.children
        barrier.stop()
        await barrier.wait()
        return member.status, grandchild.status

    assert run_reactor(main, clock=clock) == (TaskState.COMPLETE, TaskState.STOPPED)
    assert clock.now() == 1.0


def test_barrier_needs_a_parent() -> None:
    with pytest.raises(InvalidStateError):
        Barrier()


# ═════════════════════════════════════════════════════════════════════════════
# Semaphore
# ═════════════════════════════════════════════════════════════════════════════


def test_semaphore_bounds_concurrency_and_admits_fifo(clock: VirtualClock) -> None:
    started: list[int] = []
    running = peak = 0

    async def job(task: Task[Any], n: int) -> int:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        started.append(n)
        try:
            await sleep(1)
        finally:
            running -= 1
        return n

    async def main(task: Task[Any]) -> list[Any]:
        semaphore = Semaphore(2, task)
        jobs = [semaphore.spawn(job, n) for n in range(5)]
        assert (semaphore.running, semaphore.pending, semaphore.blocking) == (2, 3, True)
        assert [j.status for j in jobs[2:]] == [TaskState.INITIALIZED] * 3
        await semaphore.wait()
        assert (semaphore.running, semaphore.pending) == (0, 0)
        return [j.result() for j in jobs]

    assert run_reactor(main, clock=clock) == [0, 1, 2, 3, 4]
    assert peak == 2
    assert started == [0, 1, 2, 3, 4]
    assert clock.now() == 3.0


def test_stopped_pending_request_never_runs(clock: VirtualClock) -> None:
    started: list[int] = []

    async def job(task: Task[Any], n: int) -> None:
        started.append(n)
        await sleep(1)

    async def main(task: Task[Any]) -> TaskState:
        semaphore = Semaphore(1, task)
        semaphore.spawn(job, 0)
        queued = semaphore.spawn(job, 1)
        semaphore.spawn(job, 2)
        queued.stop()
        assert semaphore.pending == 1
        await semaphore.wait()
        return queued.status

    assert run_reactor(main, clock=clock) is TaskState.STOPPED
    assert started == [0, 2]
    assert clock.now() == 2.0


def test_semaphore_stop_drops_queue(clock: VirtualClock) -> None:
    started: list[int] = []

    async def job(task: Task[Any], n: int) -> None:
        started.append(n)
        await sleep(10)

    async def main(task: Task[Any]) -> list[TaskState]:
        semaphore = Semaphore(1, task)
        for n in range(3):
            semaphore.spawn(job, n)
        await sleep(1)
        semaphore.stop()
        return [t.status for t in semaphore.tasks]

    assert run_reactor(main, clock=clock) == [TaskState.STOPPED] * 3
    assert started == [0]


def test_semaphore_rejects_bad_limit(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> None:
        with pytest.raises(ValueError):
            Semaphore(0, task)

    run_reactor(main, clock=clock)


# ═════════════════════════════════════════════════════════════════════════════
# Waiter
# ═════════════════════════════════════════════════════════════════════════════


def test_waiter_returns_completions_cumulatively(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> tuple[list[float | None], list[float | None], float, TaskState]:
        barrier = Barrier(task)
        waiter = Waiter(barrier)
        slow = waiter.spawn(nap, 3)
        waiter.spawn(nap, 1)
        waiter.spawn(nap, 2)

        first = await waiter.wait(1)
        at_first = clock.now()
        second = await waiter.wait(2)
        status = slow.status
        barrier.stop()
        return [t.result() for t in first], [t.result() for t in second], at_first, status

    assert run_reactor(main, clock=clock) == ([1], [2], 1.0, TaskState.RUNNING)
    assert clock.now() == 2.0


def test_waiter_never_returns_a_task_twice(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> tuple[int, int, int]:
        waiter = Waiter(task)
        for n in (1, 1, 1):
            waiter.spawn(nap, n)
        await sleep(2)
        everything = await waiter.wait(3)
        again = await waiter.wait(1)
        return len(everything), len(again), waiter.completed

    assert run_reactor(main, clock=clock) == (3, 0, 3)


def test_waiter_rejects_non_positive_count(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> None:
        with pytest.raises(ValueError):
            await Waiter(task).wait(0)

    run_reactor(main, clock=clock)


# ═════════════════════════════════════════════════════════════════════════════
# Condition
# ═════════════════════════════════════════════════════════════════════════════


def test_condition_wakes_every_waiter_in_order(clock: VirtualClock) -> None:
    received: list[tuple[str, Any]] = []
    ready = Condition()

    async def consumer(task: Task[Any], label: str) -> None:
        received.append((label, await ready.wait()))

    async def main(task: Task[Any]) -> int:
        for label in "abc":
            task.spawn(consumer, label)
        await sleep(1)
        assert len(ready) == 3
        return ready.signal("go")

    assert run_reactor(main, clock=clock) == 3
    assert received == [("a", "go"), ("b", "go"), ("c", "go")]


def test_stopped_waiter_leaves_condition(clock: VirtualClock) -> None:
    ready = Condition()

    async def consumer(task: Task[Any]) -> None:
        await ready.wait()

    async def main(task: Task[Any]) -> int:
        task.spawn(consumer).stop()
        waiting = task.spawn(consumer)
        await sleep(1)
        waiting.stop()
        return ready.signal()

    assert run_reactor(main, clock=clock) == 0
    assert ready.empty
