"""Tests for stop propagation and transient reparenting.

Validates:
- Stop unwinds non-transient descendants before the task itself
- Stop is idempotent and cannot be swallowed by ``except Exception``
- A stop requested by running code lands at its next suspension point
- Transient children survive their parent, move to the grandparent and are
  excluded from ``finished``
- The reactor stops transient stragglers once the root is finished
- Stopping a task whose code already returned still stops its subtree
- An ancestor stopped from a descendant waits for that descendant to unwind
"""

from __future__ import annotations

from typing import Any

from arbor import Stop, Task, TaskState, VirtualClock, checkpoint, run_reactor, sleep


async def forever(task: Task[Any]) -> None:
    while True:
        await sleep(1)


async def guarded(task: Task[Any], label: str, order: list[str]) -> None:
    try:
        await sleep(100)
    finally:
        order.append(label)


async def branch(task: Task[Any], label: str, order: list[str]) -> None:
    task.spawn(guarded, f"{label}.0", order)
    task.spawn(guarded, f"{label}.1", order)
    await guarded(task, label, order)


# ═════════════════════════════════════════════════════════════════════════════
# Propagation
# ═════════════════════════════════════════════════════════════════════════════


def test_descendants_stop_before_parent(clock: VirtualClock) -> None:
    order: list[str] = []

    async def main(task: Task[Any]) -> list[TaskState]:
        top = task.spawn(branch, "top", order)
        await sleep(1)
        leaves = top.children
        top.stop()
        return [top.status, *(leaf.status for leaf in leaves)]

    statuses = run_reactor(main, clock=clock)
    assert statuses == [TaskState.STOPPED] * 3
    assert order == ["top.0", "top.1", "top"]
    assert clock.now() == 1.0


def test_stop_is_idempotent(clock: VirtualClock) -> None:
    order: list[str] = []

    async def main(task: Task[Any]) -> TaskState:
        child = task.spawn(guarded, "child", order)
        await sleep(1)
        child.stop()
        child.stop()
        await checkpoint()
        child.stop()
        return child.status

    assert run_reactor(main, clock=clock) is TaskState.STOPPED
    assert order == ["child"]


def test_stop_before_first_resumption_never_runs(clock: VirtualClock) -> None:
    ran: list[bool] = []

    async def never(task: Task[Any]) -> None:
        ran.append(True)

    async def main(task: Task[Any]) -> TaskState:
        child = task.spawn(never)
        child.stop()
        await sleep(1)
        return child.status

    assert run_reactor(main, clock=clock) is TaskState.STOPPED
    assert ran == []


def test_stop_is_not_an_exception(clock: VirtualClock) -> None:
    async def careless(task: Task[Any]) -> str:
        try:
            await sleep(10)
        except Exception:
            return "swallowed"
        return "finished"

    async def main(task: Task[Any]) -> tuple[Any, TaskState]:
        child = task.spawn(careless)
        await sleep(1)
        child.stop()
        return await child.wait(), child.status

    assert run_reactor(main, clock=clock) == (None, TaskState.STOPPED)


def test_stop_is_redelivered_until_terminal(clock: VirtualClock) -> None:
    log: list[str] = []

    async def stubborn(task: Task[Any]) -> str:
        try:
            await sleep(10)
        except Stop:
            log.append("caught")
        try:
            await sleep(10)
        finally:
            log.append("again")
        return "escaped"

    async def main(task: Task[Any]) -> TaskState:
        child = task.spawn(stubborn)
        await sleep(1)
        child.stop()
        return child.status

    assert run_reactor(main, clock=clock) is TaskState.STOPPED
    assert log == ["caught", "again"]


def test_self_stop_lands_at_next_suspension(clock: VirtualClock) -> None:
    reached: list[str] = []

    async def quitter(task: Task[Any]) -> None:
        task.stop()
        assert task.stopping
        reached.append("after stop")
        await checkpoint()
        reached.append("never")

    async def main(task: Task[Any]) -> TaskState:
        child = task.spawn(quitter)
        await child.join()
        return child.status

    assert run_reactor(main, clock=clock) is TaskState.STOPPED
    assert reached == ["after stop"]


def test_stopped_root_yields_none(clock: VirtualClock) -> None:
    async def main(task: Task[Any]) -> str:
        task.spawn(forever)
        await sleep(1)
        task.stop()
        await sleep(1)
        return "unreachable"

    assert run_reactor(main, clock=clock) is None
    assert clock.now() == 1.0


# ═════════════════════════════════════════════════════════════════════════════
# Transient Tasks
# ═════════════════════════════════════════════════════════════════════════════


def test_transient_child_is_promoted_on_completion(clock: VirtualClock) -> None:
    async def supervisor(task: Task[Any]) -> Task[None]:
        return task.spawn(forever, transient=True)

    async def main(task: Task[Any]) -> Task[None]:
        monitor = await task.spawn(supervisor).wait()
        assert monitor is not None
        await checkpoint()
        assert monitor.status is TaskState.RUNNING
        assert monitor.parent is task
        return monitor

    monitor = run_reactor(main, clock=clock)
    assert monitor is not None
    assert monitor.status is TaskState.STOPPED


def test_transient_child_survives_parent_stop(clock: VirtualClock) -> None:
    async def host(task: Task[Any]) -> None:
        task.spawn(forever, transient=True, name="survivor")
        await forever(task)

    async def main(task: Task[Any]) -> tuple[TaskState, TaskState, bool]:
        parent = task.spawn(host)
        await sleep(1)
        (survivor,) = parent.children
        parent.stop()
        await sleep(2)
        return parent.status, survivor.status, survivor.parent is task

    assert run_reactor(main, clock=clock) == (TaskState.STOPPED, TaskState.RUNNING, True)


def test_finished_ignores_transient_children(clock: VirtualClock) -> None:
    seen: list[tuple[bool, list[TaskState]]] = []

    def snapshot(root: Task[Any]) -> None:
        seen.append((root.finished, [child.status for child in root.children]))

    async def main(task: Task[Any]) -> None:
        task.add_done_callback(snapshot)
        task.spawn(forever, transient=True)
        await sleep(3)

    run_reactor(main, clock=clock)
    assert seen == [(True, [TaskState.RUNNING])]
    assert clock.now() == 3.0


def test_parent_is_not_finished_until_children_are(clock: VirtualClock) -> None:
    async def impatient(task: Task[Any]) -> str:
        task.spawn(guarded, "slow", [])
        return "returned early"

    async def main(task: Task[Any]) -> tuple[bool, bool]:
        parent = task.spawn(impatient)
        await parent.join()
        state = (parent.done, parent.finished)
        (slow,) = parent.children
        slow.stop()
        return state + (parent.finished,)  # type: ignore[return-value]

    assert run_reactor(main, clock=clock) == (True, False, True)


def test_transient_child_is_promoted_when_parent_fails(clock: VirtualClock) -> None:
    async def doomed(task: Task[Any]) -> None:
        task.spawn(forever, transient=True, name="survivor")
        await sleep(1)
        raise ValueError("host failed")

    async def main(task: Task[Any]) -> tuple[TaskState, TaskState, bool]:
        host = task.spawn(doomed)
        await host.join()
        (survivor,) = task.children
        await sleep(2)
        return host.status, survivor.status, survivor.parent is task

    assert run_reactor(main, clock=clock) == (TaskState.FAILED, TaskState.RUNNING, True)
    assert clock.now() == 3.0


def test_transient_promotion_climbs_to_root(clock: VirtualClock) -> None:
    hops: list[bool] = []

    async def launcher(task: Task[Any]) -> Task[None]:
        return task.spawn(forever, transient=True, name="wanderer")

    async def middle(task: Task[Any]) -> Task[None] | None:
        wanderer = await task.spawn(launcher).wait()
        assert wanderer is not None
        hops.append(wanderer.parent is task)
        return wanderer

    async def main(task: Task[Any]) -> Task[None] | None:
        wanderer = await task.spawn(middle).wait()
        assert wanderer is not None
        hops.append(wanderer.parent is task)
        await sleep(1)
        assert wanderer.status is TaskState.RUNNING
        return wanderer

    wanderer = run_reactor(main, clock=clock)
    assert hops == [True, True]
    assert wanderer is not None
    assert wanderer.status is TaskState.STOPPED
    assert clock.now() == 1.0


# ═════════════════════════════════════════════════════════════════════════════
# Finished Targets and Ancestors
# ═════════════════════════════════════════════════════════════════════════════


def test_stop_reaches_subtree_of_finished_child(clock: VirtualClock) -> None:
    order: list[str] = []

    async def launcher(task: Task[Any]) -> str:
        task.spawn(guarded, "grandchild", order)
        return "launched"

    async def main(task: Task[Any]) -> tuple[TaskState, TaskState, bool]:
        child = task.spawn(launcher)
        await sleep(1)
        assert child.done and not child.finished
        (grandchild,) = child.children
        child.stop()
        return child.status, grandchild.status, child.finished

    assert run_reactor(main, clock=clock) == (TaskState.COMPLETE, TaskState.STOPPED, True)
    assert order == ["grandchild"]
    assert clock.now() == 1.0


def test_descendant_stopping_ancestor_unwinds_first(clock: VirtualClock) -> None:
    order: list[str] = []
    rebels: list[Task[Any]] = []

    async def rebel(task: Task[Any]) -> None:
        try:
            assert task.parent is not None
            task.parent.stop()
            await sleep(5)
        finally:
            order.append("child")

    async def elder(task: Task[Any]) -> None:
        rebels.append(task.spawn(rebel))
        try:
            await sleep(100)
        finally:
            order.append("parent")

    async def main(task: Task[Any]) -> TaskState:
        parent = task.spawn(elder)
        await parent.join()
        return parent.status

    assert run_reactor(main, clock=clock) is TaskState.STOPPED
    assert order == ["child", "parent"]
    assert rebels[0].status is TaskState.STOPPED
    assert clock.now() == 0.0
