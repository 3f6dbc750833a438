from __future__ import annotations

import asyncio

import pytest

from app.core.errors import NotFoundError, PersistenceError
from app.services.active_session import ActiveSessionManager, ActiveSessionSnapshot
from app.services.session_controller import SessionController

from .fakes import FakeAssignmentStore, FakeClock, FakeTimeLogStore


class SlowTimeLogStore(FakeTimeLogStore):
    """Blocks open-session lookups until released."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.lookups = 0

    async def find_open_for_user(self, user_id):
        self.lookups += 1
        await self.gate.wait()
        return await super().find_open_for_user(user_id)


class SlowAssignmentStore(FakeAssignmentStore):
    """Blocks assigned task lookups until released."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()

    async def get(self, assigned_task_id):
        await self.gate.wait()
        return await super().get(assigned_task_id)


def _manager(controller, assignments, clock) -> ActiveSessionManager:
    return ActiveSessionManager(controller, assignments, clock=clock, tick_seconds=3600)


@pytest.mark.asyncio
async def test_mount_loads_open_session_and_task(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    task = assignments.add()
    await controller.start_session(task.id, "user-1")
    clock.advance(seconds=75)
    manager = _manager(controller, assignments, clock)

    await manager.mount("user-1")

    assert manager.snapshot.active_task_id == task.id
    assert manager.snapshot.task == task
    assert manager.snapshot.elapsed_seconds == 75
    assert manager.snapshot.elapsed_formatted == "00:01:15"
    await manager.close()


@pytest.mark.asyncio
async def test_tick_recomputes_elapsed_and_notifies(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    seen: list[ActiveSessionSnapshot] = []
    manager.subscribe(seen.append)
    await manager.mount("user-1")

    await manager.start(task.id)
    clock.advance(seconds=3661)
    manager.tick()

    assert seen[-1].elapsed_seconds == 3661
    assert seen[-1].elapsed_formatted == "01:01:01"
    await manager.close()


@pytest.mark.asyncio
async def test_ticker_runs_only_while_a_session_is_open(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = ActiveSessionManager(controller, assignments, clock=clock, tick_seconds=0.01)
    ticks: list[int] = []
    manager.subscribe(lambda snap: ticks.append(snap.elapsed_seconds))
    await manager.mount("user-1")

    await manager.start(task.id)
    clock.advance(seconds=5)
    await asyncio.sleep(0.05)
    assert 5 in ticks

    await manager.stop()
    count = len(ticks)
    await asyncio.sleep(0.05)
    assert len(ticks) == count
    assert manager.snapshot.log is None
    await manager.close()


@pytest.mark.asyncio
async def test_pause_clears_active_session(
    controller: SessionController, assignments: FakeAssignmentStore, time_logs: FakeTimeLogStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")
    log = await manager.start(task.id)
    clock.advance(minutes=10)

    paused = await manager.pause()

    assert paused.id == log.id
    assert paused.duration_minutes == 10
    assert manager.snapshot.log is None
    assert time_logs.open_rows("user-1") == []
    await manager.close()


@pytest.mark.asyncio
async def test_failed_pause_rolls_back_to_confirmed_state(
    controller: SessionController, assignments: FakeAssignmentStore, time_logs: FakeTimeLogStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    seen: list[ActiveSessionSnapshot] = []
    await manager.mount("user-1")
    log = await manager.start(task.id)
    manager.subscribe(seen.append)
    time_logs.fail_writes = True

    with pytest.raises(PersistenceError):
        await manager.pause()

    assert seen[0].log is None
    assert manager.snapshot.log == log
    await manager.close()


@pytest.mark.asyncio
async def test_user_change_reloads(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    task = assignments.add(executor_id="user-2")
    await controller.start_session(task.id, "user-2")
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")
    assert manager.snapshot.log is None

    await manager.set_user("user-2")
    assert manager.snapshot.active_task_id == task.id

    await manager.set_user(None)
    assert manager.snapshot.log is None
    await manager.close()


@pytest.mark.asyncio
async def test_overlapping_reload_is_a_no_op(assignments: FakeAssignmentStore, clock: FakeClock) -> None:
    store = SlowTimeLogStore()
    manager = _manager(SessionController(store, clock), assignments, clock)
    manager._alive = True
    manager.user_id = "user-1"

    first = asyncio.create_task(manager.reload())
    await asyncio.sleep(0)
    await manager.reload()
    store.gate.set()
    await first

    assert store.lookups == 1
    await manager.close()


@pytest.mark.asyncio
async def test_teardown_during_reload_discards_result(assignments: FakeAssignmentStore, clock: FakeClock) -> None:
    store = SlowTimeLogStore()
    controller = SessionController(store, clock)
    task = assignments.add()
    store.gate.set()
    await controller.start_session(task.id, "user-1")
    store.gate.clear()

    manager = _manager(controller, assignments, clock)
    seen: list[ActiveSessionSnapshot] = []
    manager.subscribe(seen.append)
    mounting = asyncio.create_task(manager.mount("user-1"))
    await asyncio.sleep(0)
    await manager.close()
    store.gate.set()
    await mounting

    assert seen == []
    assert manager.snapshot.log is None


@pytest.mark.asyncio
async def test_reload_failure_keeps_last_confirmed_state(
    controller: SessionController, assignments: FakeAssignmentStore, time_logs: FakeTimeLogStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")
    log = await manager.start(task.id)
    time_logs.fail_reads = True

    await manager.reload()

    assert manager.snapshot.log == log
    await manager.close()


@pytest.mark.asyncio
async def test_user_change_during_reload_loads_the_new_user(assignments: FakeAssignmentStore, clock: FakeClock) -> None:
    store = SlowTimeLogStore()
    controller = SessionController(store, clock)
    first = assignments.add(executor_id="user-1")
    second = assignments.add(executor_id="user-2")
    store.gate.set()
    await controller.start_session(first.id, "user-1")
    await controller.start_session(second.id, "user-2")
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")
    assert manager.snapshot.active_task_id == first.id

    seen: list[ActiveSessionSnapshot] = []
    manager.subscribe(seen.append)
    store.gate.clear()
    reloading = asyncio.create_task(manager.reload())
    await asyncio.sleep(0)
    await manager.set_user("user-2")
    assert manager.snapshot.log is None
    store.gate.set()
    await reloading

    assert manager.snapshot.log.user_id == "user-2"
    assert manager.snapshot.active_task_id == second.id
    assert all(snap.log is None or snap.log.user_id == "user-2" for snap in seen)
    await manager.close()


@pytest.mark.asyncio
async def test_user_change_during_reload_clears_session_for_idle_user(
    assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    store = SlowTimeLogStore()
    controller = SessionController(store, clock)
    task = assignments.add()
    store.gate.set()
    await controller.start_session(task.id, "user-1")
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")

    store.gate.clear()
    reloading = asyncio.create_task(manager.reload())
    await asyncio.sleep(0)
    await manager.set_user("user-2")
    store.gate.set()
    await reloading

    assert manager.user_id == "user-2"
    assert manager.snapshot.log is None
    await manager.close()


@pytest.mark.asyncio
async def test_refresh_active_task_rereads_assignment(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")
    log = await manager.start(task.id)
    await assignments.update(task.id, {"is_active": False})

    await manager.refresh_active_task()

    assert manager.snapshot.log.id == log.id
    assert manager.snapshot.task.is_active is False
    await manager.close()


@pytest.mark.asyncio
async def test_refresh_active_task_ignores_a_replaced_session(
    controller: SessionController, clock: FakeClock
) -> None:
    assignments = SlowAssignmentStore()
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")
    await manager.start(task.id)

    assignments.gate.clear()
    refreshing = asyncio.create_task(manager.refresh_active_task())
    await asyncio.sleep(0)
    await manager.set_user("user-2")
    assignments.gate.set()
    await refreshing

    assert manager.snapshot.log is None
    assert manager.snapshot.task is None
    await manager.close()


@pytest.mark.asyncio
async def test_pause_without_session_is_not_found(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    manager = _manager(controller, assignments, clock)
    await manager.mount("user-1")

    with pytest.raises(NotFoundError):
        await manager.pause()
    await manager.close()


@pytest.mark.asyncio
async def test_start_without_user_is_not_found(
    controller: SessionController, assignments: FakeAssignmentStore, clock: FakeClock
) -> None:
    task = assignments.add()
    manager = _manager(controller, assignments, clock)
    await manager.mount(None)

    with pytest.raises(NotFoundError):
        await manager.start(task.id)
    await manager.close()
