"""Crash safety, append-only history and concurrent access to one instance."""

from __future__ import annotations

import asyncio
import copy
from datetime import timedelta

import pytest

from conftest import APPROVAL_WORKFLOW, linear
from bpm_engine.core.exceptions import TaskAlreadyResolvedError
from bpm_engine.engine.locks import InstanceLocks
from bpm_engine.engine.types import HistoryAction, InstanceStatus, TaskStatus
from bpm_engine.storage import InMemoryInstanceStore


class FlakyStore(InMemoryInstanceStore):
    """In-memory store whose next instance write can be made to fail once."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next_save = False

    async def save_instance(self, instance, new_history=(), tasks=(), consumed_timer_ids=()):
        if self.fail_next_save:
            self.fail_next_save = False
            raise RuntimeError("database unavailable")
        await super().save_instance(instance, new_history, tasks=tasks, consumed_timer_ids=consumed_timer_ids)


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


def actions(snapshot):
    return [h.action for h in snapshot.history]


TIMER_NODES = [
    {"id": "start", "type": "start"},
    {"id": "wait", "type": "timer", "config": {"duration": 1, "unit": "hours"}},
    {"id": "after", "type": "variable", "config": {"name": "woke", "value": True}},
    {"id": "end", "type": "end"},
]

PARALLEL_TASKS = {
    "name": "Two sign-offs",
    "nodes": [
        {"id": "start", "type": "start"},
        {"id": "fork", "type": "parallel"},
        {"id": "legal", "type": "task", "config": {"assignee": "user:alice"}},
        {"id": "money", "type": "task", "config": {"assignee": "group:finance"}},
        {"id": "end", "type": "end"},
    ],
    "edges": [
        {"source": "start", "target": "fork"},
        {"source": "fork", "target": "legal"},
        {"source": "fork", "target": "money"},
        {"source": "legal", "target": "end"},
        {"source": "money", "target": "end"},
    ],
}


async def start_approval(engine, definitions):
    definition = await definitions.register(copy.deepcopy(APPROVAL_WORKFLOW), definition_id="expense")
    instance_id = await engine.start_instance(definition.id, {"amount": 250}, started_by="dave")
    return instance_id, (await engine.get_instance(instance_id)).open_tasks[0]


# --- Failed writes ---


@pytest.mark.asyncio
async def test_failed_timer_resume_leaves_timer_for_recovery(make_engine, definitions, store, clock):
    first = make_engine()
    definition = await definitions.register({"name": "wait", "nodes": TIMER_NODES, "edges": linear(*TIMER_NODES)})
    instance_id = await first.start_instance(definition.id)

    store.fail_next_save = True
    with pytest.raises(RuntimeError):
        await clock.advance(timedelta(hours=1))

    snapshot = await first.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.RUNNING
    assert snapshot.current_node_ids == ["wait"]
    assert HistoryAction.TIMER_FIRED.value not in actions(snapshot)
    assert len(await store.list_pending_timers(instance_id)) == 1

    await first.shutdown()
    restarted = make_engine()
    assert await restarted.recover() == 1

    snapshot = await restarted.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.COMPLETED
    assert snapshot.data["woke"] is True
    assert actions(snapshot).count(HistoryAction.TIMER_FIRED.value) == 1
    assert await store.list_pending_timers(instance_id) == []


@pytest.mark.asyncio
async def test_failed_task_resume_keeps_task_open(engine, definitions, store):
    instance_id, task = await start_approval(engine, definitions)

    store.fail_next_save = True
    with pytest.raises(RuntimeError):
        await engine.complete_task(task.id, "alice", decision="approved")

    assert (await engine.get_task(task.id)).status == TaskStatus.PENDING
    snapshot = await engine.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.RUNNING
    assert snapshot.current_node_ids == ["approve"]
    assert [t.id for t in snapshot.open_tasks] == [task.id]

    await engine.complete_task(task.id, "alice", decision="approved")
    snapshot = await engine.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.COMPLETED
    assert actions(snapshot).count(HistoryAction.TASK_COMPLETED.value) == 1


@pytest.mark.asyncio
async def test_failed_cancel_keeps_tasks_and_timers(engine, definitions, store):
    instance_id, task = await start_approval(engine, definitions)

    store.fail_next_save = True
    with pytest.raises(RuntimeError):
        await engine.cancel_instance(instance_id, "dave")

    assert (await engine.get_instance(instance_id)).status == InstanceStatus.RUNNING
    assert (await engine.get_task(task.id)).status == TaskStatus.PENDING


# --- History ---


@pytest.mark.asyncio
async def test_history_prefix_survives_resume(engine, definitions):
    instance_id, task = await start_approval(engine, definitions)
    before = (await engine.get_instance(instance_id)).history

    await engine.complete_task(task.id, "alice", decision="approved")
    after = (await engine.get_instance(instance_id)).history

    assert len(after) > len(before)
    assert after[: len(before)] == before


# --- Concurrency ---


@pytest.mark.asyncio
async def test_concurrent_completions_join_once(engine, definitions):
    definition = await definitions.register(copy.deepcopy(PARALLEL_TASKS))
    instance_id = await engine.start_instance(definition.id)
    tasks = {t.node_id: t for t in (await engine.get_instance(instance_id)).open_tasks}

    results = await asyncio.gather(
        engine.complete_task(tasks["legal"].id, "alice"),
        engine.complete_task(tasks["money"].id, "carol"),
        engine.complete_task(tasks["legal"].id, "alice"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], TaskAlreadyResolvedError)

    snapshot = await engine.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.COMPLETED
    assert actions(snapshot).count(HistoryAction.PARALLEL_JOINED.value) == 1
    assert actions(snapshot).count(HistoryAction.TASK_COMPLETED.value) == 2


@pytest.mark.asyncio
async def test_locks_do_not_outlive_their_instances(engine, definitions):
    nodes = [{"id": "start", "type": "start"}, {"id": "end", "type": "end"}]
    definition = await definitions.register({"name": "noop", "nodes": nodes, "edges": linear(*nodes)})

    for _ in range(25):
        await engine.start_instance(definition.id)
    await asyncio.gather(*(engine.start_instance(definition.id) for _ in range(25)))

    assert len(await engine.list_instances(status=InstanceStatus.COMPLETED)) == 50
    assert len(engine.locks) == 0


@pytest.mark.asyncio
async def test_instance_lock_serializes_and_then_disappears():
    locks = InstanceLocks()
    order = []

    async def worker(name):
        async with locks("i-1"):
            assert locks.locked("i-1")
            order.append(name)
            await asyncio.sleep(0)
            order.append(name)

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a", "a", "b", "b"]
    assert not locks.locked("i-1")
    assert len(locks) == 0
