"""Tests for the SQLModel-backed stores (aiosqlite)."""

from __future__ import annotations

import copy
from datetime import timedelta, timezone

import pytest
import pytest_asyncio

from conftest import APPROVAL_WORKFLOW, START_TIME
from bpm_engine.core.exceptions import DefinitionNotFoundError, TimerAlreadyConsumedError
from bpm_engine.db import DefinitionModel, SubscriptionModel, build_engine, build_session_factory, init_db
from bpm_engine.engine.engine import WorkflowEngine
from bpm_engine.engine.types import (
    Cursor,
    CursorState,
    ForkState,
    HistoryAction,
    HistoryEntry,
    InstanceStatus,
    Notification,
    Task,
    TaskStatus,
    TaskType,
    Timer,
    WorkflowInstance,
)
from bpm_engine.nodes.configs import ConditionConfig
from bpm_engine.repositories import SqlDefinitionRepository, SqlInstanceStore


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    db = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bpm.db'}", echo=False)
    await init_db(db)
    yield build_session_factory(db)
    await db.dispose()


@pytest.fixture
def sql_store(session_factory) -> SqlInstanceStore:
    return SqlInstanceStore(session_factory)


@pytest.fixture
def sql_definitions(session_factory) -> SqlDefinitionRepository:
    return SqlDefinitionRepository(session_factory)


def _instance(**overrides) -> WorkflowInstance:
    fields = {
        "id": "inst-1",
        "definition_id": "expense",
        "definition_version": 1,
        "status": InstanceStatus.RUNNING,
        "started_by": "dave",
        "started_at": START_TIME,
        "data": {"amount": 250, "nested": {"tags": ["a", "b"]}},
    }
    fields.update(overrides)
    return WorkflowInstance(**fields)


def _entry(entry_id: str, action: str) -> HistoryEntry:
    return HistoryEntry(id=entry_id, instance_id="inst-1", node_id="start", action=action, timestamp=START_TIME)


def _task(**overrides) -> Task:
    fields = {
        "id": "t1",
        "instance_id": "inst-1",
        "node_id": "approve",
        "cursor_id": "c1",
        "type": TaskType.APPROVAL,
        "assignee_type": "group",
        "assignee_id": "managers",
        "principal_ids": ["alice", "bob"],
        "created_at": START_TIME,
    }
    fields.update(overrides)
    return Task(**fields)


# --- Instances ---


@pytest.mark.asyncio
async def test_instance_round_trip_keeps_engine_state(sql_store):
    instance = _instance()
    instance.cursors["c1"] = Cursor(id="c1", node_id="review", fork_path=["f1"], state=CursorState.WAITING)
    instance.forks["f1"] = ForkState(
        id="f1", node_id="fork", join_node_id="join", expected=2, arrived=["c0"], policy="all_or_nothing"
    )
    instance.loop_state["each"] = {"index": 1, "items": [1, 2]}
    instance.current_node_ids = ["review"]

    await sql_store.save_instance(instance)
    loaded = await sql_store.load_instance("inst-1")

    assert loaded == instance
    assert loaded.started_at.tzinfo is not None
    assert loaded.started_at == START_TIME


@pytest.mark.asyncio
async def test_save_instance_overwrites_and_appends_history(sql_store):
    instance = _instance()
    await sql_store.save_instance(instance, [_entry("h1", "instance_started"), _entry("h2", "task_created")])

    instance.status = InstanceStatus.COMPLETED
    instance.completed_at = START_TIME + timedelta(hours=1)
    await sql_store.save_instance(instance, [_entry("h3", "instance_completed")])

    loaded = await sql_store.load_instance("inst-1")
    assert loaded.status == InstanceStatus.COMPLETED
    assert [h.id for h in await sql_store.get_history("inst-1")] == ["h1", "h2", "h3"]


@pytest.mark.asyncio
async def test_naive_and_offset_datetimes_are_normalized_to_utc(sql_store):
    offset = timezone(timedelta(hours=2))
    await sql_store.save_instance(_instance(started_at=START_TIME.astimezone(offset)))

    loaded = await sql_store.load_instance("inst-1")

    assert loaded.started_at == START_TIME
    assert loaded.started_at.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_list_instances_filters(sql_store):
    await sql_store.save_instance(_instance(id="a"))
    await sql_store.save_instance(_instance(id="b", status=InstanceStatus.FAILED))
    await sql_store.save_instance(_instance(id="c", definition_id="other"))

    assert {i.id for i in await sql_store.list_instances(definition_id="expense")} == {"a", "b"}
    assert [i.id for i in await sql_store.list_instances(status=InstanceStatus.FAILED)] == ["b"]
    assert await sql_store.load_instance("missing") is None


# --- Tasks, timers and subscribers ---


@pytest.mark.asyncio
async def test_tasks_are_listed_by_principal(sql_store):
    task = _task()
    await sql_store.save_task(task)

    assert [t.id for t in await sql_store.list_tasks(principal_id="bob")] == ["t1"]
    assert [t.id for t in await sql_store.list_tasks(principal_id="managers")] == ["t1"]
    assert await sql_store.list_tasks(principal_id="carol") == []
    assert (await sql_store.find_open_task("inst-1", "approve")).id == "t1"

    task.status = TaskStatus.COMPLETED
    task.result_data = {"comment": "fine"}
    await sql_store.save_task(task)

    assert await sql_store.find_open_task("inst-1", "approve") is None
    assert await sql_store.get_task("t1") == task


@pytest.mark.asyncio
async def test_timer_is_consumed_with_the_instance_write(sql_store):
    timer = Timer(id="tm1", instance_id="inst-1", node_id="wait", cursor_id="c1", fire_at=START_TIME)
    await sql_store.save_timer(timer)
    assert [t.id for t in await sql_store.list_pending_timers()] == ["tm1"]

    instance = _instance()
    await sql_store.save_instance(instance, [_entry("h1", "timer_fired")], consumed_timer_ids=["tm1"])

    assert await sql_store.list_pending_timers("inst-1") == []
    assert (await sql_store.get_timer("tm1")).consumed is True

    # A second resume of the same timer writes nothing at all
    instance.status = InstanceStatus.COMPLETED
    task = _task(status=TaskStatus.CANCELLED)
    with pytest.raises(TimerAlreadyConsumedError):
        await sql_store.save_instance(instance, [_entry("h2", "timer_fired")], tasks=[task], consumed_timer_ids=["tm1"])

    assert (await sql_store.load_instance("inst-1")).status == InstanceStatus.RUNNING
    assert [h.id for h in await sql_store.get_history("inst-1")] == ["h1"]
    assert await sql_store.get_task("t1") is None

    with pytest.raises(TimerAlreadyConsumedError):
        await sql_store.save_instance(instance, consumed_timer_ids=["missing"])


@pytest.mark.asyncio
async def test_tasks_are_saved_with_the_instance(sql_store):
    await sql_store.save_task(_task())
    task = _task(status=TaskStatus.COMPLETED, completed_by="alice", decision="approved")

    await sql_store.save_instance(_instance(), [_entry("h1", "task_completed")], tasks=[task])

    assert (await sql_store.get_task("t1")).status == TaskStatus.COMPLETED
    assert await sql_store.find_open_task("inst-1", "approve") is None


@pytest.mark.asyncio
async def test_subscribers(sql_store):
    await sql_store.add_subscriber("inst-1", "erin")
    await sql_store.add_subscriber("inst-1", "erin")
    await sql_store.add_subscriber("inst-1", "frank")
    assert sorted(await sql_store.list_subscribers("inst-1")) == ["erin", "frank"]

    await sql_store.remove_subscriber("inst-1", "erin")
    await sql_store.remove_subscriber("inst-1", "nobody")
    assert await sql_store.list_subscribers("inst-1") == ["frank"]


# --- Notifications ---


def _notification(notification_id: str, user_id: str = "alice", minutes: int = 0) -> Notification:
    return Notification(
        id=notification_id,
        user_id=user_id,
        kind="task_assigned",
        title="New task assigned",
        message=f"Task {notification_id}",
        created_at=START_TIME + timedelta(minutes=minutes),
        instance_id="inst-1",
        data={"node_id": "approve"},
    )


@pytest.mark.asyncio
async def test_notifications_round_trip(sql_store):
    await sql_store.save_notifications(
        [_notification("n1"), _notification("n2", minutes=5), _notification("n3", user_id="bob")]
    )

    listed = await sql_store.list_notifications("alice")
    assert [n.id for n in listed] == ["n2", "n1"]
    assert listed[0] == _notification("n2", minutes=5)
    assert listed[0].created_at.utcoffset() == timedelta(0)
    assert [n.id for n in await sql_store.list_notifications("alice", limit=1)] == ["n2"]
    assert await sql_store.count_unread_notifications("alice") == 2

    read = await sql_store.get_notification("n1")
    read.read, read.read_at = True, START_TIME + timedelta(hours=1)
    await sql_store.save_notifications([read])
    assert [n.id for n in await sql_store.list_notifications("alice", unread_only=True)] == ["n2"]

    assert await sql_store.mark_all_notifications_read("alice", START_TIME + timedelta(hours=2)) == 1
    assert await sql_store.count_unread_notifications("alice") == 0
    assert await sql_store.count_unread_notifications("bob") == 1
    assert (await sql_store.get_notification("n1")).read_at == START_TIME + timedelta(hours=1)

    assert await sql_store.delete_notification("n1") is True
    assert await sql_store.delete_notification("n1") is False
    assert await sql_store.get_notification("n1") is None


def test_model_timestamps_default_to_aware_utc():
    definition = DefinitionModel(id="expense", version=1, name="Expense approval")
    subscription = SubscriptionModel(instance_id="inst-1", user_id="erin")

    assert definition.created_at.utcoffset() == timedelta(0)
    assert subscription.created_at.utcoffset() == timedelta(0)


# --- Definitions ---


@pytest.mark.asyncio
async def test_definitions_are_versioned(session_factory, sql_definitions):
    first = await sql_definitions.register(copy.deepcopy(APPROVAL_WORKFLOW), definition_id="expense")
    changed = copy.deepcopy(APPROVAL_WORKFLOW)
    changed["name"] = "Expense approval v2"
    second = await sql_definitions.register(changed, definition_id="expense")

    assert (first.version, second.version) == (1, 2)

    # A fresh repository reads from the database, not the cache
    repository = SqlDefinitionRepository(session_factory)
    latest = await repository.get_definition("expense")
    assert latest.version == 2
    assert latest.name == "Expense approval v2"
    pinned = await repository.get_definition("expense", 1)
    assert pinned.nodes == first.nodes
    assert isinstance(pinned.get_node("check").config, ConditionConfig)
    assert [d.version for d in await repository.list_definitions()] == [2]

    with pytest.raises(DefinitionNotFoundError):
        await repository.get_definition("expense", 3)
    with pytest.raises(DefinitionNotFoundError):
        await repository.get_definition("unknown")


@pytest.mark.asyncio
async def test_generated_definition_ids(sql_definitions):
    definition = await sql_definitions.register(copy.deepcopy(APPROVAL_WORKFLOW))

    assert definition.id.startswith("wf_")
    assert definition.version == 1


# --- Engine on the SQL backend ---


def _sql_engine(session_factory, resolver, notifier, clock, event_bus, settings) -> WorkflowEngine:
    return WorkflowEngine(
        SqlDefinitionRepository(session_factory),
        SqlInstanceStore(session_factory),
        resolver=resolver,
        notifier=notifier,
        clock=clock,
        event_bus=event_bus,
        settings=settings,
    )


@pytest.mark.asyncio
async def test_approval_scenario_on_sql_backend(session_factory, resolver, notifier, clock, event_bus, settings):
    engine = _sql_engine(session_factory, resolver, notifier, clock, event_bus, settings)
    definition = await engine.definitions.register(copy.deepcopy(APPROVAL_WORKFLOW), definition_id="expense")

    instance_id = await engine.start_instance(definition.id, {"amount": 900}, started_by="dave")
    task = (await engine.list_tasks(principal_id="alice"))[0]
    await engine.complete_task(task.id, "alice", decision="approved")

    snapshot = await engine.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.COMPLETED
    assert snapshot.current_node_ids == ["done"]
    assert [h.action for h in snapshot.history] == [
        HistoryAction.INSTANCE_STARTED.value,
        HistoryAction.TASK_CREATED.value,
        HistoryAction.TASK_COMPLETED.value,
        HistoryAction.INSTANCE_COMPLETED.value,
    ]


@pytest.mark.asyncio
async def test_timer_survives_restart_on_sql_backend(session_factory, resolver, notifier, clock, event_bus, settings):
    nodes = [
        {"id": "start", "type": "start"},
        {"id": "wait", "type": "timer", "config": {"duration": 1, "unit": "hours"}},
        {"id": "end", "type": "end"},
    ]
    edges = [{"source": "start", "target": "wait"}, {"source": "wait", "target": "end"}]

    engine = _sql_engine(session_factory, resolver, notifier, clock, event_bus, settings)
    definition = await engine.definitions.register({"name": "wait", "nodes": nodes, "edges": edges})
    instance_id = await engine.start_instance(definition.id)
    await engine.shutdown()

    await clock.advance(timedelta(hours=2))
    restarted = _sql_engine(session_factory, resolver, notifier, clock, event_bus, settings)
    assert await restarted.recover() == 1

    snapshot = await restarted.get_instance(instance_id)
    assert snapshot.status == InstanceStatus.COMPLETED
    assert snapshot.current_node_ids == ["end"]
