"""Instance repository for database persistence."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from ..core.exceptions import TimerAlreadyConsumedError
from ..db.models import (
    HistoryModel,
    InstanceModel,
    NotificationModel,
    SubscriptionModel,
    TaskModel,
    TimerModel,
)
from ..engine.types import (
    Cursor,
    CursorState,
    ForkState,
    HistoryEntry,
    InstanceStatus,
    Notification,
    Task,
    TaskStatus,
    TaskType,
    Timer,
    WorkflowInstance,
)
from ..storage.base import InstanceStore


def _utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored datetimes are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlInstanceStore(InstanceStore):
    """
    Instance store backed by SQLModel tables.

    Each operation runs in its own session so the store can be shared by
    the engine for the whole process lifetime.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # --- Instances ---

    async def save_instance(
        self,
        instance: WorkflowInstance,
        new_history: Sequence[HistoryEntry] = (),
        tasks: Sequence[Task] = (),
        consumed_timer_ids: Sequence[str] = (),
    ) -> None:
        async with self._session_factory() as session:
            for timer_id in consumed_timer_ids:
                statement = (
                    update(TimerModel)
                    .where(TimerModel.id == timer_id, TimerModel.consumed.is_(False))
                    .values(consumed=True)
                )
                result = await session.execute(statement)
                if result.rowcount != 1:
                    await session.rollback()
                    raise TimerAlreadyConsumedError(timer_id)

            for task in tasks:
                await session.merge(self._to_task_model(task))
            await session.merge(self._to_instance_model(instance))

            if new_history:
                statement = select(func.count()).select_from(HistoryModel).where(
                    HistoryModel.instance_id == instance.id
                )
                position = (await session.execute(statement)).scalar_one()
                for offset, entry in enumerate(new_history):
                    session.add(
                        HistoryModel(
                            id=entry.id,
                            instance_id=entry.instance_id,
                            position=position + offset,
                            node_id=entry.node_id,
                            action=entry.action,
                            actor_user_id=entry.actor_user_id,
                            data=entry.data,
                            timestamp=_utc(entry.timestamp),
                        )
                    )

            await session.commit()

    async def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        async with self._session_factory() as session:
            result = await session.get(InstanceModel, instance_id)
            if not result:
                return None
            return self._to_instance(result)

    async def list_instances(
        self,
        definition_id: str | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        statement = select(InstanceModel)
        if definition_id is not None:
            statement = statement.where(InstanceModel.definition_id == definition_id)
        if status is not None:
            statement = statement.where(InstanceModel.status == status.value)
        statement = statement.order_by(InstanceModel.started_at.desc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_instance(i) for i in result.scalars().all()]

    async def get_history(self, instance_id: str) -> list[HistoryEntry]:
        statement = (
            select(HistoryModel)
            .where(HistoryModel.instance_id == instance_id)
            .order_by(HistoryModel.position)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [
                HistoryEntry(
                    id=h.id,
                    instance_id=h.instance_id,
                    node_id=h.node_id,
                    action=h.action,
                    timestamp=_utc(h.timestamp),
                    actor_user_id=h.actor_user_id,
                    data=h.data,
                )
                for h in result.scalars().all()
            ]

    # --- Tasks ---

    async def save_task(self, task: Task) -> None:
        async with self._session_factory() as session:
            await session.merge(self._to_task_model(task))
            await session.commit()

    async def get_task(self, task_id: str) -> Task | None:
        async with self._session_factory() as session:
            result = await session.get(TaskModel, task_id)
            if not result:
                return None
            return self._to_task(result)

    async def find_open_task(self, instance_id: str, node_id: str) -> Task | None:
        statement = select(TaskModel).where(
            TaskModel.instance_id == instance_id,
            TaskModel.node_id == node_id,
            TaskModel.status.in_([TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value]),
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            task = result.scalars().first()
            return self._to_task(task) if task else None

    async def list_tasks(
        self,
        principal_id: str | None = None,
        status: TaskStatus | None = None,
        instance_id: str | None = None,
    ) -> list[Task]:
        statement = select(TaskModel)
        if status is not None:
            statement = statement.where(TaskModel.status == status.value)
        if instance_id is not None:
            statement = statement.where(TaskModel.instance_id == instance_id)
        statement = statement.order_by(TaskModel.created_at)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            tasks = [self._to_task(t) for t in result.scalars().all()]

        # Principal lists are JSON, so addressee filtering happens here
        if principal_id is not None:
            tasks = [t for t in tasks if principal_id in t.principal_ids or t.assignee_id == principal_id]
        return tasks

    # --- Timers ---

    async def save_timer(self, timer: Timer) -> None:
        async with self._session_factory() as session:
            await session.merge(
                TimerModel(
                    id=timer.id,
                    instance_id=timer.instance_id,
                    node_id=timer.node_id,
                    cursor_id=timer.cursor_id,
                    fire_at=_utc(timer.fire_at),
                    consumed=timer.consumed,
                )
            )
            await session.commit()

    async def get_timer(self, timer_id: str) -> Timer | None:
        async with self._session_factory() as session:
            result = await session.get(TimerModel, timer_id)
            if not result:
                return None
            return self._to_timer(result)

    async def list_pending_timers(self, instance_id: str | None = None) -> list[Timer]:
        statement = select(TimerModel).where(TimerModel.consumed.is_(False))
        if instance_id is not None:
            statement = statement.where(TimerModel.instance_id == instance_id)
        statement = statement.order_by(TimerModel.fire_at)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_timer(t) for t in result.scalars().all()]

    # --- Subscriptions ---

    async def add_subscriber(self, instance_id: str, user_id: str) -> None:
        async with self._session_factory() as session:
            existing = await session.get(SubscriptionModel, (instance_id, user_id))
            if existing:
                return
            session.add(SubscriptionModel(instance_id=instance_id, user_id=user_id))
            await session.commit()

    async def remove_subscriber(self, instance_id: str, user_id: str) -> None:
        async with self._session_factory() as session:
            existing = await session.get(SubscriptionModel, (instance_id, user_id))
            if not existing:
                return
            await session.delete(existing)
            await session.commit()

    async def list_subscribers(self, instance_id: str) -> list[str]:
        statement = (
            select(SubscriptionModel)
            .where(SubscriptionModel.instance_id == instance_id)
            .order_by(SubscriptionModel.created_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [s.user_id for s in result.scalars().all()]

    # --- Notifications ---

    async def save_notifications(self, notifications: Sequence[Notification]) -> None:
        async with self._session_factory() as session:
            for notification in notifications:
                await session.merge(self._to_notification_model(notification))
            await session.commit()

    async def get_notification(self, notification_id: str) -> Notification | None:
        async with self._session_factory() as session:
            result = await session.get(NotificationModel, notification_id)
            if not result:
                return None
            return self._to_notification(result)

    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 100) -> list[Notification]:
        statement = select(NotificationModel).where(NotificationModel.user_id == user_id)
        if unread_only:
            statement = statement.where(NotificationModel.read.is_(False))
        statement = statement.order_by(NotificationModel.created_at.desc()).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._to_notification(n) for n in result.scalars().all()]

    async def count_unread_notifications(self, user_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(NotificationModel)
            .where(NotificationModel.user_id == user_id, NotificationModel.read.is_(False))
        )
        async with self._session_factory() as session:
            return (await session.execute(statement)).scalar_one()

    async def mark_all_notifications_read(self, user_id: str, read_at: datetime) -> int:
        statement = (
            update(NotificationModel)
            .where(NotificationModel.user_id == user_id, NotificationModel.read.is_(False))
            .values(read=True, read_at=_utc(read_at))
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
            return result.rowcount

    async def delete_notification(self, notification_id: str) -> bool:
        async with self._session_factory() as session:
            existing = await session.get(NotificationModel, notification_id)
            if not existing:
                return False
            await session.delete(existing)
            await session.commit()
            return True

    # --- Conversion ---

    def _to_instance_model(self, instance: WorkflowInstance) -> InstanceModel:
        return InstanceModel(
            id=instance.id,
            definition_id=instance.definition_id,
            definition_version=instance.definition_version,
            status=instance.status.value,
            started_by=instance.started_by,
            started_at=_utc(instance.started_at),
            completed_at=_utc(instance.completed_at),
            error=instance.error,
            data=instance.data,
            current_node_ids=list(instance.current_node_ids),
            cursors={cid: {**asdict(c), "state": c.state.value} for cid, c in instance.cursors.items()},
            forks={fid: asdict(f) for fid, f in instance.forks.items()},
            loop_state=instance.loop_state,
        )

    def _to_instance(self, model: InstanceModel) -> WorkflowInstance:
        cursors: dict[str, Cursor] = {}
        for cursor_id, raw in (model.cursors or {}).items():
            cursors[cursor_id] = Cursor(
                id=raw["id"],
                node_id=raw["node_id"],
                fork_path=list(raw.get("fork_path", [])),
                state=CursorState(raw.get("state", CursorState.READY.value)),
            )

        forks: dict[str, ForkState] = {}
        for fork_id, raw in (model.forks or {}).items():
            forks[fork_id] = ForkState(
                id=raw["id"],
                node_id=raw["node_id"],
                join_node_id=raw.get("join_node_id"),
                expected=raw["expected"],
                parent_path=list(raw.get("parent_path", [])),
                arrived=list(raw.get("arrived", [])),
                policy=raw.get("policy", "independent"),
            )

        return WorkflowInstance(
            id=model.id,
            definition_id=model.definition_id,
            definition_version=model.definition_version,
            status=InstanceStatus(model.status),
            started_by=model.started_by,
            started_at=_utc(model.started_at),
            data=dict(model.data or {}),
            current_node_ids=list(model.current_node_ids or []),
            completed_at=_utc(model.completed_at),
            error=model.error,
            cursors=cursors,
            forks=forks,
            loop_state=dict(model.loop_state or {}),
        )

    def _to_task_model(self, task: Task) -> TaskModel:
        return TaskModel(
            id=task.id,
            instance_id=task.instance_id,
            node_id=task.node_id,
            cursor_id=task.cursor_id,
            type=task.type.value,
            assignee_type=task.assignee_type,
            assignee_id=task.assignee_id,
            principal_ids=list(task.principal_ids),
            status=task.status.value,
            priority=task.priority,
            title=task.title,
            instructions=task.instructions,
            due_at=_utc(task.due_at),
            form_schema_ref=task.form_schema_ref,
            decision=task.decision,
            result_data=dict(task.result_data),
            claimed_by=task.claimed_by,
            completed_by=task.completed_by,
            created_at=_utc(task.created_at),
            completed_at=_utc(task.completed_at),
        )

    def _to_task(self, model: TaskModel) -> Task:
        return Task(
            id=model.id,
            instance_id=model.instance_id,
            node_id=model.node_id,
            cursor_id=model.cursor_id,
            type=TaskType(model.type),
            assignee_type=model.assignee_type,  # type: ignore[arg-type]
            assignee_id=model.assignee_id,
            principal_ids=list(model.principal_ids or []),
            created_at=_utc(model.created_at),
            status=TaskStatus(model.status),
            priority=model.priority,
            title=model.title,
            instructions=model.instructions,
            due_at=_utc(model.due_at),
            form_schema_ref=model.form_schema_ref,
            decision=model.decision,
            result_data=dict(model.result_data or {}),
            claimed_by=model.claimed_by,
            completed_by=model.completed_by,
            completed_at=_utc(model.completed_at),
        )

    def _to_timer(self, model: TimerModel) -> Timer:
        return Timer(
            id=model.id,
            instance_id=model.instance_id,
            node_id=model.node_id,
            cursor_id=model.cursor_id,
            fire_at=_utc(model.fire_at),
            consumed=model.consumed,
        )

    def _to_notification_model(self, notification: Notification) -> NotificationModel:
        return NotificationModel(
            id=notification.id,
            user_id=notification.user_id,
            kind=notification.kind,
            title=notification.title,
            message=notification.message,
            instance_id=notification.instance_id,
            task_id=notification.task_id,
            data=dict(notification.data),
            read=notification.read,
            read_at=_utc(notification.read_at),
            created_at=_utc(notification.created_at),
        )

    def _to_notification(self, model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            user_id=model.user_id,
            kind=model.kind,
            title=model.title,
            message=model.message,
            created_at=_utc(model.created_at),
            instance_id=model.instance_id,
            task_id=model.task_id,
            data=dict(model.data or {}),
            read=model.read,
            read_at=_utc(model.read_at),
        )
