"""In-memory instance storage for tests and embedded use."""

from __future__ import annotations

import copy
from typing import Sequence, TYPE_CHECKING

from ..core.exceptions import TimerAlreadyConsumedError
from .base import InstanceStore

if TYPE_CHECKING:
    from datetime import datetime

    from ..engine.types import (
        HistoryEntry,
        InstanceStatus,
        Notification,
        Task,
        TaskStatus,
        Timer,
        WorkflowInstance,
    )


class InMemoryInstanceStore(InstanceStore):
    """
    In-memory instance storage.

    Objects are copied in and out so callers never share state with the
    store, the same as with a database.
    """

    def __init__(self) -> None:
        self._instances: dict[str, WorkflowInstance] = {}
        self._history: dict[str, list[HistoryEntry]] = {}
        self._tasks: dict[str, Task] = {}
        self._timers: dict[str, Timer] = {}
        self._subscribers: dict[str, list[str]] = {}
        self._notifications: dict[str, Notification] = {}

    async def save_instance(
        self,
        instance: WorkflowInstance,
        new_history: Sequence[HistoryEntry] = (),
        tasks: Sequence[Task] = (),
        consumed_timer_ids: Sequence[str] = (),
    ) -> None:
        # Check every timer before touching anything; no await in between
        for timer_id in consumed_timer_ids:
            timer = self._timers.get(timer_id)
            if timer is None or timer.consumed:
                raise TimerAlreadyConsumedError(timer_id)

        for timer_id in consumed_timer_ids:
            self._timers[timer_id].consumed = True
        for task in tasks:
            self._tasks[task.id] = copy.deepcopy(task)
        self._instances[instance.id] = copy.deepcopy(instance)
        self._history.setdefault(instance.id, []).extend(copy.deepcopy(list(new_history)))

    async def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        instance = self._instances.get(instance_id)
        return copy.deepcopy(instance) if instance else None

    async def list_instances(
        self,
        definition_id: str | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        instances = [
            i
            for i in self._instances.values()
            if (definition_id is None or i.definition_id == definition_id)
            and (status is None or i.status == status)
        ]
        instances.sort(key=lambda i: i.started_at, reverse=True)
        return copy.deepcopy(instances)

    async def get_history(self, instance_id: str) -> list[HistoryEntry]:
        return copy.deepcopy(self._history.get(instance_id, []))

    async def save_task(self, task: Task) -> None:
        self._tasks[task.id] = copy.deepcopy(task)

    async def get_task(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def find_open_task(self, instance_id: str, node_id: str) -> Task | None:
        for task in self._tasks.values():
            if task.instance_id == instance_id and task.node_id == node_id and task.status.is_open:
                return copy.deepcopy(task)
        return None

    async def list_tasks(
        self,
        principal_id: str | None = None,
        status: TaskStatus | None = None,
        instance_id: str | None = None,
    ) -> list[Task]:
        tasks = [
            t
            for t in self._tasks.values()
            if (principal_id is None or principal_id in t.principal_ids or t.assignee_id == principal_id)
            and (status is None or t.status == status)
            and (instance_id is None or t.instance_id == instance_id)
        ]
        tasks.sort(key=lambda t: t.created_at)
        return copy.deepcopy(tasks)

    async def save_timer(self, timer: Timer) -> None:
        self._timers[timer.id] = copy.deepcopy(timer)

    async def get_timer(self, timer_id: str) -> Timer | None:
        timer = self._timers.get(timer_id)
        return copy.deepcopy(timer) if timer else None

    async def list_pending_timers(self, instance_id: str | None = None) -> list[Timer]:
        timers = [
            t
            for t in self._timers.values()
            if not t.consumed and (instance_id is None or t.instance_id == instance_id)
        ]
        timers.sort(key=lambda t: t.fire_at)
        return copy.deepcopy(timers)

    async def add_subscriber(self, instance_id: str, user_id: str) -> None:
        subscribers = self._subscribers.setdefault(instance_id, [])
        if user_id not in subscribers:
            subscribers.append(user_id)

    async def remove_subscriber(self, instance_id: str, user_id: str) -> None:
        subscribers = self._subscribers.get(instance_id, [])
        if user_id in subscribers:
            subscribers.remove(user_id)

    async def list_subscribers(self, instance_id: str) -> list[str]:
        return list(self._subscribers.get(instance_id, []))

    async def save_notifications(self, notifications: Sequence[Notification]) -> None:
        for notification in notifications:
            self._notifications[notification.id] = copy.deepcopy(notification)

    async def get_notification(self, notification_id: str) -> Notification | None:
        notification = self._notifications.get(notification_id)
        return copy.deepcopy(notification) if notification else None

    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 100) -> list[Notification]:
        notifications = [
            n for n in self._notifications.values() if n.user_id == user_id and not (unread_only and n.read)
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return copy.deepcopy(notifications[:limit])

    async def count_unread_notifications(self, user_id: str) -> int:
        return sum(1 for n in self._notifications.values() if n.user_id == user_id and not n.read)

    async def mark_all_notifications_read(self, user_id: str, read_at: datetime) -> int:
        changed = 0
        for notification in self._notifications.values():
            if notification.user_id == user_id and not notification.read:
                notification.read = True
                notification.read_at = read_at
                changed += 1
        return changed

    async def delete_notification(self, notification_id: str) -> bool:
        return self._notifications.pop(notification_id, None) is not None
