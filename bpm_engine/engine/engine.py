"""WorkflowEngine - the public entry point of the execution engine."""

from __future__ import annotations

import logging
import uuid
from typing import Any, TYPE_CHECKING

from ..core.config import Settings, get_settings
from ..core.exceptions import InstanceAlreadyTerminalError, InstanceNotFoundError, TimerAlreadyConsumedError
from .assignees import AssigneeResolver, StaticAssigneeResolver
from .clock import Clock, SystemClock
from .event_bus import EventBus, EventPublisher, Subscription
from .expression_engine import ExpressionEngine, expression_engine
from .inbox import NotificationInbox
from .locks import InstanceLocks
from .node_registry import register_all_nodes
from .notifier import DefaultNotifier, Notifier
from .task_manager import TaskManager
from .timer_scheduler import TimerScheduler
from .types import (
    CursorState,
    EngineServices,
    EventType,
    HistoryAction,
    HistoryEntry,
    InstanceSnapshot,
    InstanceStatus,
    Notification,
    Task,
    TaskStatistics,
    TaskStatus,
    WorkflowInstance,
)
from .workflow_runner import WorkflowRunner

if TYPE_CHECKING:
    import httpx
    from sqlalchemy.ext.asyncio import AsyncEngine

    from ..storage.base import DefinitionProvider, InstanceStore
    from .types import Timer

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """
    Executes workflow instances.

    All collaborators are injectable; anything not given is built from
    settings. No call blocks on a human task or a timer: instances suspend
    and are resumed by complete_task or by the timer scheduler.
    """

    def __init__(
        self,
        definitions: DefinitionProvider,
        store: InstanceStore,
        resolver: AssigneeResolver | None = None,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
        http_client: httpx.AsyncClient | None = None,
        database: AsyncEngine | None = None,
        expressions: ExpressionEngine | None = None,
        settings: Settings | None = None,
    ) -> None:
        register_all_nodes()
        settings = settings or get_settings()

        self.definitions = definitions
        self.store = store
        self.clock = clock or SystemClock()
        self.event_bus = event_bus or EventBus(buffer_size=settings.event_buffer_size)
        self.resolver = resolver or StaticAssigneeResolver(settings.assignee_groups)
        self.inbox = NotificationInbox(store, self.clock)
        self.events = EventPublisher(self.event_bus, store, self.clock, inbox=self.inbox)
        self.notifier = notifier or DefaultNotifier(
            self.event_bus, settings, self.clock, http_client=http_client, resolver=self.resolver, inbox=self.inbox
        )
        expressions = expressions or expression_engine

        self.timer_scheduler = TimerScheduler(store, self.clock, handler=self._on_timer)
        self.task_manager = TaskManager(store, self.resolver, expressions, self.clock, self.events)
        self.services = EngineServices(
            expressions=expressions,
            clock=self.clock,
            task_manager=self.task_manager,
            timer_scheduler=self.timer_scheduler,
            notifier=self.notifier,
            http_client=http_client,
            database=database,
            script_timeout=settings.script_timeout,
        )
        self.runner = WorkflowRunner(store, self.services, self.events)
        self.locks = InstanceLocks()

    # --- Instances ---

    async def start_instance(
        self,
        definition_id: str,
        initial_data: dict[str, Any] | None = None,
        started_by: str | None = None,
        version: int | None = None,
    ) -> str:
        """
        Start an instance of a definition (latest version by default).

        Runs until every branch waits on a task or timer, or ends.

        Raises:
            DefinitionNotFoundError: If the definition or version is unknown
        """
        definition = await self.definitions.get_definition(definition_id, version)
        instance_id = str(uuid.uuid4())
        async with self.locks(instance_id):
            await self.runner.start(instance_id, definition, initial_data or {}, started_by)
        return instance_id

    async def cancel_instance(self, instance_id: str, actor_user_id: str | None = None) -> None:
        """
        Cancel an instance, its open tasks and its timers.

        Cancelling a cancelled instance is a no-op.

        Raises:
            InstanceNotFoundError: If the instance does not exist
            InstanceAlreadyTerminalError: If the instance completed or failed
        """
        async with self.locks(instance_id):
            instance = await self._load(instance_id)
            if instance.status == InstanceStatus.CANCELLED:
                return
            if instance.status.is_terminal:
                raise InstanceAlreadyTerminalError(instance_id, instance.status.value)
            await self.runner.cancel(instance, actor_user_id)

    async def get_instance(self, instance_id: str) -> InstanceSnapshot:
        """
        Read-only view of an instance with its history and open tasks.

        Raises:
            InstanceNotFoundError: If the instance does not exist
        """
        instance = await self._load(instance_id)
        history = await self.store.get_history(instance_id)
        open_tasks = [t for t in await self.store.list_tasks(instance_id=instance_id) if t.status.is_open]
        return InstanceSnapshot(
            id=instance.id,
            definition_id=instance.definition_id,
            definition_version=instance.definition_version,
            status=instance.status,
            current_node_ids=list(instance.current_node_ids),
            data=dict(instance.data),
            history=history,
            started_by=instance.started_by,
            started_at=instance.started_at,
            completed_at=instance.completed_at,
            error=instance.error,
            open_tasks=open_tasks,
        )

    async def list_instances(
        self,
        definition_id: str | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        return await self.store.list_instances(definition_id=definition_id, status=status)

    # --- Tasks ---

    async def complete_task(
        self,
        task_id: str,
        actor_user_id: str,
        decision: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> Task:
        """
        Complete a task and resume the instance waiting on it.

        The completed task is saved in the same write as the resumed
        instance, so if that write fails the task is still open.

        Raises:
            TaskNotFoundError, TaskAlreadyResolvedError, TaskForbiddenError:
                The instance is left untouched.
        """
        task = await self.task_manager.get_task(task_id)
        async with self.locks(task.instance_id):
            instance = await self._load(task.instance_id)
            task = await self.task_manager.complete_task(task_id, actor_user_id, decision, data)
            definition = await self.definitions.get_definition(instance.definition_id, instance.definition_version)
            await self.runner.resume_task(instance, definition, task)
        return task

    async def claim_task(self, task_id: str, actor_user_id: str) -> Task:
        """
        Claim a pending task so no other group member can complete it.

        Raises:
            TaskNotFoundError, TaskAlreadyResolvedError, TaskForbiddenError
        """
        task = await self.task_manager.get_task(task_id)
        async with self.locks(task.instance_id):
            was_pending = (await self.task_manager.get_task(task_id)).status == TaskStatus.PENDING
            task = await self.task_manager.claim_task(task_id, actor_user_id)
            if was_pending:
                instance = await self._load(task.instance_id)
                entry = HistoryEntry(
                    id=str(uuid.uuid4()),
                    instance_id=instance.id,
                    node_id=task.node_id,
                    action=HistoryAction.TASK_CLAIMED.value,
                    timestamp=self.clock.now(),
                    actor_user_id=actor_user_id,
                    data={"task_id": task.id},
                )
                await self.store.save_instance(instance, [entry], tasks=[task])
        return task

    async def get_task(self, task_id: str) -> Task:
        return await self.task_manager.get_task(task_id)

    async def list_tasks(
        self,
        principal_id: str | None = None,
        status: TaskStatus | None = None,
        instance_id: str | None = None,
    ) -> list[Task]:
        """Tasks addressed to a user (directly or through a group), optionally filtered."""
        return await self.task_manager.list_tasks(principal_id=principal_id, status=status, instance_id=instance_id)

    async def reassign_task(self, task_id: str, assignee: str, actor_user_id: str) -> Task:
        """
        Hand a pending task to another user or group.

        Raises:
            TaskNotFoundError, TaskAlreadyResolvedError, TaskForbiddenError, TaskNotPendingError
            ValidationError: If the new assignee resolves to nobody
        """
        task = await self.task_manager.get_task(task_id)
        async with self.locks(task.instance_id):
            instance = await self._load(task.instance_id)
            previous = f"{task.assignee_type}:{task.assignee_id}"
            task = await self.task_manager.reassign_task(task_id, assignee, actor_user_id, owner_id=instance.started_by)
            entry = HistoryEntry(
                id=str(uuid.uuid4()),
                instance_id=instance.id,
                node_id=task.node_id,
                action=HistoryAction.TASK_REASSIGNED.value,
                timestamp=self.clock.now(),
                actor_user_id=actor_user_id,
                data={"task_id": task.id, "from": previous, "to": f"{task.assignee_type}:{task.assignee_id}"},
            )
            await self.store.save_instance(instance, [entry], tasks=[task])
            await self.events.emit(
                instance,
                EventType.TASK_ASSIGNED,
                task_id=task.id,
                node_id=task.node_id,
                data={
                    "title": task.title,
                    "type": task.type.value,
                    "priority": task.priority,
                    "reassigned_by": actor_user_id,
                },
                extra_recipients=task.principal_ids,
            )
        return task

    async def task_statistics(self, principal_id: str | None = None) -> TaskStatistics:
        """Task counts by status, for everyone or for one addressee."""
        return await self.task_manager.statistics(principal_id)

    # --- Notifications ---

    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 100) -> list[Notification]:
        """A user's notifications, newest first."""
        return await self.inbox.list_notifications(user_id, unread_only=unread_only, limit=limit)

    async def unread_notification_count(self, user_id: str) -> int:
        return await self.inbox.unread_count(user_id)

    async def mark_notification_read(self, notification_id: str, user_id: str) -> Notification:
        """
        Raises:
            NotificationNotFoundError: If the user has no such notification
        """
        return await self.inbox.mark_read(notification_id, user_id)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        return await self.inbox.mark_all_read(user_id)

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        """
        Raises:
            NotificationNotFoundError: If the user has no such notification
        """
        await self.inbox.delete(notification_id, user_id)

    # --- Events ---

    def subscribe(self, user_id: str) -> Subscription:
        """Open a live event stream for a user."""
        return self.event_bus.subscribe(user_id)

    async def add_subscriber(self, instance_id: str, user_id: str) -> None:
        """Follow an instance's lifecycle and task events."""
        await self._load(instance_id)
        await self.store.add_subscriber(instance_id, user_id)

    async def remove_subscriber(self, instance_id: str, user_id: str) -> None:
        await self._load(instance_id)
        await self.store.remove_subscriber(instance_id, user_id)

    # --- Lifecycle ---

    async def recover(self) -> int:
        """
        Resume work persisted before a restart.

        Re-arms pending timers (firing the overdue ones) and drives running
        instances left with ready cursors. Returns the number of timers found.
        """
        timers = await self.timer_scheduler.recover()

        for instance in await self.store.list_instances(status=InstanceStatus.RUNNING):
            if not any(c.state == CursorState.READY for c in instance.cursors.values()):
                continue
            async with self.locks(instance.id):
                current = await self._load(instance.id)
                definition = await self.definitions.get_definition(
                    current.definition_id, current.definition_version
                )
                logger.info("Resuming interrupted instance %s", current.id)
                await self.runner.drive(current, definition)
        return timers

    async def shutdown(self) -> None:
        """Stop timers and close event streams. Persisted state is kept."""
        await self.timer_scheduler.shutdown()
        self.event_bus.close_all()

    # --- Internals ---

    async def _on_timer(self, timer: Timer) -> None:
        async with self.locks(timer.instance_id):
            # The instance may have been cancelled while we waited for the lock
            current = await self.store.get_timer(timer.id)
            if current is None or current.consumed:
                return
            instance = await self.store.load_instance(timer.instance_id)
            if instance is None:
                logger.warning("Timer %s fired for unknown instance %s", timer.id, timer.instance_id)
                return
            definition = await self.definitions.get_definition(instance.definition_id, instance.definition_version)
            try:
                await self.runner.resume_timer(instance, definition, current)
            except TimerAlreadyConsumedError:
                logger.info("Timer %s was consumed by another process", timer.id)

    async def _load(self, instance_id: str) -> WorkflowInstance:
        instance = await self.store.load_instance(instance_id)
        if instance is None:
            raise InstanceNotFoundError(instance_id)
        return instance
