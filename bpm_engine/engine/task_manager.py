"""Human task lifecycle: creation, claiming, completion and cancellation."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, TYPE_CHECKING

from ..core.exceptions import (
    TaskAlreadyResolvedError,
    TaskForbiddenError,
    TaskNotFoundError,
    TaskNotPendingError,
    ValidationError,
)
from .types import EventType, Task, TaskStatistics, TaskStatus, TaskType

if TYPE_CHECKING:
    from ..nodes.configs import TaskConfig
    from ..storage.base import InstanceStore
    from .assignees import AssigneeResolver
    from .clock import Clock
    from .event_bus import EventPublisher
    from .expression_engine import ExpressionEngine
    from .types import Node, WorkflowInstance

logger = logging.getLogger(__name__)

APPROVAL_DECISIONS = ("approved", "rejected")


class TaskManager:
    """
    Creates and resolves human tasks.

    Only the task records are handled here. Apart from create_task, the
    methods return the changed task without saving it: the caller writes it
    together with the instance it belongs to.
    """

    def __init__(
        self,
        store: InstanceStore,
        resolver: AssigneeResolver,
        expressions: ExpressionEngine,
        clock: Clock,
        events: EventPublisher,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._expressions = expressions
        self._clock = clock
        self._events = events

    async def create_task(
        self,
        instance: WorkflowInstance,
        node: Node,
        cursor_id: str,
        task_type: TaskType,
    ) -> Task:
        """
        Create the task for a node, or return the one already open.

        The assignee is resolved once here and never re-resolved.

        Raises:
            ValueError: If the assignee resolves to nobody
        """
        existing = await self._store.find_open_task(instance.id, node.id)
        if existing is not None:
            return existing

        config: TaskConfig = node.config  # type: ignore[assignment]
        assignee = self._expressions.resolve(config.assignee, instance.data)
        resolution = await self._resolver.resolve(assignee)
        if not resolution.principal_ids:
            raise ValueError(f"Assignee {resolution.type}:{resolution.assignee_id} resolves to no users")

        now = self._clock.now()
        due_seconds = config.due_seconds
        task = Task(
            id=str(uuid.uuid4()),
            instance_id=instance.id,
            node_id=node.id,
            cursor_id=cursor_id,
            type=task_type,
            assignee_type=resolution.type,
            assignee_id=resolution.assignee_id,
            principal_ids=list(resolution.principal_ids),
            created_at=now,
            priority=config.priority,
            title=self._expressions.render(config.title or node.display_name, instance.data),
            instructions=(
                self._expressions.render(config.instructions, instance.data) if config.instructions else None
            ),
            due_at=now + timedelta(seconds=due_seconds) if due_seconds else None,
            form_schema_ref=config.form_schema_ref,
        )
        await self._store.save_task(task)
        logger.info("Created %s task %s for %s:%s", task.type.value, task.id, task.assignee_type, task.assignee_id)

        await self._events.emit(
            instance,
            EventType.TASK_ASSIGNED,
            task_id=task.id,
            node_id=node.id,
            data={"title": task.title, "type": task.type.value, "priority": task.priority},
            extra_recipients=task.principal_ids,
        )
        return task

    async def get_task(self, task_id: str) -> Task:
        task = await self._store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def claim_task(self, task_id: str, actor_user_id: str) -> Task:
        """
        Lock a pending task to one member of its audience.

        Claiming a task you already hold is a no-op.

        Raises:
            TaskNotFoundError, TaskAlreadyResolvedError, TaskForbiddenError
        """
        task = await self.get_task(task_id)
        self._check_open(task)
        self._check_actor(task, actor_user_id)

        if task.status == TaskStatus.IN_PROGRESS:
            return task

        task.status = TaskStatus.IN_PROGRESS
        task.claimed_by = actor_user_id
        return task

    async def complete_task(
        self,
        task_id: str,
        actor_user_id: str,
        decision: str | None = None,
        result_data: dict[str, Any] | None = None,
    ) -> Task:
        """
        Mark a task completed by an allowed actor.

        Raises:
            TaskNotFoundError: If the task does not exist
            TaskAlreadyResolvedError: If the task is completed or cancelled
            TaskForbiddenError: If the actor may not act on the task
            ValidationError: If an approval gets no valid decision
        """
        task = await self.get_task(task_id)
        self._check_open(task)
        self._check_actor(task, actor_user_id)

        if task.type == TaskType.APPROVAL and decision not in APPROVAL_DECISIONS:
            raise ValidationError(
                f"Approval decision must be one of {', '.join(APPROVAL_DECISIONS)}",
                field="decision",
            )

        task.status = TaskStatus.COMPLETED
        task.decision = decision
        task.result_data = dict(result_data or {})
        task.completed_by = actor_user_id
        task.completed_at = self._clock.now()
        logger.info("Task %s completed by %s", task.id, actor_user_id)
        return task

    async def cancel_open_tasks(self, instance_id: str) -> list[Task]:
        """Cancel every pending or in-progress task of an instance."""
        cancelled = []
        for task in await self._store.list_tasks(instance_id=instance_id):
            if not task.status.is_open:
                continue
            task.status = TaskStatus.CANCELLED
            cancelled.append(task)
        return cancelled

    async def reassign_task(
        self,
        task_id: str,
        assignee: str,
        actor_user_id: str,
        owner_id: str | None = None,
    ) -> Task:
        """
        Address a pending task to a new user or group.

        The current audience and the instance owner may reassign.

        Raises:
            TaskNotFoundError, TaskAlreadyResolvedError, TaskForbiddenError
            TaskNotPendingError: If the task has been claimed
            ValidationError: If the new assignee resolves to nobody
        """
        task = await self.get_task(task_id)
        self._check_open(task)
        if actor_user_id not in task.principal_ids and actor_user_id != owner_id:
            raise TaskForbiddenError(task.id, actor_user_id)
        if task.status != TaskStatus.PENDING:
            raise TaskNotPendingError(task.id, task.status.value)

        try:
            resolution = await self._resolver.resolve(assignee)
        except ValueError as e:
            raise ValidationError(str(e), field="assignee") from e
        if not resolution.principal_ids:
            raise ValidationError(
                f"Assignee {resolution.type}:{resolution.assignee_id} resolves to no users",
                field="assignee",
            )

        task.assignee_type = resolution.type
        task.assignee_id = resolution.assignee_id
        task.principal_ids = list(resolution.principal_ids)
        logger.info("Task %s reassigned to %s:%s by %s", task.id, task.assignee_type, task.assignee_id, actor_user_id)
        return task

    async def list_tasks(
        self,
        principal_id: str | None = None,
        status: TaskStatus | None = None,
        instance_id: str | None = None,
    ) -> list[Task]:
        return await self._store.list_tasks(principal_id=principal_id, status=status, instance_id=instance_id)

    async def statistics(self, principal_id: str | None = None) -> TaskStatistics:
        """Count tasks by status, for everyone or for one addressee."""
        stats = TaskStatistics()
        now = self._clock.now()
        for task in await self._store.list_tasks(principal_id=principal_id):
            stats.total += 1
            if task.status == TaskStatus.PENDING:
                stats.pending += 1
            elif task.status == TaskStatus.IN_PROGRESS:
                stats.in_progress += 1
            elif task.status == TaskStatus.COMPLETED:
                stats.completed += 1
            elif task.status == TaskStatus.CANCELLED:
                stats.cancelled += 1
            if task.status.is_open and task.due_at is not None and task.due_at < now:
                stats.overdue += 1
        return stats

    def _check_open(self, task: Task) -> None:
        if not task.status.is_open:
            raise TaskAlreadyResolvedError(task.id, task.status.value)

    def _check_actor(self, task: Task, actor_user_id: str) -> None:
        if actor_user_id not in task.principal_ids:
            raise TaskForbiddenError(task.id, actor_user_id)
        # A claimed task belongs to its claimer until completed
        if task.claimed_by and task.claimed_by != actor_user_id:
            raise TaskForbiddenError(task.id, actor_user_id)
