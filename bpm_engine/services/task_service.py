"""Task service for business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..engine.types import TaskStatus
from ..schemas.task import TaskCompleteRequest, TaskReassignRequest, TaskResponse, TaskStatisticsResponse

if TYPE_CHECKING:
    from ..engine.engine import WorkflowEngine
    from ..engine.types import Task


def task_to_response(task: Task) -> TaskResponse:
    """Convert an engine Task to its API schema."""
    return TaskResponse(
        id=task.id,
        instance_id=task.instance_id,
        node_id=task.node_id,
        type=task.type.value,
        status=task.status.value,
        assignee_type=task.assignee_type,
        assignee_id=task.assignee_id,
        priority=task.priority,
        title=task.title,
        instructions=task.instructions,
        due_at=task.due_at.isoformat() if task.due_at else None,
        form_schema_ref=task.form_schema_ref,
        decision=task.decision,
        result_data=task.result_data,
        claimed_by=task.claimed_by,
        completed_by=task.completed_by,
        created_at=task.created_at.isoformat(),
        completed_at=task.completed_at.isoformat() if task.completed_at else None,
    )


class TaskService:
    """Service for human task operations."""

    def __init__(self, engine: WorkflowEngine) -> None:
        self._engine = engine

    async def list_tasks(
        self,
        assignee: str | None = None,
        status: TaskStatus | None = None,
        instance_id: str | None = None,
    ) -> list[TaskResponse]:
        tasks = await self._engine.list_tasks(principal_id=assignee, status=status, instance_id=instance_id)
        return [task_to_response(t) for t in tasks]

    async def get_task(self, task_id: str) -> TaskResponse:
        return task_to_response(await self._engine.get_task(task_id))

    async def claim_task(self, task_id: str, user_id: str) -> TaskResponse:
        return task_to_response(await self._engine.claim_task(task_id, user_id))

    async def complete_task(self, task_id: str, user_id: str, request: TaskCompleteRequest) -> TaskResponse:
        """Complete a task and resume its instance."""
        task = await self._engine.complete_task(
            task_id,
            user_id,
            decision=request.decision,
            data=request.data,
        )
        return task_to_response(task)

    async def reassign_task(self, task_id: str, user_id: str, request: TaskReassignRequest) -> TaskResponse:
        return task_to_response(await self._engine.reassign_task(task_id, request.assignee, user_id))

    async def get_statistics(self, assignee: str | None = None) -> TaskStatisticsResponse:
        stats = await self._engine.task_statistics(principal_id=assignee)
        return TaskStatisticsResponse(
            total=stats.total,
            pending=stats.pending,
            in_progress=stats.in_progress,
            completed=stats.completed,
            cancelled=stats.cancelled,
            overdue=stats.overdue,
        )
