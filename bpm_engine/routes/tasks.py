"""Task routes."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ..core.dependencies import get_task_service, require_user
from ..core.exceptions import (
    TaskAlreadyResolvedError,
    TaskForbiddenError,
    TaskNotFoundError,
    TaskNotPendingError,
    ValidationError,
)
from ..engine.types import TaskStatus
from ..schemas.task import TaskCompleteRequest, TaskReassignRequest, TaskResponse, TaskStatisticsResponse
from ..services.task_service import TaskService

router = APIRouter(prefix="/tasks")


# Type alias for dependency injection
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]


@router.get("", response_model=list[TaskResponse])
async def list_tasks(
    service: TaskServiceDep,
    assignee: str | None = Query(None, description="User or group the task is addressed to"),
    status: TaskStatus | None = Query(None, description="Filter by status"),
    instance_id: str | None = Query(None, description="Filter by instance"),
) -> list[TaskResponse]:
    """List tasks, oldest first."""
    return await service.list_tasks(assignee=assignee, status=status, instance_id=instance_id)


@router.get("/statistics", response_model=TaskStatisticsResponse)
async def get_task_statistics(
    service: TaskServiceDep,
    assignee: str | None = Query(None, description="Only tasks addressed to this user or group"),
) -> TaskStatisticsResponse:
    """Task counts by status; overdue counts open tasks past their due time."""
    return await service.get_statistics(assignee)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, service: TaskServiceDep) -> TaskResponse:
    """Get a task by ID."""
    try:
        return await service.get_task(task_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


@router.post("/{task_id}/claim", response_model=TaskResponse)
async def claim_task(
    task_id: str,
    service: TaskServiceDep,
    user_id: str = Depends(require_user),
) -> TaskResponse:
    """Claim a group task for the caller."""
    try:
        return await service.claim_task(task_id, user_id)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except TaskForbiddenError as e:
        raise HTTPException(status_code=403, detail=e.message)
    except TaskAlreadyResolvedError as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.post("/{task_id}/complete", response_model=TaskResponse)
async def complete_task(
    task_id: str,
    request: TaskCompleteRequest,
    service: TaskServiceDep,
    user_id: str = Depends(require_user),
) -> TaskResponse:
    """Complete a task and resume its instance."""
    try:
        return await service.complete_task(task_id, user_id, request)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except TaskForbiddenError as e:
        raise HTTPException(status_code=403, detail=e.message)
    except TaskAlreadyResolvedError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)


@router.post("/{task_id}/reassign", response_model=TaskResponse)
async def reassign_task(
    task_id: str,
    request: TaskReassignRequest,
    service: TaskServiceDep,
    user_id: str = Depends(require_user),
) -> TaskResponse:
    """Hand a pending task to another user or group."""
    try:
        return await service.reassign_task(task_id, user_id, request)
    except TaskNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except TaskForbiddenError as e:
        raise HTTPException(status_code=403, detail=e.message)
    except (TaskAlreadyResolvedError, TaskNotPendingError) as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)
