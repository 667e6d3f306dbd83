"""Task-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field


class TaskResponse(BaseModel):
    """Human task as returned by the API."""

    id: str
    instance_id: str
    node_id: str
    type: str
    status: str
    assignee_type: str
    assignee_id: str
    priority: str
    title: str | None = None
    instructions: str | None = None
    due_at: str | None = None
    form_schema_ref: str | None = None
    decision: str | None = None
    result_data: dict[str, Any] = Field(default_factory=dict)
    claimed_by: str | None = None
    completed_by: str | None = None
    created_at: str
    completed_at: str | None = None


class TaskCompleteRequest(BaseModel):
    """Request schema for completing a task."""

    decision: str | None = Field(None, description='"approved" or "rejected" for approval tasks')
    data: dict[str, Any] = Field(default_factory=dict, description="Result data merged into the instance")


class TaskReassignRequest(BaseModel):
    """Request schema for reassigning a pending task."""

    assignee: str = Field(..., min_length=1, description='New assignee, e.g. "user:carol" or "group:finance"')


class TaskStatisticsResponse(BaseModel):
    """Task counts by status."""

    total: int
    pending: int
    in_progress: int
    completed: int
    cancelled: int
    overdue: int
