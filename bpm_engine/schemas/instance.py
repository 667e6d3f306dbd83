"""Instance-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field

from .task import TaskResponse


class InstanceStartRequest(BaseModel):
    """Request schema for starting an instance."""

    definition_id: str = Field(..., description="Definition to instantiate")
    version: int | None = Field(None, ge=1, description="Definition version; latest when omitted")
    data: dict[str, Any] = Field(default_factory=dict, description="Initial instance data")


class InstanceStartResponse(BaseModel):
    """Response after starting an instance."""

    id: str
    status: str
    current_node_ids: list[str]


class HistoryEntrySchema(BaseModel):
    """Audit trail entry."""

    id: str
    node_id: str | None = None
    action: str
    actor_user_id: str | None = None
    data: dict[str, Any] | None = None
    timestamp: str


class InstanceListItem(BaseModel):
    """Instance list item."""

    id: str
    definition_id: str
    definition_version: int
    status: str
    started_by: str | None = None
    started_at: str
    completed_at: str | None = None


class InstanceDetailResponse(BaseModel):
    """Full view of an instance."""

    id: str
    definition_id: str
    definition_version: int
    status: str
    current_node_ids: list[str]
    data: dict[str, Any]
    history: list[HistoryEntrySchema]
    open_tasks: list[TaskResponse]
    started_by: str | None = None
    started_at: str
    completed_at: str | None = None
    error: str | None = None
