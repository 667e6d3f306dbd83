"""SQLModel database models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DefinitionModel(SQLModel, table=True):
    """One version of a workflow definition."""

    __tablename__ = "workflow_definitions"

    id: str = Field(primary_key=True)
    version: int = Field(primary_key=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)

    # Full raw definition: nodes, edges, settings
    definition: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_by: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)


class InstanceModel(SQLModel, table=True):
    """Workflow instance with its engine bookkeeping."""

    __tablename__ = "workflow_instances"

    id: str = Field(primary_key=True)
    definition_id: str = Field(index=True)
    definition_version: int
    status: str = Field(index=True)  # running, completed, failed, cancelled

    started_by: str | None = Field(default=None)
    started_at: datetime = Field(index=True)
    completed_at: datetime | None = Field(default=None)
    error: str | None = Field(default=None)

    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    current_node_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Cursors, join barriers and loop passes, keyed by id
    cursors: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    forks: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    loop_state: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class HistoryModel(SQLModel, table=True):
    """Append-only audit trail entry."""

    __tablename__ = "workflow_history"

    id: str = Field(primary_key=True)
    instance_id: str = Field(index=True)
    position: int  # insertion order within the instance
    node_id: str | None = Field(default=None)
    action: str = Field(index=True)
    actor_user_id: str | None = Field(default=None)
    data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    timestamp: datetime


class TaskModel(SQLModel, table=True):
    """Human task."""

    __tablename__ = "tasks"

    id: str = Field(primary_key=True)
    instance_id: str = Field(index=True)
    node_id: str = Field(index=True)
    cursor_id: str
    type: str
    assignee_type: str
    assignee_id: str = Field(index=True)
    principal_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    status: str = Field(index=True)
    priority: str = "medium"
    title: str | None = Field(default=None)
    instructions: str | None = Field(default=None)
    due_at: datetime | None = Field(default=None)
    form_schema_ref: str | None = Field(default=None)
    decision: str | None = Field(default=None)
    result_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    claimed_by: str | None = Field(default=None)
    completed_by: str | None = Field(default=None)
    created_at: datetime = Field(index=True)
    completed_at: datetime | None = Field(default=None)


class TimerModel(SQLModel, table=True):
    """Durable timer."""

    __tablename__ = "timers"

    id: str = Field(primary_key=True)
    instance_id: str = Field(index=True)
    node_id: str
    cursor_id: str
    fire_at: datetime = Field(index=True)
    consumed: bool = Field(default=False, index=True)


class SubscriptionModel(SQLModel, table=True):
    """User following an instance."""

    __tablename__ = "workflow_subscriptions"

    instance_id: str = Field(primary_key=True)
    user_id: str = Field(primary_key=True)
    created_at: datetime = Field(default_factory=_utcnow)


class NotificationModel(SQLModel, table=True):
    """In-app notification with its read state."""

    __tablename__ = "notifications"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    kind: str
    title: str
    message: str
    instance_id: str | None = Field(default=None, index=True)
    task_id: str | None = Field(default=None)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    read: bool = Field(default=False, index=True)
    read_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow, index=True)
