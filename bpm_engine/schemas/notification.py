"""Notification-related Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    """In-app notification as returned by the API."""

    id: str
    kind: str
    title: str
    message: str
    instance_id: str | None = None
    task_id: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    read: bool
    read_at: str | None = None
    created_at: str


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int
