"""Notification service for business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..schemas.notification import MarkAllReadResponse, NotificationResponse, UnreadCountResponse

if TYPE_CHECKING:
    from ..engine.engine import WorkflowEngine
    from ..engine.types import Notification


def notification_to_response(notification: Notification) -> NotificationResponse:
    return NotificationResponse(
        id=notification.id,
        kind=notification.kind,
        title=notification.title,
        message=notification.message,
        instance_id=notification.instance_id,
        task_id=notification.task_id,
        data=notification.data,
        read=notification.read,
        read_at=notification.read_at.isoformat() if notification.read_at else None,
        created_at=notification.created_at.isoformat(),
    )


class NotificationService:
    """Service for a user's in-app notifications."""

    def __init__(self, engine: WorkflowEngine) -> None:
        self._engine = engine

    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 100) -> list[NotificationResponse]:
        notifications = await self._engine.list_notifications(user_id, unread_only=unread_only, limit=limit)
        return [notification_to_response(n) for n in notifications]

    async def unread_count(self, user_id: str) -> UnreadCountResponse:
        return UnreadCountResponse(count=await self._engine.unread_notification_count(user_id))

    async def mark_read(self, notification_id: str, user_id: str) -> NotificationResponse:
        return notification_to_response(await self._engine.mark_notification_read(notification_id, user_id))

    async def mark_all_read(self, user_id: str) -> MarkAllReadResponse:
        return MarkAllReadResponse(updated=await self._engine.mark_all_notifications_read(user_id))

    async def delete(self, notification_id: str, user_id: str) -> None:
        await self._engine.delete_notification(notification_id, user_id)
