"""Persisted in-app notifications with per-user read state."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, TYPE_CHECKING

from ..core.exceptions import NotificationNotFoundError
from .types import EventType, Notification

if TYPE_CHECKING:
    from ..storage.base import InstanceStore
    from .clock import Clock
    from .types import WorkflowEvent, WorkflowInstance

logger = logging.getLogger(__name__)


class NotificationInbox:
    """
    Keeps a notification record for every in-app message a user receives.

    Live events on the bus are lost when nobody is listening; the inbox is
    what a user reads after logging back in. Notification nodes deliver
    here directly, and lifecycle events become notifications through
    record_event.
    """

    def __init__(self, store: InstanceStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def deliver(
        self,
        user_ids: Iterable[str],
        kind: str,
        title: str,
        message: str,
        instance_id: str | None = None,
        task_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> list[Notification]:
        """Store one notification per distinct user."""
        now = self._clock.now()
        notifications = [
            Notification(
                id=str(uuid.uuid4()),
                user_id=user_id,
                kind=kind,
                title=title,
                message=message,
                created_at=now,
                instance_id=instance_id,
                task_id=task_id,
                data=dict(data or {}),
            )
            for user_id in dict.fromkeys(u for u in user_ids if u)
        ]
        if notifications:
            await self._store.save_notifications(notifications)
            logger.debug("Stored %d %s notifications", len(notifications), kind)
        return notifications

    async def record_event(
        self,
        instance: WorkflowInstance,
        event: WorkflowEvent,
        assignees: Iterable[str] = (),
    ) -> list[Notification]:
        """
        Store the notifications a lifecycle event warrants.

        New tasks notify their assignees. Task completion and the end of an
        instance notify the user who started it. Other events store nothing.
        """
        data = event.data
        title = data.get("title") or "Untitled task"

        if event.type == EventType.TASK_ASSIGNED:
            recipients = list(assignees)
            kind, heading = "task_assigned", "New task assigned"
            message = f'"{title}" is waiting for you'
        elif event.type == EventType.TASK_COMPLETED:
            recipients = [instance.started_by] if instance.started_by else []
            kind, heading = "task_completed", "Task completed"
            message = f'"{title}" was completed by {data.get("completed_by")}'
            if data.get("decision"):
                message += f' ({data["decision"]})'
        elif event.type == EventType.INSTANCE_COMPLETED:
            recipients = [instance.started_by] if instance.started_by else []
            kind, heading = "workflow_completed", "Workflow completed"
            message = f'Workflow "{instance.definition_id}" finished'
        elif event.type == EventType.INSTANCE_FAILED:
            recipients = [instance.started_by] if instance.started_by else []
            kind, heading = "workflow_failed", "Workflow failed"
            message = f'Workflow "{instance.definition_id}" failed: {data.get("error")}'
        else:
            return []

        return await self.deliver(
            recipients,
            kind,
            heading,
            message,
            instance_id=instance.id,
            task_id=event.task_id,
            data={"node_id": event.node_id} if event.node_id else None,
        )

    # --- Reading ---

    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 100) -> list[Notification]:
        return await self._store.list_notifications(user_id, unread_only=unread_only, limit=limit)

    async def unread_count(self, user_id: str) -> int:
        return await self._store.count_unread_notifications(user_id)

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        """
        Mark one of the user's notifications read. Marking it again is a no-op.

        Raises:
            NotificationNotFoundError: If it does not exist or is someone else's
        """
        notification = await self._owned(notification_id, user_id)
        if not notification.read:
            notification.read = True
            notification.read_at = self._clock.now()
            await self._store.save_notifications([notification])
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        return await self._store.mark_all_notifications_read(user_id, self._clock.now())

    async def delete(self, notification_id: str, user_id: str) -> None:
        """
        Delete one of the user's notifications.

        Raises:
            NotificationNotFoundError: If it does not exist or is someone else's
        """
        await self._owned(notification_id, user_id)
        await self._store.delete_notification(notification_id)

    async def _owned(self, notification_id: str, user_id: str) -> Notification:
        notification = await self._store.get_notification(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotificationNotFoundError(notification_id)
        return notification
