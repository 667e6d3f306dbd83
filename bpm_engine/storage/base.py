"""Abstract persistence interfaces consumed by the engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from ..engine.types import (
        HistoryEntry,
        InstanceStatus,
        Notification,
        Task,
        TaskStatus,
        Timer,
        WorkflowDefinition,
        WorkflowInstance,
    )


class DefinitionProvider(ABC):
    """Source of validated, versioned workflow definitions."""

    @abstractmethod
    async def get_definition(self, definition_id: str, version: int | None = None) -> WorkflowDefinition:
        """
        Get a definition, the latest version when version is None.

        Raises:
            DefinitionNotFoundError: If the definition (or version) is unknown
        """
        ...

    @abstractmethod
    async def register(
        self,
        raw: dict[str, Any],
        definition_id: str | None = None,
        created_by: str | None = None,
    ) -> WorkflowDefinition:
        """
        Validate a raw definition and store it as the next version.

        Raises:
            ValidationError: If the definition is invalid
        """
        ...

    @abstractmethod
    async def list_definitions(self) -> list[WorkflowDefinition]:
        """Latest version of every definition."""
        ...


class InstanceStore(ABC):
    """
    Persistence for instances and everything they own.

    History is append-only: save_instance only ever adds the new entries.
    """

    # --- Instances ---

    @abstractmethod
    async def save_instance(
        self,
        instance: WorkflowInstance,
        new_history: Sequence[HistoryEntry] = (),
        tasks: Sequence[Task] = (),
        consumed_timer_ids: Sequence[str] = (),
    ) -> None:
        """
        Write an instance and everything one step changed, all or nothing.

        Appends the history entries, upserts the tasks and marks the timers
        consumed. If any timer is unknown or already consumed nothing is
        written.

        Raises:
            TimerAlreadyConsumedError: If a timer was consumed by someone else
        """
        ...

    @abstractmethod
    async def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        ...

    @abstractmethod
    async def list_instances(
        self,
        definition_id: str | None = None,
        status: InstanceStatus | None = None,
    ) -> list[WorkflowInstance]:
        ...

    @abstractmethod
    async def get_history(self, instance_id: str) -> list[HistoryEntry]:
        """History entries in insertion order."""
        ...

    # --- Tasks ---

    @abstractmethod
    async def save_task(self, task: Task) -> None:
        ...

    @abstractmethod
    async def get_task(self, task_id: str) -> Task | None:
        ...

    @abstractmethod
    async def find_open_task(self, instance_id: str, node_id: str) -> Task | None:
        """The pending or in-progress task of a node, if any."""
        ...

    @abstractmethod
    async def list_tasks(
        self,
        principal_id: str | None = None,
        status: TaskStatus | None = None,
        instance_id: str | None = None,
    ) -> list[Task]:
        """Tasks ordered by creation time, filtered by addressee, status and instance."""
        ...

    # --- Timers ---

    @abstractmethod
    async def save_timer(self, timer: Timer) -> None:
        ...

    @abstractmethod
    async def get_timer(self, timer_id: str) -> Timer | None:
        ...

    @abstractmethod
    async def list_pending_timers(self, instance_id: str | None = None) -> list[Timer]:
        ...

    # --- Notifications ---

    @abstractmethod
    async def save_notifications(self, notifications: Sequence[Notification]) -> None:
        ...

    @abstractmethod
    async def get_notification(self, notification_id: str) -> Notification | None:
        ...

    @abstractmethod
    async def list_notifications(self, user_id: str, unread_only: bool = False, limit: int = 100) -> list[Notification]:
        """A user's notifications, newest first."""
        ...

    @abstractmethod
    async def count_unread_notifications(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def mark_all_notifications_read(self, user_id: str, read_at: datetime) -> int:
        """Mark every unread notification of a user read. Returns how many changed."""
        ...

    @abstractmethod
    async def delete_notification(self, notification_id: str) -> bool:
        ...

    # --- Subscriptions ---

    @abstractmethod
    async def add_subscriber(self, instance_id: str, user_id: str) -> None:
        ...

    @abstractmethod
    async def remove_subscriber(self, instance_id: str, user_id: str) -> None:
        ...

    @abstractmethod
    async def list_subscribers(self, instance_id: str) -> list[str]:
        ...
