"""Pydantic schemas for API request/response validation."""

from .common import (
    SubscriptionResponse,
    HealthResponse,
    RootResponse,
)
from .definition import (
    DefinitionCreateRequest,
    DefinitionListItem,
    DefinitionDetailResponse,
)
from .instance import (
    InstanceStartRequest,
    InstanceStartResponse,
    HistoryEntrySchema,
    InstanceListItem,
    InstanceDetailResponse,
)
from .task import (
    TaskResponse,
    TaskCompleteRequest,
    TaskReassignRequest,
    TaskStatisticsResponse,
)
from .notification import (
    NotificationResponse,
    UnreadCountResponse,
    MarkAllReadResponse,
)

__all__ = [
    # Common schemas
    "SubscriptionResponse",
    "HealthResponse",
    "RootResponse",
    # Definition schemas
    "DefinitionCreateRequest",
    "DefinitionListItem",
    "DefinitionDetailResponse",
    # Instance schemas
    "InstanceStartRequest",
    "InstanceStartResponse",
    "HistoryEntrySchema",
    "InstanceListItem",
    "InstanceDetailResponse",
    # Task schemas
    "TaskResponse",
    "TaskCompleteRequest",
    "TaskReassignRequest",
    "TaskStatisticsResponse",
    # Notification schemas
    "NotificationResponse",
    "UnreadCountResponse",
    "MarkAllReadResponse",
]
