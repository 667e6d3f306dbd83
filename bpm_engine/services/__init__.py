"""Service layer for business logic."""

from .definition_service import DefinitionService
from .instance_service import InstanceService
from .node_service import NodeService
from .notification_service import NotificationService
from .task_service import TaskService

__all__ = [
    "DefinitionService",
    "InstanceService",
    "NodeService",
    "NotificationService",
    "TaskService",
]
