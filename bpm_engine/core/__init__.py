"""Core module for the BPM engine - config, exceptions, and dependencies."""

from .config import settings, Settings, get_settings
from .exceptions import (
    WorkflowEngineError,
    ValidationError,
    EvalError,
    DefinitionNotFoundError,
    NodeNotFoundError,
    ExternalCallError,
    TaskError,
    TaskNotFoundError,
    TaskAlreadyResolvedError,
    TaskForbiddenError,
    TaskNotPendingError,
    InstanceError,
    InstanceNotFoundError,
    InstanceAlreadyTerminalError,
    TimerAlreadyConsumedError,
    NotificationNotFoundError,
)
from .logging_config import configure_logging
from .dependencies import (
    get_engine,
    get_node_registry,
    get_current_user,
    require_user,
    get_definition_service,
    get_instance_service,
    get_task_service,
    get_notification_service,
    get_node_service,
)

__all__ = [
    # Config
    "settings",
    "Settings",
    "get_settings",
    "configure_logging",
    # Exceptions
    "WorkflowEngineError",
    "ValidationError",
    "EvalError",
    "DefinitionNotFoundError",
    "NodeNotFoundError",
    "ExternalCallError",
    "TaskError",
    "TaskNotFoundError",
    "TaskAlreadyResolvedError",
    "TaskForbiddenError",
    "TaskNotPendingError",
    "InstanceError",
    "InstanceNotFoundError",
    "InstanceAlreadyTerminalError",
    "TimerAlreadyConsumedError",
    "NotificationNotFoundError",
    # Dependencies
    "get_engine",
    "get_node_registry",
    "get_current_user",
    "require_user",
    "get_definition_service",
    "get_instance_service",
    "get_task_service",
    "get_notification_service",
    "get_node_service",
]
