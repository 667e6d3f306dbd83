"""Custom exceptions for the workflow engine."""

from typing import Any


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(WorkflowEngineError):
    """Raised when a workflow definition is invalid."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )
        self.field = field


class EvalError(WorkflowEngineError):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(self, message: str, expression: str) -> None:
        super().__init__(
            message=message,
            details={"expression": expression},
        )
        self.expression = expression


class DefinitionNotFoundError(WorkflowEngineError):
    """Raised when a workflow definition is not found."""

    def __init__(self, definition_id: str, version: int | None = None) -> None:
        label = f"{definition_id} (version {version})" if version is not None else definition_id
        super().__init__(
            message=f"Workflow definition not found: {label}",
            details={"definition_id": definition_id, "version": version},
        )
        self.definition_id = definition_id
        self.version = version


class NodeNotFoundError(WorkflowEngineError):
    """Raised when a node type is not registered."""

    def __init__(self, node_type: str) -> None:
        super().__init__(
            message=f"Node type not found: {node_type}",
            details={"node_type": node_type},
        )
        self.node_type = node_type


class ExternalCallError(WorkflowEngineError):
    """Raised when an api/webhook/database node's external call fails."""

    def __init__(self, message: str, node_id: str | None = None, status_code: int | None = None) -> None:
        super().__init__(
            message=message,
            details={"node_id": node_id, "status_code": status_code},
        )
        self.node_id = node_id
        self.status_code = status_code


# --- Task errors ---


class TaskError(WorkflowEngineError):
    """Base class for caller-facing task errors. The instance is left untouched."""

    def __init__(self, message: str, task_id: str) -> None:
        super().__init__(message=message, details={"task_id": task_id})
        self.task_id = task_id


class TaskNotFoundError(TaskError):
    """Raised when a task is not found."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}", task_id)


class TaskAlreadyResolvedError(TaskError):
    """Raised when a task is no longer pending or in progress."""

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task {task_id} is already {status}", task_id)
        self.status = status


class TaskForbiddenError(TaskError):
    """Raised when the actor is not allowed to act on the task."""

    def __init__(self, task_id: str, actor_user_id: str) -> None:
        super().__init__(f"User {actor_user_id} is not an assignee of task {task_id}", task_id)
        self.actor_user_id = actor_user_id


class TaskNotPendingError(TaskError):
    """Raised when an operation needs a pending task, e.g. reassignment."""

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task {task_id} is {status}; only pending tasks can be reassigned", task_id)
        self.status = status


# --- Instance errors ---


class InstanceError(WorkflowEngineError):
    """Base class for caller-facing instance errors."""

    def __init__(self, message: str, instance_id: str) -> None:
        super().__init__(message=message, details={"instance_id": instance_id})
        self.instance_id = instance_id


class InstanceNotFoundError(InstanceError):
    """Raised when a workflow instance is not found."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Workflow instance not found: {instance_id}", instance_id)


class InstanceAlreadyTerminalError(InstanceError):
    """Raised when an operation targets a completed or failed instance."""

    def __init__(self, instance_id: str, status: str) -> None:
        super().__init__(f"Workflow instance {instance_id} is already {status}", instance_id)
        self.status = status


class TimerAlreadyConsumedError(WorkflowEngineError):
    """Raised when a write would consume a timer another caller already consumed."""

    def __init__(self, timer_id: str) -> None:
        super().__init__(message=f"Timer {timer_id} was already consumed", details={"timer_id": timer_id})
        self.timer_id = timer_id


# --- Notification errors ---


class NotificationNotFoundError(WorkflowEngineError):
    """Raised when a notification does not exist or belongs to another user."""

    def __init__(self, notification_id: str) -> None:
        super().__init__(
            message=f"Notification not found: {notification_id}",
            details={"notification_id": notification_id},
        )
        self.notification_id = notification_id
