"""Core type definitions for the workflow engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, Any, Literal, Union

if TYPE_CHECKING:
    import httpx
    from pydantic import BaseModel
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .clock import Clock
    from .expression_engine import ExpressionEngine
    from .notifier import Notifier
    from .task_manager import TaskManager
    from .timer_scheduler import TimerScheduler


class InstanceStatus(str, Enum):
    """Lifecycle status of a workflow instance."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not InstanceStatus.RUNNING


class TaskStatus(str, Enum):
    """Lifecycle status of a human task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_open(self) -> bool:
        return self in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


class TaskType(str, Enum):
    """Kind of human interaction a task asks for."""

    APPROVAL = "approval"
    FORM = "form"
    GENERIC = "generic"


class CursorState(str, Enum):
    """Whether a cursor can be driven or waits for an external event."""

    READY = "ready"
    WAITING = "waiting"


class EventType(str, Enum):
    """Types of events pushed to per-user subscribers."""

    INSTANCE_STARTED = "instance_started"
    INSTANCE_COMPLETED = "instance_completed"
    INSTANCE_FAILED = "instance_failed"
    INSTANCE_CANCELLED = "instance_cancelled"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    NODE_COMPLETED = "node_completed"
    NOTIFICATION = "notification"


class HistoryAction(str, Enum):
    """Actions recorded in an instance's audit trail."""

    INSTANCE_STARTED = "instance_started"
    INSTANCE_COMPLETED = "instance_completed"
    INSTANCE_FAILED = "instance_failed"
    INSTANCE_CANCELLED = "instance_cancelled"
    TASK_CREATED = "task_created"
    TASK_CLAIMED = "task_claimed"
    TASK_REASSIGNED = "task_reassigned"
    TASK_COMPLETED = "task_completed"
    TIMER_SCHEDULED = "timer_scheduled"
    TIMER_FIRED = "timer_fired"
    PARALLEL_FORKED = "parallel_forked"
    PARALLEL_JOINED = "parallel_joined"
    VARIABLE_SET = "variable_set"
    NOTIFICATION_SENT = "notification_sent"
    NODE_EXECUTED = "node_executed"
    NODE_FAILED = "node_failed"


# --- Workflow definition (graph model) ---


@dataclass(frozen=True)
class Node:
    """A node of a workflow graph with its decoded, type-specific config."""

    id: str
    type: str
    config: BaseModel
    label: str | None = None
    retry_on_fail: int = 0
    retry_delay: int = 1000
    retry_backoff: float = 1.0
    continue_on_fail: bool = False

    @property
    def display_name(self) -> str:
        return self.label or self.id


@dataclass(frozen=True)
class Edge:
    """Directed edge between two nodes."""

    id: str
    source_id: str
    target_id: str
    source_handle: str | None = None
    label: str | None = None
    reentrant: bool = False

    @property
    def handle(self) -> str | None:
        """Routing key used to match executor outcomes."""
        return self.source_handle or self.label


@dataclass(frozen=True)
class WorkflowDefinition:
    """Immutable workflow definition (one version)."""

    id: str
    version: int
    name: str
    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]
    description: str | None = None
    settings: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @cached_property
    def node_map(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}

    @cached_property
    def outgoing_map(self) -> dict[str, list[Edge]]:
        result: dict[str, list[Edge]] = {n.id: [] for n in self.nodes}
        for edge in self.edges:
            result.setdefault(edge.source_id, []).append(edge)
        return result

    @cached_property
    def incoming_map(self) -> dict[str, list[Edge]]:
        result: dict[str, list[Edge]] = {n.id: [] for n in self.nodes}
        for edge in self.edges:
            result.setdefault(edge.target_id, []).append(edge)
        return result

    def get_node(self, node_id: str) -> Node | None:
        return self.node_map.get(node_id)

    def outgoing(self, node_id: str) -> list[Edge]:
        return self.outgoing_map.get(node_id, [])

    def incoming(self, node_id: str) -> list[Edge]:
        return self.incoming_map.get(node_id, [])

    def start_node(self) -> Node | None:
        return next((n for n in self.nodes if n.type == "start"), None)


# --- Runtime state ---


@dataclass
class Cursor:
    """A single point of control-flow progress within an instance."""

    id: str
    node_id: str
    fork_path: list[str] = field(default_factory=list)
    state: CursorState = CursorState.READY


@dataclass
class ForkState:
    """Join barrier bookkeeping for one execution of a parallel node."""

    id: str
    node_id: str
    join_node_id: str | None
    expected: int
    parent_path: list[str] = field(default_factory=list)
    arrived: list[str] = field(default_factory=list)
    policy: Literal["independent", "all_or_nothing"] = "independent"


@dataclass
class WorkflowInstance:
    """One execution of a workflow definition."""

    id: str
    definition_id: str
    definition_version: int
    status: InstanceStatus
    started_by: str | None
    started_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
    current_node_ids: list[str] = field(default_factory=list)
    completed_at: datetime | None = None
    error: str | None = None
    cursors: dict[str, Cursor] = field(default_factory=dict)
    forks: dict[str, ForkState] = field(default_factory=dict)
    loop_state: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class HistoryEntry:
    """Append-only audit trail entry."""

    id: str
    instance_id: str
    node_id: str | None
    action: str
    timestamp: datetime
    actor_user_id: str | None = None
    data: dict[str, Any] | None = None


@dataclass
class Task:
    """Human interaction that suspends a cursor until completed."""

    id: str
    instance_id: str
    node_id: str
    cursor_id: str
    type: TaskType
    assignee_type: Literal["user", "group"]
    assignee_id: str
    principal_ids: list[str]
    created_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    priority: str = "medium"
    title: str | None = None
    instructions: str | None = None
    due_at: datetime | None = None
    form_schema_ref: str | None = None
    decision: str | None = None
    result_data: dict[str, Any] = field(default_factory=dict)
    claimed_by: str | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None


@dataclass
class Timer:
    """Durable one-shot wake-up for a suspended cursor."""

    id: str
    instance_id: str
    node_id: str
    cursor_id: str
    fire_at: datetime
    consumed: bool = False


@dataclass
class TaskStatistics:
    """Task counts by status; overdue counts open tasks past their due time."""

    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0
    overdue: int = 0


@dataclass
class Notification:
    """Persisted in-app notification addressed to one user."""

    id: str
    user_id: str
    kind: str
    title: str
    message: str
    created_at: datetime
    instance_id: str | None = None
    task_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    read: bool = False
    read_at: datetime | None = None


@dataclass
class AssigneeResolution:
    """Result of resolving a task's assignee."""

    type: Literal["user", "group"]
    assignee_id: str
    principal_ids: list[str]


@dataclass
class InstanceSnapshot:
    """Read model returned by get_instance."""

    id: str
    definition_id: str
    definition_version: int
    status: InstanceStatus
    current_node_ids: list[str]
    data: dict[str, Any]
    history: list[HistoryEntry]
    started_by: str | None
    started_at: datetime
    completed_at: datetime | None
    error: str | None
    open_tasks: list[Task] = field(default_factory=list)


@dataclass
class WorkflowEvent:
    """Event delivered through the per-user event bus."""

    type: EventType
    instance_id: str | None
    timestamp: datetime
    task_id: str | None = None
    node_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": self.type.value,
            "instanceId": self.instance_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.task_id:
            result["taskId"] = self.task_id
        if self.node_id:
            result["nodeId"] = self.node_id
        if self.data:
            result["data"] = self.data
        return result


# --- Execution outcomes ---


@dataclass(frozen=True)
class HistoryRecord:
    """History entry an executor asks the runner to append."""

    action: str
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class Advance:
    """Continue along outgoing edges whose handle is in labels (empty = all)."""

    labels: frozenset[str] = frozenset()
    record: HistoryRecord | None = None


@dataclass(frozen=True)
class Suspend:
    """Pause the cursor until the resume token is called back."""

    resume_token: str
    record: HistoryRecord | None = None


@dataclass(frozen=True)
class Fork:
    """Spawn one cursor per outgoing edge."""

    branch_count: int
    record: HistoryRecord | None = None


@dataclass(frozen=True)
class Fail:
    """Node execution error."""

    reason: str
    error_type: str = "NodeError"
    record: HistoryRecord | None = None


@dataclass(frozen=True)
class Finish:
    """The cursor's branch terminates (end node)."""

    record: HistoryRecord | None = None


ExecutionOutcome = Union[Advance, Suspend, Fork, Fail, Finish]


@dataclass
class EngineServices:
    """Collaborators injected into node executors."""

    expressions: ExpressionEngine
    clock: Clock
    task_manager: TaskManager
    timer_scheduler: TimerScheduler
    notifier: Notifier
    http_client: httpx.AsyncClient | None = None
    database: AsyncEngine | None = None
    script_timeout: float = 5.0


@dataclass
class InstanceContext:
    """Everything a node executor sees while executing one cursor step."""

    instance: WorkflowInstance
    definition: WorkflowDefinition
    cursor: Cursor
    services: EngineServices

    @property
    def data(self) -> dict[str, Any]:
        return self.instance.data
