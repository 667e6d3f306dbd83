"""Core workflow engine components."""

from .types import (
    Advance,
    Cursor,
    Edge,
    ExecutionOutcome,
    Fail,
    Finish,
    Fork,
    HistoryEntry,
    InstanceContext,
    InstanceSnapshot,
    InstanceStatus,
    Node,
    Notification,
    Suspend,
    Task,
    TaskStatistics,
    TaskStatus,
    Timer,
    WorkflowDefinition,
    WorkflowEvent,
    WorkflowInstance,
)
from .expression_engine import UNDEFINED, ExpressionEngine, expression_engine
from .node_registry import NodeRegistryClass, node_registry, register_all_nodes
from .workflow_runner import WorkflowRunner
from .engine import WorkflowEngine

__all__ = [
    "Advance",
    "Cursor",
    "Edge",
    "ExecutionOutcome",
    "Fail",
    "Finish",
    "Fork",
    "HistoryEntry",
    "InstanceContext",
    "InstanceSnapshot",
    "InstanceStatus",
    "Node",
    "Notification",
    "Suspend",
    "Task",
    "TaskStatistics",
    "TaskStatus",
    "Timer",
    "WorkflowDefinition",
    "WorkflowEvent",
    "WorkflowInstance",
    "UNDEFINED",
    "ExpressionEngine",
    "expression_engine",
    "NodeRegistryClass",
    "node_registry",
    "register_all_nodes",
    "WorkflowRunner",
    "WorkflowEngine",
]
