"""Workflow node implementations."""

from .base import BaseNode
from .data import CalculateNode, ScriptNode, VariableNode
from .flow import ConditionNode, EndNode, LoopNode, ParallelNode, SwitchNode, TimerNode
from .human import ApprovalNode, FormNode, TaskNode
from .integrations import ApiNode, CrudNode, DatabaseNode, WebhookNode
from .output import EmailNode, LogNode, NotificationNode, SmsNode
from .triggers import StartNode

__all__ = [
    "BUILTIN_NODES",
    "BaseNode",
    "StartNode",
    "EndNode",
    "ConditionNode",
    "SwitchNode",
    "TimerNode",
    "ParallelNode",
    "LoopNode",
    "TaskNode",
    "ApprovalNode",
    "FormNode",
    "VariableNode",
    "CalculateNode",
    "ScriptNode",
    "EmailNode",
    "SmsNode",
    "NotificationNode",
    "LogNode",
    "ApiNode",
    "WebhookNode",
    "DatabaseNode",
    "CrudNode",
]

# Registration order is the order of the node catalog
BUILTIN_NODES: tuple[type[BaseNode], ...] = (
    StartNode,
    EndNode,
    ConditionNode,
    SwitchNode,
    TimerNode,
    ParallelNode,
    LoopNode,
    TaskNode,
    ApprovalNode,
    FormNode,
    VariableNode,
    CalculateNode,
    ScriptNode,
    EmailNode,
    SmsNode,
    NotificationNode,
    LogNode,
    ApiNode,
    WebhookNode,
    DatabaseNode,
    CrudNode,
)
