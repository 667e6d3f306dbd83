"""Human task nodes."""

from .task import ApprovalNode, FormNode, HumanTaskNode, TaskNode

__all__ = ["ApprovalNode", "FormNode", "HumanTaskNode", "TaskNode"]
