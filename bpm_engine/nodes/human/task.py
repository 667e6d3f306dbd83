"""Human task nodes - suspend the branch until a person completes a task."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription
from ..configs import FormConfig, TaskConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node, TaskType


class HumanTaskNode(BaseNode):
    """Base for nodes that create a task and wait for its completion."""

    config_model = TaskConfig

    @property
    def task_type(self) -> TaskType:
        from ...engine.types import TaskType

        return TaskType.GENERIC

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.types import HistoryAction, HistoryRecord, Suspend

        task = await ctx.services.task_manager.create_task(
            ctx.instance,
            node,
            ctx.cursor.id,
            self.task_type,
        )

        return Suspend(
            resume_token=ctx.cursor.id,
            record=HistoryRecord(
                action=HistoryAction.TASK_CREATED.value,
                data={
                    "task_id": task.id,
                    "task_type": task.type.value,
                    "assignee_type": task.assignee_type,
                    "assignee_id": task.assignee_id,
                },
            ),
        )


class TaskNode(HumanTaskNode):
    """Generic task assigned to a user or group."""

    node_description = NodeTypeDescription(
        name="task",
        display_name="Task",
        description="Assign a task to a user or group",
        icon="fa:tasks",
        group=["human"],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    @property
    def type(self) -> str:
        return "task"

    @property
    def description(self) -> str:
        return "Assign a task to a user or group"


class ApprovalNode(HumanTaskNode):
    """Approval task; approved routes to "true", rejected to "false"."""

    node_description = NodeTypeDescription(
        name="approval",
        display_name="Approval",
        description="Ask a user or group to approve or reject",
        icon="fa:check-circle",
        group=["human"],
        outputs=[
            NodeOutputDefinition(name="main", display_name="Output"),
            NodeOutputDefinition(name="true", display_name="Approved"),
            NodeOutputDefinition(name="false", display_name="Rejected"),
        ],
    )

    @property
    def type(self) -> str:
        return "approval"

    @property
    def description(self) -> str:
        return "Ask a user or group to approve or reject"

    @property
    def task_type(self) -> TaskType:
        from ...engine.types import TaskType

        return TaskType.APPROVAL


class FormNode(HumanTaskNode):
    """Form to be filled in by a user or group."""

    node_description = NodeTypeDescription(
        name="form",
        display_name="Form",
        description="Ask a user or group to fill in a form",
        icon="fa:wpforms",
        group=["human"],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )
    config_model = FormConfig

    @property
    def type(self) -> str:
        return "form"

    @property
    def description(self) -> str:
        return "Ask a user or group to fill in a form"

    @property
    def task_type(self) -> TaskType:
        from ...engine.types import TaskType

        return TaskType.FORM
