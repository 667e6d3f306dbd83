"""Start node - entry point of every workflow."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node


class StartNode(BaseNode):
    """Start node - entry point for workflow execution."""

    node_description = NodeTypeDescription(
        name="start",
        display_name="Start",
        description="Entry point of the workflow",
        icon="fa:play",
        group=["trigger"],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )

    @property
    def type(self) -> str:
        return "start"

    @property
    def description(self) -> str:
        return "Entry point of the workflow"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        return self.advance()
