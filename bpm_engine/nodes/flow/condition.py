"""Condition node - route on a boolean expression (true/false handles)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription
from ..configs import ConditionConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node


class ConditionNode(BaseNode):
    """Condition node - route along the true or false handle."""

    node_description = NodeTypeDescription(
        name="condition",
        display_name="Condition",
        description="Route based on a condition (true/false outputs)",
        icon="fa:code-branch",
        group=["flow"],
        outputs=[
            NodeOutputDefinition(name="true", display_name="True"),
            NodeOutputDefinition(name="false", display_name="False"),
        ],
    )
    config_model = ConditionConfig

    @property
    def type(self) -> str:
        return "condition"

    @property
    def description(self) -> str:
        return "Route based on a condition (true/false outputs)"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: ConditionConfig = node.config  # type: ignore[assignment]

        # Both branches must be wired exactly once
        edges = ctx.definition.outgoing(node.id)
        for label in (config.true_label, config.false_label):
            count = sum(1 for edge in edges if edge.handle == label)
            if count != 1:
                return self.fail(
                    f'Condition "{node.display_name}" needs exactly one "{label}" edge, found {count}',
                    "ConfigurationError",
                )

        result = ctx.services.expressions.evaluate_bool(config.expression, ctx.data)
        return self.advance(config.true_label if result else config.false_label)
