"""Variable and Calculate nodes - write values into instance data."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import CalculateConfig, VariableConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node


class VariableNode(BaseNode):
    """Set one or more variables from (templated) values."""

    node_description = NodeTypeDescription(
        name="variable",
        display_name="Set Variable",
        description="Set variables in the instance data",
        icon="fa:pen",
        group=["data"],
    )
    config_model = VariableConfig

    @property
    def type(self) -> str:
        return "variable"

    @property
    def description(self) -> str:
        return "Set variables in the instance data"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.types import HistoryAction, HistoryRecord

        config: VariableConfig = node.config  # type: ignore[assignment]

        assignments: dict[str, Any] = {}
        if config.name:
            assignments[config.name] = self.resolve(ctx, config.value)
        for name, value in config.values.items():
            assignments[name] = self.resolve(ctx, value)

        ctx.data.update(assignments)
        return self.advance(
            record=HistoryRecord(
                action=HistoryAction.VARIABLE_SET.value,
                data={"variables": sorted(assignments)},
            )
        )


class CalculateNode(BaseNode):
    """Store the result of an expression in a variable."""

    node_description = NodeTypeDescription(
        name="calculate",
        display_name="Calculate",
        description="Evaluate an expression and store the result",
        icon="fa:calculator",
        group=["data"],
    )
    config_model = CalculateConfig

    @property
    def type(self) -> str:
        return "calculate"

    @property
    def description(self) -> str:
        return "Evaluate an expression and store the result"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.expression_engine import UNDEFINED
        from ...engine.types import HistoryAction, HistoryRecord

        config: CalculateConfig = node.config  # type: ignore[assignment]

        result = ctx.services.expressions.evaluate(config.expression, ctx.data)
        ctx.data[config.name] = None if result is UNDEFINED else result
        return self.advance(
            record=HistoryRecord(
                action=HistoryAction.VARIABLE_SET.value,
                data={"variables": [config.name]},
            )
        )
