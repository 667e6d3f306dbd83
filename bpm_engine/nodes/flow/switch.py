"""Switch node - route on the value of an expression."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import SwitchConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node


def _as_handle(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class SwitchNode(BaseNode):
    """Switch node - take the edge whose handle equals the evaluated value."""

    node_description = NodeTypeDescription(
        name="switch",
        display_name="Switch",
        description="Route to the output matching a value",
        icon="fa:random",
        group=["flow"],
        outputs="dynamic",
    )
    config_model = SwitchConfig

    @property
    def type(self) -> str:
        return "switch"

    @property
    def description(self) -> str:
        return "Route to the output matching a value"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: SwitchConfig = node.config  # type: ignore[assignment]

        value = ctx.services.expressions.evaluate(config.variable, ctx.data)
        key = _as_handle(value)
        handles = {edge.handle for edge in ctx.definition.outgoing(node.id)}

        if key and key in handles:
            return self.advance(key)
        if config.default_label and config.default_label in handles:
            return self.advance(config.default_label)
        return self.fail(
            f'Switch "{node.display_name}" has no edge for value "{key}" and no default',
            "NoMatchingBranch",
        )
