"""Loop node - iterate over a collection or while a condition holds."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription
from ..configs import LoopConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node

LOOP_HANDLE = "loop"
DONE_HANDLE = "done"


class LoopNode(BaseNode):
    """
    Loop node - route to "loop" once per pass, then to "done".

    The body must lead back to this node through a reentrant edge. Pass
    state lives in the instance's loop_state so it survives suspension.
    """

    node_description = NodeTypeDescription(
        name="loop",
        display_name="Loop",
        description="Repeat a branch for each item or while a condition holds",
        icon="fa:sync",
        group=["flow"],
        outputs=[
            NodeOutputDefinition(name=LOOP_HANDLE, display_name="Loop"),
            NodeOutputDefinition(name=DONE_HANDLE, display_name="Done"),
        ],
    )
    config_model = LoopConfig

    @property
    def type(self) -> str:
        return "loop"

    @property
    def description(self) -> str:
        return "Repeat a branch for each item or while a condition holds"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: LoopConfig = node.config  # type: ignore[assignment]
        loop_state = ctx.instance.loop_state
        expressions = ctx.services.expressions

        state = loop_state.get(node.id)

        if config.collection:
            if state is None:
                items = expressions.evaluate(config.collection, ctx.data)
                if not isinstance(items, (list, tuple)):
                    items = [] if not items else [items]
                state = {"index": 0, "items": list(items)}
            index = state["index"]
            if index >= len(state["items"]):
                loop_state.pop(node.id, None)
                return self.advance(DONE_HANDLE)
            ctx.data[config.item_variable] = state["items"][index]
            ctx.data[config.index_variable] = index
            state["index"] = index + 1
            loop_state[node.id] = state
            return self.advance(LOOP_HANDLE)

        index = state["index"] if state else 0
        if not expressions.evaluate_bool(config.condition or "", ctx.data):
            loop_state.pop(node.id, None)
            return self.advance(DONE_HANDLE)
        ctx.data[config.index_variable] = index
        loop_state[node.id] = {"index": index + 1}
        return self.advance(LOOP_HANDLE)
