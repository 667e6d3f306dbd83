"""Parallel node - fork one branch per outgoing edge."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import ParallelConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node


class ParallelNode(BaseNode):
    """
    Parallel node - run every outgoing branch.

    Branches meet again at the first node reachable from all of them,
    which waits until every live branch has arrived (AND-join).
    """

    node_description = NodeTypeDescription(
        name="parallel",
        display_name="Parallel",
        description="Run all outgoing branches and join them",
        icon="fa:columns",
        group=["flow"],
        outputs="dynamic",
    )
    config_model = ParallelConfig

    @property
    def type(self) -> str:
        return "parallel"

    @property
    def description(self) -> str:
        return "Run all outgoing branches and join them"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.types import Fork, HistoryAction, HistoryRecord

        branch_count = len(ctx.definition.outgoing(node.id))
        if branch_count == 0:
            return self.fail(f'Parallel "{node.display_name}" has no outgoing edges', "ConfigurationError")

        return Fork(
            branch_count=branch_count,
            record=HistoryRecord(
                action=HistoryAction.PARALLEL_FORKED.value,
                data={"branches": branch_count},
            ),
        )
