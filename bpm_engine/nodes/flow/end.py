"""End node - terminates the branch that reaches it."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import EndConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node

logger = logging.getLogger(__name__)


class EndNode(BaseNode):
    """End node - the instance completes once its last branch ends."""

    node_description = NodeTypeDescription(
        name="end",
        display_name="End",
        description="Terminate the current branch",
        icon="fa:stop",
        group=["flow"],
        outputs=[],
    )
    config_model = EndConfig

    @property
    def type(self) -> str:
        return "end"

    @property
    def description(self) -> str:
        return "Terminate the current branch"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.types import Finish

        config: EndConfig = node.config  # type: ignore[assignment]
        if config.message:
            logger.info(
                "Instance %s reached %s: %s",
                ctx.instance.id,
                node.display_name,
                ctx.services.expressions.render(config.message, ctx.data),
            )
        return Finish()
