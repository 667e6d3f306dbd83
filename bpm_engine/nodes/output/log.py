"""Log node - write a rendered message to the engine log."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import LogConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node

logger = logging.getLogger(__name__)

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogNode(BaseNode):
    """Log node - useful for tracing instance data while designing."""

    node_description = NodeTypeDescription(
        name="log",
        display_name="Log",
        description="Write a message to the engine log",
        icon="fa:file-alt",
        group=["output"],
    )
    config_model = LogConfig

    @property
    def type(self) -> str:
        return "log"

    @property
    def description(self) -> str:
        return "Write a message to the engine log"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        config: LogConfig = node.config  # type: ignore[assignment]
        message = ctx.services.expressions.render(config.message, ctx.data)
        logger.log(LEVELS[config.level], "[%s/%s] %s", ctx.instance.id, node.id, message)
        return self.advance()
