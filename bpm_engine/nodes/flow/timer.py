"""Timer node - suspend the branch for a duration."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from ..base import BaseNode, NodeOutputDefinition, NodeTypeDescription
from ..configs import TimerConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node


class TimerNode(BaseNode):
    """Timer node - resume the branch once the duration has elapsed."""

    node_description = NodeTypeDescription(
        name="timer",
        display_name="Timer",
        description="Pause the branch for a specified duration",
        icon="fa:hourglass-half",
        group=["flow"],
        outputs=[NodeOutputDefinition(name="main", display_name="Output")],
    )
    config_model = TimerConfig

    @property
    def type(self) -> str:
        return "timer"

    @property
    def description(self) -> str:
        return "Pause the branch for a specified duration"

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.types import HistoryAction, HistoryRecord, Suspend

        config: TimerConfig = node.config  # type: ignore[assignment]

        # fire_at is absolute and computed once
        fire_at = ctx.services.clock.now() + timedelta(seconds=config.seconds)
        timer_id = await ctx.services.timer_scheduler.schedule(
            ctx.instance.id, node.id, ctx.cursor.id, fire_at
        )

        return Suspend(
            resume_token=ctx.cursor.id,
            record=HistoryRecord(
                action=HistoryAction.TIMER_SCHEDULED.value,
                data={"timer_id": timer_id, "fire_at": fire_at.isoformat()},
            ),
        )
