"""Email, SMS and in-app notification nodes."""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ..base import BaseNode, NodeTypeDescription
from ..configs import EmailConfig, NotificationBaseConfig, NotificationConfig, SmsConfig

if TYPE_CHECKING:
    from ...engine.types import ExecutionOutcome, InstanceContext, Node

logger = logging.getLogger(__name__)


class NotifyNode(BaseNode):
    """
    Base for nodes that dispatch through the Notifier.

    Delivery is best-effort: a failure is logged and the branch continues
    unless the node sets ``fail_on_error``.
    """

    channel: str = "notification"

    def build_payload(self, ctx: InstanceContext, config: Any) -> dict[str, Any]:
        raise NotImplementedError

    def resolve_recipients(self, ctx: InstanceContext, config: NotificationBaseConfig) -> list[str]:
        raw = config.recipients if isinstance(config.recipients, list) else [config.recipients]
        recipients: list[str] = []
        for entry in raw:
            resolved = self.resolve(ctx, entry)
            values = resolved if isinstance(resolved, list) else str(resolved or "").split(",")
            recipients.extend(str(v).strip() for v in values if str(v).strip())
        return recipients

    async def execute(self, ctx: InstanceContext, node: Node) -> ExecutionOutcome:
        from ...engine.types import HistoryAction, HistoryRecord

        config: NotificationBaseConfig = node.config  # type: ignore[assignment]
        recipients = self.resolve_recipients(ctx, config)
        payload = self.build_payload(ctx, config)
        payload.update({"instance_id": ctx.instance.id, "node_id": node.id})

        try:
            await ctx.services.notifier.send(self.channel, recipients, payload)
        except Exception as e:
            if config.fail_on_error:
                raise
            logger.warning(
                "%s delivery failed for node %s of instance %s: %s",
                self.channel,
                node.id,
                ctx.instance.id,
                e,
            )
            return self.advance()

        return self.advance(
            record=HistoryRecord(
                action=HistoryAction.NOTIFICATION_SENT.value,
                data={"channel": self.channel, "recipients": recipients},
            )
        )


class EmailNode(NotifyNode):
    """Send an email; the body may be Markdown."""

    node_description = NodeTypeDescription(
        name="email",
        display_name="Send Email",
        description="Send an email notification",
        icon="fa:envelope",
        group=["output"],
    )
    config_model = EmailConfig
    channel = "email"

    @property
    def type(self) -> str:
        return "email"

    @property
    def description(self) -> str:
        return "Send an email notification"

    def build_payload(self, ctx: InstanceContext, config: EmailConfig) -> dict[str, Any]:
        render = ctx.services.expressions.render
        return {
            "subject": render(config.subject, ctx.data),
            "body": render(config.body, ctx.data),
            "body_format": config.body_format,
        }


class SmsNode(NotifyNode):
    """Send a text message."""

    node_description = NodeTypeDescription(
        name="sms",
        display_name="Send SMS",
        description="Send an SMS notification",
        icon="fa:sms",
        group=["output"],
    )
    config_model = SmsConfig
    channel = "sms"

    @property
    def type(self) -> str:
        return "sms"

    @property
    def description(self) -> str:
        return "Send an SMS notification"

    def build_payload(self, ctx: InstanceContext, config: SmsConfig) -> dict[str, Any]:
        return {"message": ctx.services.expressions.render(config.message, ctx.data)}


class NotificationNode(NotifyNode):
    """Push an in-app notification to users."""

    node_description = NodeTypeDescription(
        name="notification",
        display_name="Notification",
        description="Send an in-app notification",
        icon="fa:bell",
        group=["output"],
    )
    config_model = NotificationConfig
    channel = "notification"

    @property
    def type(self) -> str:
        return "notification"

    @property
    def description(self) -> str:
        return "Send an in-app notification"

    def build_payload(self, ctx: InstanceContext, config: NotificationConfig) -> dict[str, Any]:
        render = ctx.services.expressions.render
        return {
            "title": render(config.title, ctx.data) if config.title else None,
            "message": render(config.message, ctx.data),
            "level": config.level,
        }
