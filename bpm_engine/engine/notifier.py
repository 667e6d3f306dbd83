"""Notification sink used by email, sms and notification nodes."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, TYPE_CHECKING

import httpx
import markdown

from ..core.exceptions import ExternalCallError
from .types import EventType, WorkflowEvent

if TYPE_CHECKING:
    from ..core.config import Settings
    from .assignees import AssigneeResolver
    from .clock import Clock
    from .event_bus import EventBus
    from .inbox import NotificationInbox

logger = logging.getLogger(__name__)


# Default email styling for HTML/Markdown emails
EMAIL_CSS = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
h1 { color: #2c3e50; border-bottom: 2px solid #3498db; padding-bottom: 10px; }
h2 { color: #34495e; margin-top: 24px; }
a { color: #3498db; }
table { border-collapse: collapse; width: 100%; margin: 16px 0; }
th, td { border: 1px solid #ddd; padding: 12px; text-align: left; }
blockquote { border-left: 4px solid #3498db; margin: 0; padding-left: 16px; color: #666; }
"""


def render_email_html(body: str, body_format: str) -> str | None:
    """Convert an email body to styled HTML; plain bodies have no HTML part."""
    if body_format == "plain":
        return None
    if body_format == "markdown":
        body = markdown.markdown(body, extensions=["tables", "fenced_code", "nl2br", "sane_lists"])
    elif "<html" in body.lower() or "<body" in body.lower():
        return body

    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>{EMAIL_CSS}</style>
</head>
<body>
{body}
</body>
</html>"""


class Notifier(ABC):
    """Delivers messages on a channel ("email", "sms", "notification")."""

    @abstractmethod
    async def send(self, channel: str, recipients: list[str], payload: dict[str, Any]) -> None:
        """
        Deliver a message.

        Raises:
            ExternalCallError: If delivery fails
        """
        ...


class DefaultNotifier(Notifier):
    """
    Notifier shipped with the engine.

    In-app notifications are stored in the inbox, when there is one, and
    pushed to the event bus. Email and SMS are POSTed to the configured
    delivery APIs, or only logged when none is configured.
    """

    def __init__(
        self,
        event_bus: EventBus,
        settings: Settings,
        clock: Clock,
        http_client: httpx.AsyncClient | None = None,
        resolver: AssigneeResolver | None = None,
        inbox: NotificationInbox | None = None,
    ) -> None:
        self._event_bus = event_bus
        self._settings = settings
        self._clock = clock
        self._http_client = http_client
        self._resolver = resolver
        self._inbox = inbox

    async def send(self, channel: str, recipients: list[str], payload: dict[str, Any]) -> None:
        if channel == "notification":
            await self._send_in_app(recipients, payload)
        elif channel == "email":
            await self._send_email(recipients, payload)
        elif channel == "sms":
            await self._send_sms(recipients, payload)
        else:
            raise ValueError(f'Unknown notification channel "{channel}"')

    async def _send_in_app(self, recipients: list[str], payload: dict[str, Any]) -> None:
        user_ids: list[str] = []
        for recipient in recipients:
            if self._resolver is not None:
                user_ids.extend((await self._resolver.resolve(recipient)).principal_ids)
            else:
                user_ids.append(recipient)

        if self._inbox is not None:
            await self._inbox.deliver(
                user_ids,
                kind=payload.get("level") or "info",
                title=payload.get("title") or "Notification",
                message=payload.get("message", ""),
                instance_id=payload.get("instance_id"),
                data={"node_id": payload["node_id"]} if payload.get("node_id") else None,
            )

        event = WorkflowEvent(
            type=EventType.NOTIFICATION,
            instance_id=payload.get("instance_id"),
            timestamp=self._clock.now(),
            node_id=payload.get("node_id"),
            data={"title": payload.get("title"), "message": payload.get("message")},
        )
        self._event_bus.publish_many(user_ids, event)

    async def _send_email(self, recipients: list[str], payload: dict[str, Any]) -> None:
        body = payload.get("body", "")
        html = render_email_html(body, payload.get("body_format", "markdown"))

        if not self._settings.email_api_url:
            logger.info("Email to %s: %s (no email API configured)", ", ".join(recipients), payload.get("subject"))
            return

        await self._post(
            self._settings.email_api_url,
            {
                "to": recipients,
                "from": self._settings.email_from,
                "subject": payload.get("subject", ""),
                "body": body,
                "html_body": html,
            },
        )

    async def _send_sms(self, recipients: list[str], payload: dict[str, Any]) -> None:
        if not self._settings.sms_api_url:
            logger.info("SMS to %s: %s (no SMS API configured)", ", ".join(recipients), payload.get("message"))
            return

        await self._post(self._settings.sms_api_url, {"to": recipients, "message": payload.get("message", "")})

    async def _post(self, url: str, body: dict[str, Any]) -> None:
        headers = {}
        if self._settings.notifier_api_key:
            headers["Authorization"] = f"Bearer {self._settings.notifier_api_key}"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._settings.http_timeout) as client:
                    response = await client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ExternalCallError(f"Notification delivery to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise ExternalCallError(
                f"Notification delivery to {url} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
