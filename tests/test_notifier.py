"""Tests for the default notifier."""

from __future__ import annotations

import json
import logging

import httpx
import pytest

from bpm_engine.core.config import Settings
from bpm_engine.core.exceptions import ExternalCallError
from bpm_engine.engine.event_bus import EventBus
from bpm_engine.engine.notifier import DefaultNotifier, render_email_html
from bpm_engine.engine.types import EventType


def test_markdown_body_becomes_styled_html():
    html = render_email_html("# Hello\n\n**bold**", "markdown")

    assert "<h1>Hello</h1>" in html
    assert "<strong>bold</strong>" in html
    assert "<style>" in html
    assert render_email_html("plain text", "plain") is None


@pytest.mark.asyncio
async def test_email_is_posted_to_delivery_api(clock):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    settings = Settings(email_api_url="https://mail.example.com/send", notifier_api_key="secret", email_from="bpm@example.com")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = DefaultNotifier(EventBus(), settings, clock, http_client=client)
        await notifier.send("email", ["ann@example.com"], {"subject": "Hi", "body": "*yes*", "body_format": "markdown"})

    body = json.loads(requests[0].content)
    assert requests[0].headers["Authorization"] == "Bearer secret"
    assert body["to"] == ["ann@example.com"]
    assert body["from"] == "bpm@example.com"
    assert "<em>yes</em>" in body["html_body"]


@pytest.mark.asyncio
async def test_delivery_error_raises(clock):
    settings = Settings(sms_api_url="https://sms.example.com/send")
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500))) as client:
        notifier = DefaultNotifier(EventBus(), settings, clock, http_client=client)
        with pytest.raises(ExternalCallError):
            await notifier.send("sms", ["+100"], {"message": "hi"})


@pytest.mark.asyncio
async def test_unconfigured_email_is_only_logged(clock, caplog):
    notifier = DefaultNotifier(EventBus(), Settings(email_api_url=None), clock)

    with caplog.at_level(logging.INFO, logger="bpm_engine.engine.notifier"):
        await notifier.send("email", ["ann@example.com"], {"subject": "Hi", "body": "x"})

    assert "no email API configured" in caplog.text


@pytest.mark.asyncio
async def test_in_app_notification_expands_groups(clock, resolver):
    bus = EventBus()
    alice = bus.subscribe("alice")
    carol = bus.subscribe("carol")
    notifier = DefaultNotifier(bus, Settings(), clock, resolver=resolver)

    await notifier.send("notification", ["group:managers"], {"title": "Heads up", "message": "m", "instance_id": "i-1"})

    event = await alice.get()
    assert event.type == EventType.NOTIFICATION
    assert event.data == {"title": "Heads up", "message": "m"}
    assert carol.pending() == 0


@pytest.mark.asyncio
async def test_unknown_channel(clock):
    notifier = DefaultNotifier(EventBus(), Settings(), clock)

    with pytest.raises(ValueError):
        await notifier.send("pigeon", ["x"], {})
