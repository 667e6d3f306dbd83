"""Shared fixtures: a manual clock, a recording notifier and in-memory engines."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from bpm_engine.core.config import Settings
from bpm_engine.engine.assignees import StaticAssigneeResolver
from bpm_engine.engine.clock import Clock, TimerCallback
from bpm_engine.engine.engine import WorkflowEngine
from bpm_engine.engine.event_bus import EventBus
from bpm_engine.engine.node_registry import register_all_nodes
from bpm_engine.engine.notifier import Notifier
from bpm_engine.storage import InMemoryDefinitionStore, InMemoryInstanceStore

START_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

register_all_nodes()


class _ManualCall:
    def __init__(self, when: datetime, callback: TimerCallback) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock(Clock):
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self._now = start
        self._calls: list[_ManualCall] = []

    def now(self) -> datetime:
        return self._now

    def call_at(self, when: datetime, callback: TimerCallback) -> _ManualCall:
        call = _ManualCall(when, callback)
        self._calls.append(call)
        return call

    @property
    def pending(self) -> int:
        return sum(1 for c in self._calls if not c.cancelled)

    async def advance(self, delta: timedelta) -> None:
        """Move time forward and run every callback that became due, in order."""
        self._now += delta
        while True:
            due = sorted(
                (c for c in self._calls if not c.cancelled and c.when <= self._now),
                key=lambda c: c.when,
            )
            if not due:
                return
            call = due[0]
            self._calls.remove(call)
            await call.callback()


class RecordingNotifier(Notifier):
    """Notifier that keeps every dispatch in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, list[str], dict[str, Any]]] = []
        self.fail = fail

    async def send(self, channel: str, recipients: list[str], payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("delivery failed")
        self.sent.append((channel, list(recipients), dict(payload)))


@pytest.fixture
def settings() -> Settings:
    return Settings(store_backend="memory", event_buffer_size=10, script_timeout=2.0)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def resolver() -> StaticAssigneeResolver:
    return StaticAssigneeResolver({"managers": ["alice", "bob"], "finance": ["carol"], "empty": []})


@pytest.fixture
def definitions() -> InMemoryDefinitionStore:
    return InMemoryDefinitionStore()


@pytest.fixture
def store() -> InMemoryInstanceStore:
    return InMemoryInstanceStore()


@pytest.fixture
def event_bus(settings: Settings) -> EventBus:
    return EventBus(buffer_size=settings.event_buffer_size)


@pytest.fixture
def make_engine(definitions, store, resolver, notifier, clock, event_bus, settings):
    """Factory so a test can build a second engine over the same stores (a restart)."""

    def factory(**overrides: Any) -> WorkflowEngine:
        kwargs: dict[str, Any] = {
            "resolver": resolver,
            "notifier": notifier,
            "clock": clock,
            "event_bus": event_bus,
            "settings": settings,
        }
        kwargs.update(overrides)
        return WorkflowEngine(definitions, store, **kwargs)

    return factory


@pytest.fixture
def engine(make_engine) -> WorkflowEngine:
    return make_engine()


def linear(*nodes: dict[str, Any]) -> list[dict[str, Any]]:
    """Edges chaining the given nodes in order."""
    return [{"source": a["id"], "target": b["id"]} for a, b in zip(nodes, nodes[1:])]


APPROVAL_WORKFLOW: dict[str, Any] = {
    "name": "Expense approval",
    "nodes": [
        {"id": "start", "type": "start"},
        {
            "id": "approve",
            "type": "approval",
            "config": {"assignee": "group:managers", "title": "Approve {{ amount }} EUR"},
        },
        {"id": "check", "type": "condition", "config": {"expression": 'decision == "approved"'}},
        {"id": "done", "type": "end"},
        {"id": "rejected", "type": "end"},
    ],
    "edges": [
        {"source": "start", "target": "approve"},
        {"source": "approve", "target": "check"},
        {"source": "check", "target": "done", "sourceHandle": "true"},
        {"source": "check", "target": "rejected", "sourceHandle": "false"},
    ],
}
