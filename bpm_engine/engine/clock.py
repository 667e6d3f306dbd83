"""Time source for timers and timestamps."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any]]


class ScheduledCall(Protocol):
    """Handle returned by Clock.call_at."""

    def cancel(self) -> None: ...


class Clock(ABC):
    """Injected source of the current time and of delayed callbacks."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time (timezone-aware UTC)."""
        ...

    @abstractmethod
    def call_at(self, when: datetime, callback: TimerCallback) -> ScheduledCall:
        """Run the async callback once ``when`` is reached."""
        ...


class _LoopCall:
    """Cancellable wrapper around a loop timer and the task it spawns."""

    def __init__(self) -> None:
        self.handle: asyncio.TimerHandle | None = None
        self.task: asyncio.Task[Any] | None = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.handle is not None:
            self.handle.cancel()


class SystemClock(Clock):
    """Wall clock backed by the running asyncio loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_at(self, when: datetime, callback: TimerCallback) -> ScheduledCall:
        loop = asyncio.get_running_loop()
        delay = max(0.0, (when - self.now()).total_seconds())
        call = _LoopCall()

        def spawn() -> None:
            if call.cancelled:
                return
            task = loop.create_task(callback())
            call.task = task
            # Keep a reference until the task is done
            self._tasks.add(task)
            task.add_done_callback(self._on_done)

        call.handle = loop.call_later(delay, spawn)
        return call

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Scheduled callback failed", exc_info=task.exception())

    async def drain(self) -> None:
        """Wait for callbacks that are already running."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
