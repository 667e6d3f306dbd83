"""Durable one-shot timers that resume suspended cursors."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Awaitable, Callable, TYPE_CHECKING

from .types import Timer

if TYPE_CHECKING:
    from ..storage.base import InstanceStore
    from .clock import Clock, ScheduledCall

logger = logging.getLogger(__name__)

TimerHandler = Callable[[Timer], Awaitable[None]]


class TimerScheduler:
    """
    Schedules timers through the injected Clock and persists them in the store.

    A timer is consumed in the same store write that resumes its instance,
    so a failed resume leaves it pending for recover(). That write fails
    for a timer consumed elsewhere, which keeps delivery to one resume.
    """

    def __init__(self, store: InstanceStore, clock: Clock, handler: TimerHandler | None = None) -> None:
        self._store = store
        self._clock = clock
        self._handler = handler
        self._handles: dict[str, ScheduledCall] = {}
        self._closed = False

    async def schedule(self, instance_id: str, node_id: str, cursor_id: str, fire_at: datetime) -> str:
        """Persist a timer and arm it. Returns the timer id."""
        timer = Timer(
            id=str(uuid.uuid4()),
            instance_id=instance_id,
            node_id=node_id,
            cursor_id=cursor_id,
            fire_at=fire_at,
        )
        await self._store.save_timer(timer)
        self._arm(timer)
        logger.debug("Scheduled timer %s for instance %s at %s", timer.id, instance_id, fire_at.isoformat())
        return timer.id

    async def disarm_instance(self, instance_id: str) -> list[str]:
        """
        Disarm every pending timer of an instance.

        Returns their ids for the caller to consume with the instance write.
        """
        timer_ids = []
        for timer in await self._store.list_pending_timers(instance_id):
            handle = self._handles.pop(timer.id, None)
            if handle is not None:
                handle.cancel()
            timer_ids.append(timer.id)
        return timer_ids

    async def recover(self) -> int:
        """
        Re-arm pending timers after a restart.

        Timers already due fire immediately, in fire_at order. Returns the
        number of pending timers found.
        """
        pending = await self._store.list_pending_timers()
        now = self._clock.now()
        for timer in pending:
            if timer.fire_at <= now:
                await self.fire(timer.id)
            else:
                self._arm(timer)
        if pending:
            logger.info("Recovered %d pending timers", len(pending))
        return len(pending)

    async def fire(self, timer_id: str) -> bool:
        """Hand a pending timer to the handler. Returns False if it was already consumed."""
        self._handles.pop(timer_id, None)
        if self._closed:
            return False

        timer = await self._store.get_timer(timer_id)
        if timer is None or timer.consumed:
            return False
        if self._handler is None:
            logger.warning("Timer %s fired without a handler", timer_id)
            return False

        logger.debug("Timer %s fired for instance %s", timer.id, timer.instance_id)
        await self._handler(timer)
        return True

    async def shutdown(self) -> None:
        """Disarm all in-process timers. Persisted timers survive for recover()."""
        self._closed = True
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    @property
    def armed_count(self) -> int:
        return len(self._handles)

    def _arm(self, timer: Timer) -> None:
        if self._closed:
            return
        self._handles[timer.id] = self._clock.call_at(timer.fire_at, lambda: self.fire(timer.id))
