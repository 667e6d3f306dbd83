"""Per-user event fan-out with bounded buffers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, TYPE_CHECKING

from .types import EventType, WorkflowEvent

if TYPE_CHECKING:
    from ..storage.base import InstanceStore
    from .clock import Clock
    from .inbox import NotificationInbox
    from .types import WorkflowInstance

logger = logging.getLogger(__name__)


class Subscription:
    """
    One subscriber's event stream.

    Iterate with ``async for`` until close() is called. Events published
    while the buffer is full are dropped.
    """

    def __init__(self, bus: EventBus, user_id: str, maxsize: int) -> None:
        self.user_id = user_id
        self._bus = bus
        self._queue: asyncio.Queue[WorkflowEvent | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.dropped = 0

    def _offer(self, event: WorkflowEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> WorkflowEvent | None:
        """Next event, or None once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus._remove(self)
        # Wake a waiting consumer; if the buffer is full it sees closed on its next get
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[WorkflowEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[WorkflowEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class EventBus:
    """In-process publish/subscribe keyed by user id."""

    def __init__(self, buffer_size: int = 100) -> None:
        self._buffer_size = buffer_size
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, user_id: str) -> Subscription:
        subscription = Subscription(self, user_id, self._buffer_size)
        self._subscriptions.setdefault(user_id, []).append(subscription)
        logger.debug("User %s subscribed to events", user_id)
        return subscription

    def publish(self, user_id: str, event: WorkflowEvent) -> int:
        """
        Deliver an event to every subscription of a user without blocking.

        Returns the number of subscriptions that accepted the event.
        """
        delivered = 0
        for subscription in list(self._subscriptions.get(user_id, [])):
            if subscription._offer(event):
                delivered += 1
            else:
                logger.warning(
                    "Dropped %s event for user %s: subscriber buffer full",
                    event.type.value,
                    user_id,
                )
        return delivered

    def publish_many(self, user_ids: Iterable[str], event: WorkflowEvent) -> None:
        """Deliver an event once to each distinct user."""
        for user_id in dict.fromkeys(u for u in user_ids if u):
            self.publish(user_id, event)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscriptions.get(user_id, []))

    def close_all(self) -> None:
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                subscription.close()

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.user_id, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            self._subscriptions.pop(subscription.user_id, None)


class EventPublisher:
    """
    Builds instance events and sends them to everyone who follows the instance.

    With an inbox, events that concern a person are also kept as
    notifications.
    """

    def __init__(
        self,
        bus: EventBus,
        store: InstanceStore,
        clock: Clock,
        inbox: NotificationInbox | None = None,
    ) -> None:
        self._bus = bus
        self._store = store
        self._clock = clock
        self._inbox = inbox

    async def emit(
        self,
        instance: WorkflowInstance,
        event_type: EventType,
        task_id: str | None = None,
        node_id: str | None = None,
        data: dict[str, Any] | None = None,
        extra_recipients: Iterable[str] = (),
    ) -> WorkflowEvent:
        """Publish to the starter, the instance subscribers and any extra recipients."""
        event = WorkflowEvent(
            type=event_type,
            instance_id=instance.id,
            timestamp=self._clock.now(),
            task_id=task_id,
            node_id=node_id,
            data=data or {},
        )
        extra = list(extra_recipients)
        recipients = [*extra, *await self._store.list_subscribers(instance.id)]
        if instance.started_by:
            recipients.append(instance.started_by)
        self._bus.publish_many(recipients, event)

        if self._inbox is not None:
            await self._inbox.record_event(instance, event, assignees=extra)
        return event
