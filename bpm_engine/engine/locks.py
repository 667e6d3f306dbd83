"""Per-instance mutual exclusion."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator


@dataclass
class _Slot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class InstanceLocks:
    """
    One asyncio.Lock per workflow instance.

    Every state transition of an instance runs under its lock; different
    instances never wait on each other. A lock lives only while someone
    holds or waits on it, so the map stays as small as the set of busy
    instances.
    """

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}

    @asynccontextmanager
    async def __call__(self, instance_id: str) -> AsyncIterator[None]:
        slot = self._slots.get(instance_id)
        if slot is None:
            slot = self._slots[instance_id] = _Slot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[instance_id]

    def locked(self, instance_id: str) -> bool:
        slot = self._slots.get(instance_id)
        return slot is not None and slot.lock.locked()

    def __len__(self) -> int:
        return len(self._slots)
