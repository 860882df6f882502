"""
Per-key async locks for the update coordinator.

`KeyedLockRegistry.hold(key)` serializes coroutines that share a key while
letting different keys proceed in parallel. Slots are reference-counted
and removed once no coroutine holds or waits on them, so the registry does
not grow with the number of distinct keys ever seen.

Scope is a single process and event loop. Cross-process serialization is
provided by row locks in the database.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Hashable


@dataclass
class _LockSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    refs: int = 0


class KeyedLockRegistry:
    def __init__(self) -> None:
        self._slots: Dict[Hashable, _LockSlot] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _LockSlot()

        slot.refs += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.refs -= 1
            if slot.refs == 0 and self._slots.get(key) is slot:
                del self._slots[key]

    def is_locked(self, key: Hashable) -> bool:
        slot = self._slots.get(key)
        return slot is not None and slot.lock.locked()

    def __len__(self) -> int:
        return len(self._slots)
