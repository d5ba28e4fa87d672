"""Per-record advisory locks shared by concurrently running operations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class RecordLockManager:
    """Serializes writes to the same record id across operations.

    Entries are reference counted and dropped once no task holds or awaits
    them, so the map only grows with the number of records in flight.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, record_id: str) -> AsyncIterator[None]:
        entry = self._entries.get(record_id)
        if entry is None:
            entry = _LockEntry()
            self._entries[record_id] = entry
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._entries.get(record_id) is entry:
                del self._entries[record_id]

    def is_locked(self, record_id: str) -> bool:
        entry = self._entries.get(record_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)
