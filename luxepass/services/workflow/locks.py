"""Per-identifier asyncio locks: one inbound event at a time per user within a process."""

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class IdentifierLocks:
    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, identifier: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(identifier, asyncio.Lock())
        self._holders[identifier] += 1
        try:
            async with lock:
                yield
        finally:
            self._holders[identifier] -= 1
            if self._holders[identifier] == 0:
                # Nobody waiting: drop the entry so the registry stays small
                del self._holders[identifier]
                self._locks.pop(identifier, None)

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every engine in the process (webhook background jobs build their own engine)
default_locks = IdentifierLocks()
