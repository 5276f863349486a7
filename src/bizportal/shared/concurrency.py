"""Single-writer discipline for portal state changes.

Mutating portal operations read the store, decide, then write. Two of
them interleaving (e.g. two invite creations for one client) could leave
two "active" records. Every mutating operation therefore holds the
writer lock for its whole read-modify-write sequence.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class WriterLock:
    """Re-entrant (per asyncio task) writer lock.

    Nested operations in the same task, such as invite acceptance creating
    a session, re-enter instead of deadlocking.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: asyncio.Task[object] | None = None
        self._depth = 0

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if task is not None and self._owner is task:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        async with self._lock:
            self._owner = task
            self._depth = 1
            try:
                yield
            finally:
                self._owner = None
                self._depth = 0
