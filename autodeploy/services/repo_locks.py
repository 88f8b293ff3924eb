"""Per-working-copy mutual exclusion.

Two deployments against the same working copy must not interleave their git
calls: a stage from one request could be swept into the other's commit.
Deployments against different working copies run in parallel.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class RepositoryLocks:
    """Hands out one ``asyncio.Lock`` per resolved repository path.

    Locks are created lazily and kept for the life of the process; the number
    of working copies on a host is small and fixed.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, path: str) -> asyncio.Lock:
        key = os.path.realpath(path)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, path: str) -> AsyncIterator[None]:
        """Hold the lock for ``path`` for the duration of the block."""
        async with self.lock_for(path):
            yield
