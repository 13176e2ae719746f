from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

import aiosqlite
import discord

from ..errors import PersistenceError
from ..interfaces import SnapshotBackend
from ..models import ModerationSnapshot
from .guard import ReentrancyGuard

log = logging.getLogger("modsync.state")

Clock = Callable[[], datetime]
Mutation = Callable[[ModerationSnapshot], None]


class _KeyedLocks:
    """One asyncio.Lock per user, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._refs: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, key: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class SyncState:
    """Owns the canonical snapshot, the reentrancy guard and per-user locks.

    ``snapshot`` is read-only for everyone else. Changes go through
    ``commit``, which applies the mutation to a copy, writes the copy in full
    and only then swaps it in, so memory never runs ahead of disk.
    """

    def __init__(self, backend: SnapshotBackend, clock: Clock = discord.utils.utcnow) -> None:
        self._backend = backend
        self.clock = clock
        self.snapshot = ModerationSnapshot.empty()
        self.guard = ReentrancyGuard()
        self._locks = _KeyedLocks()
        self._commit_lock = asyncio.Lock()

    def now(self) -> datetime:
        return self.clock()

    async def load(self) -> ModerationSnapshot:
        self.snapshot = await self._backend.load()
        log.info(
            "Loaded canonical snapshot: bans=%d timeouts=%d mutes=%d",
            len(self.snapshot.bans),
            len(self.snapshot.timeouts),
            len(self.snapshot.mutes),
        )
        return self.snapshot

    def lock(self, user_id: int):
        """Serialize every replication step for one user."""
        return self._locks.hold(int(user_id))

    async def commit(self, mutate: Mutation) -> ModerationSnapshot:
        async with self._commit_lock:
            pending = self.snapshot.copy()
            mutate(pending)
            try:
                await self._backend.replace(pending)
            except (aiosqlite.Error, OSError, ValueError) as e:
                log.critical("Snapshot write failed; canonical state left at last commit: %s", e)
                raise PersistenceError(f"could not persist moderation snapshot: {e}") from e
            self.snapshot = pending
            return pending
