"""Tests for the reentrancy guard and the canonical state holder."""

import asyncio
from datetime import datetime, timezone

import pytest

from modsync.errors import PersistenceError
from modsync.models import normalize_expiry
from modsync.services.cache import TTLCache
from modsync.sync.guard import ReentrancyGuard
from modsync.sync.state import SyncState
from modsync.testing.fakes import FailingSnapshotBackend


def _ban(user_id):
    def mutate(snap):
        snap.bans[user_id] = True

    return mutate


class TestReentrancyGuard:
    def test_begin_end(self):
        guard = ReentrancyGuard()
        assert not guard.is_owned(1)
        guard.begin(1)
        assert guard.is_owned(1)
        guard.end(1)
        assert not guard.is_owned(1)

    def test_nested_ownership_is_counted(self):
        guard = ReentrancyGuard()
        with guard.owning(1):
            with guard.owning(1):
                assert guard.is_owned(1)
            assert guard.is_owned(1)
        assert not guard.is_owned(1)
        assert len(guard) == 0

    def test_released_on_error(self):
        guard = ReentrancyGuard()
        with pytest.raises(RuntimeError):
            with guard.owning(7):
                raise RuntimeError("boom")
        assert not guard.is_owned(7)

    def test_end_without_begin_is_harmless(self):
        guard = ReentrancyGuard()
        guard.end(3)
        assert not guard.is_owned(3)


class TestSyncState:
    async def test_commit_persists_then_swaps(self):
        backend = FailingSnapshotBackend()
        state = SyncState(backend)

        await state.commit(_ban(5))

        assert state.snapshot.is_banned(5)
        assert backend.saved.is_banned(5)

    async def test_failed_write_leaves_snapshot_unchanged(self):
        backend = FailingSnapshotBackend()
        state = SyncState(backend)
        await state.commit(_ban(5))
        backend.fail = True

        with pytest.raises(PersistenceError):
            await state.commit(_ban(6))

        assert state.snapshot.is_banned(5)
        assert not state.snapshot.is_banned(6)

    async def test_load_replaces_snapshot(self):
        backend = FailingSnapshotBackend()
        backend.saved.bans[8] = True
        state = SyncState(backend)
        await state.load()
        assert state.snapshot.is_banned(8)

    async def test_user_lock_serializes_same_user(self):
        state = SyncState(FailingSnapshotBackend())
        order = []

        async def step(tag):
            async with state.lock(1):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(step("a"), step("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]
        assert len(state._locks) == 0


class TestHelpers:
    def test_normalize_expiry(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert normalize_expiry(None, now) is None
        assert normalize_expiry(now, now) is None
        later = now.replace(hour=1)
        assert normalize_expiry(later, now) == later

    def test_ttl_cache_expires(self):
        t = [100.0]
        cache = TTLCache(default_ttl_seconds=10, clock=lambda: t[0])
        cache.set("k", "v")
        assert "k" in cache
        t[0] += 11
        assert cache.get("k") is None
        assert len(cache) == 0
