"""Shared pytest fixtures for the sync engine tests."""

from datetime import datetime, timezone

import pytest

from modsync.config import Settings
from modsync.database import initialize_database
from modsync.services.role_binding_store import RoleBindingStore
from modsync.services.snapshot_store import SnapshotStore
from modsync.sync.engine import SyncEngine
from modsync.testing.fakes import FakeClock, FakeDirectory, FakeReporter, FakeServer

USER = 4242
MUTED = "Muted"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        token="test-token",
        sync_guild_id=0,
        sqlite_path=str(tmp_path / "modsync.sqlite3"),
        log_level="DEBUG",
        muted_role_name=MUTED,
        status_channel_id=1,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
async def snapshot_store(settings):
    store = SnapshotStore(settings.sqlite_path)
    await initialize_database(settings.sqlite_path, [store])
    return store


@pytest.fixture
async def role_bindings(settings):
    store = RoleBindingStore(settings.sqlite_path)
    await initialize_database(settings.sqlite_path, [store])
    return store


@pytest.fixture
def servers(clock):
    """Three guilds, each with ``USER`` as a member."""
    out = [
        FakeServer(1, "alpha", clock=clock),
        FakeServer(2, "bravo", clock=clock),
        FakeServer(3, "charlie", clock=clock),
    ]
    for server in out:
        server.add_member(USER)
    return out


@pytest.fixture
def directory(servers):
    return FakeDirectory(servers)


@pytest.fixture
def reporter():
    return FakeReporter()


@pytest.fixture
async def engine(settings, directory, snapshot_store, role_bindings, reporter, clock):
    """Engine with state loaded but no background tasks running."""
    eng = SyncEngine(settings, directory, snapshot_store, role_bindings, reporter, clock=clock)
    await eng.state.load()
    yield eng
    await eng.stop()


@pytest.fixture
def echo(servers, engine):
    """Feed every fake server's own change notifications back into the engine."""
    for server in servers:
        server.on_change = engine.submit
    return engine
