from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import discord

from ..config import Settings
from ..interfaces import ServerDirectory, SnapshotBackend, StatusSink
from ..services.role_binding_store import RoleBindingStore
from ..services.safe_calls import SafeCaller
from ..services.stats import RuntimeStats
from .bans import BanReplicator
from .dispatcher import EventDispatcher
from .events import SessionReady, SyncEvent
from .mutes import MuteReplicator
from .reconciler import ReconciliationScheduler
from .roles import MutedRoleRegistry
from .state import Clock, SyncState
from .timeouts import TimeoutReplicator

log = logging.getLogger("modsync.engine")


class SyncEngine:
    """Owns the sync components and their lifecycle."""

    def __init__(
        self,
        settings: Settings,
        directory: ServerDirectory,
        snapshots: SnapshotBackend,
        role_bindings: RoleBindingStore,
        reporter: StatusSink,
        *,
        stats: Optional[RuntimeStats] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings
        self.directory = directory
        self.reporter = reporter
        self.role_bindings = role_bindings
        self.stats = stats or RuntimeStats()
        self.state = SyncState(snapshots, clock or discord.utils.utcnow)
        self.caller = SafeCaller(
            call_timeout=settings.call_timeout_seconds,
            fetch_timeout=settings.fetch_timeout_seconds,
            max_retries=settings.call_max_retries,
            stats=self.stats,
        )
        self.roles = MutedRoleRegistry(role_bindings, self.caller, settings.muted_role_name, self.stats)

        common = (self.state, directory, self.caller, reporter, self.stats)
        self.bans = BanReplicator(*common)
        self.timeouts = TimeoutReplicator(*common, tolerance=timedelta(seconds=settings.timeout_tolerance_seconds))
        self.mutes = MuteReplicator(*common, roles=self.roles)
        self.reconciler = ReconciliationScheduler(
            *common,
            bans=self.bans,
            timeouts=self.timeouts,
            mutes=self.mutes,
            interval_seconds=settings.reconcile_interval_seconds,
        )
        self.dispatcher = EventDispatcher(
            self.state,
            directory,
            reporter,
            self.stats,
            self.bans,
            self.timeouts,
            self.mutes,
            self.reconciler,
            max_queue_size=settings.event_queue_max_size,
            on_ready=self.handle_ready,
        )

    async def start(self) -> None:
        await self.state.load()
        bound = await self.role_bindings.load_all()
        log.info("Loaded %d role binding(s)", bound)
        self.dispatcher.start()

    async def stop(self) -> None:
        await self.reconciler.stop()
        await self.dispatcher.stop()

    def submit(self, event: SyncEvent) -> bool:
        return self.dispatcher.submit(event)

    async def handle_ready(self) -> None:
        """Populate member caches, heal offline drift, then start the periodic loop."""
        servers = list(self.directory.servers())
        for server in servers:
            await self.caller.fetch("prime members", server.id, server.prime, default=None, bulk=True)
        log.info("Member caches populated for %d server(s)", len(servers))

        try:
            if self.settings.reconcile_on_ready:
                await self.reconciler.run_pass()
        finally:
            self.reconciler.start()

    def on_session_ready(self) -> bool:
        return self.submit(SessionReady())
