from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..errors import PersistenceError, ServerCallError
from ..interfaces import ModerationServer, ServerDirectory, StatusSink
from ..models import MemberState, normalize_expiry
from ..services.safe_calls import SafeCaller
from ..services.stats import RuntimeStats
from .bans import BanReplicator
from .mutes import MuteReplicator
from .state import SyncState
from .timeouts import TimeoutReplicator

log = logging.getLogger("modsync.reconciler")


@dataclass
class PassReport:
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    servers_scanned: int = 0
    servers_failed: list[int] = field(default_factory=list)
    expired_timeouts: int = 0
    bans_discovered: int = 0
    bans_corrected: int = 0
    timeouts_synced: int = 0
    mutes_synced: int = 0
    mutes_corrected: int = 0

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at or time.time()) - self.started_at

    def changes(self) -> int:
        return (
            self.expired_timeouts
            + self.bans_discovered
            + self.bans_corrected
            + self.timeouts_synced
            + self.mutes_synced
            + self.mutes_corrected
        )

    def summary(self) -> str:
        failed = f", {len(self.servers_failed)} failed" if self.servers_failed else ""
        return (
            f"🧭 Reconciliation: {self.servers_scanned} server(s) scanned{failed}; "
            f"bans +{self.bans_discovered}/fixed {self.bans_corrected}, "
            f"timeouts synced {self.timeouts_synced}/expired {self.expired_timeouts}, "
            f"mutes synced {self.mutes_synced}/fixed {self.mutes_corrected} "
            f"({self.duration_seconds:.1f}s)"
        )


class ReconciliationScheduler:
    """Periodically re-derives canonical state from a full scan of every server."""

    def __init__(
        self,
        state: SyncState,
        directory: ServerDirectory,
        caller: SafeCaller,
        reporter: StatusSink,
        stats: RuntimeStats,
        bans: BanReplicator,
        timeouts: TimeoutReplicator,
        mutes: MuteReplicator,
        interval_seconds: int = 60,
    ) -> None:
        self.state = state
        self.directory = directory
        self.caller = caller
        self.reporter = reporter
        self.stats = stats
        self.bans = bans
        self.timeouts = timeouts
        self.mutes = mutes
        self.interval = interval_seconds
        self.last_report: Optional[PassReport] = None
        self._pass_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="modsync-reconciler")
        log.info("Reconciliation scheduler started (every %ss)", self.interval)

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("Reconciliation scheduler stopped")

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.run_pass()
            except PersistenceError as e:
                await self._persistence_alarm(e)
            except Exception:
                log.exception("Reconciliation pass crashed")

    async def run_pass(self) -> PassReport:
        """Run one full pass. Concurrent callers wait for the pass in progress."""
        async with self._pass_lock:
            report = PassReport()
            servers = list(self.directory.servers())
            log.info("Reconciliation pass started over %d server(s)", len(servers))

            await self._expire_timeouts(report)
            await self._reconcile_bans(servers, report)
            await self._reconcile_members(servers, report)

            report.finished_at = time.time()
            self.last_report = report
            self.stats.passes_completed += 1
            log.info(report.summary())
            if report.changes() or report.servers_failed:
                await self.reporter.emit(report.summary())
            return report

    async def _expire_timeouts(self, report: PassReport) -> None:
        now = self.state.now()
        expired = [uid for uid, exp in self.state.snapshot.timeouts.items() if exp <= now]
        for user_id in expired:
            log.info("Timeout for user %s expired; clearing canonical state", user_id)
            await self.timeouts.sync_timeout(user_id, None)
            report.expired_timeouts += 1

    async def _reconcile_bans(self, servers: Sequence[ModerationServer], report: PassReport) -> None:
        listed: dict[int, set[int]] = {}
        discovered: set[int] = set()
        for server in servers:
            try:
                bans = await self.caller.fetch_or_raise("list bans", server.id, server.list_bans)
            except ServerCallError as e:
                log.error("Failed to fetch bans for guild %s: %s", server.id, e.detail)
                self._mark_failed(report, server.id)
                continue
            listed[server.id] = set(bans)
            for user_id in sorted(bans):
                if self.state.snapshot.is_banned(user_id):
                    continue
                log.info("Discovered new ban for user %s in guild %s", user_id, server.id)
                await self.bans.sync_ban(user_id, True, source_guild_id=server.id)
                discovered.add(user_id)
                report.bans_discovered += 1

        for server in servers:
            if server.id not in listed:
                continue
            missing = set(self.state.snapshot.bans) - listed[server.id] - discovered
            for user_id in sorted(missing):
                if await self.bans.converge_one(server, user_id):
                    report.bans_corrected += 1

    async def _reconcile_members(self, servers: Sequence[ModerationServer], report: PassReport) -> None:
        for server in servers:
            try:
                members = await self.caller.fetch_or_raise("list members", server.id, server.list_members)
            except ServerCallError as e:
                log.error("Failed to fetch members for guild %s: %s", server.id, e.detail)
                self._mark_failed(report, server.id)
                continue
            report.servers_scanned += 1
            for member in members:
                await self._reconcile_timeout(server, member, report)
                await self._reconcile_mute(server, member, report)

    async def _reconcile_timeout(self, server: ModerationServer, member: MemberState, report: PassReport) -> None:
        user_id = member.user_id
        live = normalize_expiry(member.timeout_until, self.state.now())
        canonical = self.timeouts.canonical(user_id)
        if self.timeouts.same_expiry(live, canonical):
            return
        # Canonical expiries already in the past were cleared by _expire_timeouts.
        log.info("Discovered timeout change for user %s in guild %s (until=%s)", user_id, server.id, live)
        await self.timeouts.sync_timeout(user_id, live, source_guild_id=server.id)
        report.timeouts_synced += 1

    async def _reconcile_mute(self, server: ModerationServer, member: MemberState, report: PassReport) -> None:
        user_id = member.user_id
        has_role = self.mutes.roles.holds_muted_role(server.id, member.roles)
        record = self.state.snapshot.mutes.get(user_id)

        if record is None:
            if has_role:
                log.info("Discovered muted role for user %s in guild %s; guild becomes origin", user_id, server.id)
                await self.mutes.sync_mute(user_id, True, server.id)
                report.mutes_synced += 1
            return

        if record.muted == has_role:
            return
        if self.mutes.may_claim_origin(user_id, server.id):
            log.info("Muted role for user %s changed in origin guild %s", user_id, server.id)
            await self.mutes.sync_mute(user_id, has_role, server.id)
            report.mutes_synced += 1
        elif await self.mutes.converge_one(server, user_id, member):
            log.info("Corrected muted role for user %s in guild %s to match origin", user_id, server.id)
            report.mutes_corrected += 1

    async def catch_up(self, server: ModerationServer) -> int:
        """Converge one newly joined server onto canonical state. Returns the change count."""
        try:
            await self.caller.fetch_or_raise("prime members", server.id, server.prime)
        except ServerCallError as e:
            log.error("Failed to fetch members for guild %s: %s", server.id, e.detail)

        snapshot = self.state.snapshot
        changes = 0
        for user_id in sorted(snapshot.bans):
            if await self.bans.converge_one(server, user_id):
                changes += 1
        for user_id in sorted(snapshot.timeouts):
            if self.timeouts.canonical(user_id) is not None and await self.timeouts.converge_one(server, user_id):
                changes += 1
        for user_id, record in sorted(snapshot.mutes.items()):
            if record.muted and record.origin_guild_id != server.id and await self.mutes.converge_one(server, user_id):
                changes += 1

        log.info("Catch-up for guild %s finished with %d change(s)", server.id, changes)
        if changes:
            await self.reporter.emit(f"📥 Joined {server.name} (`{server.id}`): applied {changes} synced restriction(s)")
        return changes

    def _mark_failed(self, report: PassReport, guild_id: int) -> None:
        if guild_id not in report.servers_failed:
            report.servers_failed.append(guild_id)

    async def _persistence_alarm(self, error: PersistenceError) -> None:
        self.stats.persistence_failures += 1
        log.critical("Reconciliation aborted: %s", error)
        await self.reporter.emit(f"🚨 Moderation snapshot could not be saved: {error}")
