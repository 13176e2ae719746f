from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from ..constants import MAX_TIMEOUT_DURATION, REASONS
from ..interfaces import ModerationServer, ServerDirectory, StatusSink
from ..models import MemberState, ModerationSnapshot, normalize_expiry
from ..services.safe_calls import SafeCaller
from ..services.stats import RuntimeStats
from .replicator import Replicator
from .state import SyncState

log = logging.getLogger("modsync.timeouts")


def _set_timeout(user_id: int, expiry: Optional[datetime]):
    def mutate(snap: ModerationSnapshot) -> None:
        if expiry is None:
            snap.timeouts.pop(user_id, None)
        else:
            snap.timeouts[user_id] = expiry

    return mutate


class TimeoutReplicator(Replicator):
    """Keeps a user's communication timeout identical on every server.

    Timeouts are applied as a duration measured from the moment of each
    call, so propagation delay never shifts the effective expiry by more
    than the latency of a single request.
    """

    def __init__(
        self,
        state: SyncState,
        directory: ServerDirectory,
        caller: SafeCaller,
        reporter: StatusSink,
        stats: RuntimeStats,
        tolerance: timedelta = timedelta(seconds=5),
    ) -> None:
        super().__init__(state, directory, caller, reporter, stats)
        self.tolerance = tolerance

    def same_expiry(self, a: Optional[datetime], b: Optional[datetime]) -> bool:
        if a is None or b is None:
            return a is None and b is None
        return abs(a - b) <= self.tolerance

    def canonical(self, user_id: int) -> Optional[datetime]:
        return normalize_expiry(self.state.snapshot.timeouts.get(user_id), self.state.now())

    async def sync_timeout(
        self,
        user_id: int,
        expiry: Optional[datetime],
        *,
        source_guild_id: Optional[int] = None,
    ) -> list[ModerationServer]:
        changed: list[ModerationServer] = []
        async with self.state.lock(user_id):
            target = normalize_expiry(expiry, self.state.now())
            await self.state.commit(_set_timeout(user_id, target))
            with self.state.guard.owning(user_id):
                for server in self.targets(exclude=source_guild_id):
                    if await self._converge(server, user_id, target):
                        changed.append(server)

        if target is None:
            headline = f"🔊 Timeout for user `{user_id}` cleared"
        else:
            headline = f"⏳ Timeout for user `{user_id}` until <t:{int(target.timestamp())}:f> synced"
        log.info("Timeout for user %s synced (until=%s); %d server(s) changed", user_id, target, len(changed))
        await self.report_sweep(headline, changed)
        return changed

    async def converge_one(
        self,
        server: ModerationServer,
        user_id: int,
        member: Optional[MemberState] = None,
    ) -> bool:
        """Bring one server in line with the canonical timeout."""
        async with self.state.lock(user_id):
            with self.state.guard.owning(user_id):
                return await self._converge(server, user_id, self.canonical(user_id), member)

    async def _converge(
        self,
        server: ModerationServer,
        user_id: int,
        target: Optional[datetime],
        member: Optional[MemberState] = None,
    ) -> bool:
        if member is None:
            member = await self.caller.fetch("fetch member", server.id, lambda: server.fetch_member(user_id), default=None)
        if member is None:
            return False
        # Raw comparison: a stale expiry already in the past still gets cleared.
        if self.same_expiry(member.timeout_until, target):
            return False

        duration: Optional[timedelta] = None
        if target is not None:
            duration = min(target - self.state.now(), MAX_TIMEOUT_DURATION)
            if duration <= timedelta(0):
                duration = None
                if member.timeout_until is None:
                    return False

        ok = await self.caller.attempt(
            "timeout", server.id, lambda: server.set_timeout(member, duration, REASONS["timeout"])
        )
        if ok:
            if duration is None:
                self.stats.timeouts_cleared += 1
                log.info("Cleared timeout for user %s in guild %s", user_id, server.id)
            else:
                self.stats.timeouts_applied += 1
                log.info("Set timeout for user %s in guild %s (%ss)", user_id, server.id, int(duration.total_seconds()))
        return ok
