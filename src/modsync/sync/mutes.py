from __future__ import annotations

import logging
from typing import Optional

from ..constants import REASONS
from ..interfaces import ModerationServer, ServerDirectory, StatusSink
from ..models import MemberState, ModerationSnapshot, MuteState
from ..services.safe_calls import SafeCaller
from ..services.stats import RuntimeStats
from .replicator import Replicator
from .roles import MutedRoleRegistry
from .state import SyncState

log = logging.getLogger("modsync.mutes")


def _set_mute(user_id: int, muted: bool, origin_guild_id: int):
    def mutate(snap: ModerationSnapshot) -> None:
        snap.mutes[user_id] = MuteState(muted=muted, origin_guild_id=origin_guild_id)

    return mutate


class MuteReplicator(Replicator):
    """Replicates the muted role from each user's origin server.

    Only the origin server may change a user's mute state. The same change on
    any other server is reverted to the canonical value.
    """

    def __init__(
        self,
        state: SyncState,
        directory: ServerDirectory,
        caller: SafeCaller,
        reporter: StatusSink,
        stats: RuntimeStats,
        roles: MutedRoleRegistry,
    ) -> None:
        super().__init__(state, directory, caller, reporter, stats)
        self.roles = roles

    def origin_of(self, user_id: int) -> Optional[int]:
        record = self.state.snapshot.mutes.get(user_id)
        return record.origin_guild_id if record else None

    def may_claim_origin(self, user_id: int, guild_id: int) -> bool:
        """True if a change seen on ``guild_id`` is authoritative.

        That is the case when there is no record yet, when ``guild_id`` is
        already the origin, or when the recorded origin is no longer a server
        the bot can see.
        """
        origin = self.origin_of(user_id)
        if origin is None or origin == guild_id:
            return True
        return self.directory.get(origin) is None

    async def sync_mute(self, user_id: int, muted: bool, origin_guild_id: int) -> list[ModerationServer]:
        if self.state.guard.is_owned(user_id):
            log.debug("Mute sync for user %s skipped; already in flight", user_id)
            return []

        changed: list[ModerationServer] = []
        async with self.state.lock(user_id):
            with self.state.guard.owning(user_id):
                await self.state.commit(_set_mute(user_id, muted, origin_guild_id))
                for server in self.targets(exclude=origin_guild_id):
                    if await self._converge(server, user_id, muted):
                        changed.append(server)

        log.info(
            "Muted role %s for user %s from origin %s; %d server(s) changed",
            "applied" if muted else "removed",
            user_id,
            origin_guild_id,
            len(changed),
        )
        await self.report_sweep(
            f"{'🔇' if muted else '🔈'} Muted role {'added to' if muted else 'removed from'} user `{user_id}` "
            f"(origin `{origin_guild_id}`)",
            changed,
        )
        return changed

    async def handle_local_change(self, guild_id: int, user_id: int, has_role: bool) -> list[ModerationServer]:
        """React to a muted-role change observed on ``guild_id``."""
        if self.may_claim_origin(user_id, guild_id):
            return await self.sync_mute(user_id, has_role, guild_id)

        record = self.state.snapshot.mutes[user_id]
        if record.muted == has_role:
            return []

        server = self.directory.get(guild_id)
        if server is None:
            return []
        log.info(
            "Muted role change for user %s in non-origin guild %s; reverting to origin %s",
            user_id,
            guild_id,
            record.origin_guild_id,
        )
        if await self.converge_one(server, user_id):
            self.stats.mute_reverts += 1
            await self.reporter.emit(
                f"🔁 Muted role for user `{user_id}` restored on {server.name} (`{server.id}`) "
                f"to match origin `{record.origin_guild_id}`"
            )
            return [server]
        return []

    async def converge_one(
        self,
        server: ModerationServer,
        user_id: int,
        member: Optional[MemberState] = None,
    ) -> bool:
        """Correct one server in place to the canonical mute state."""
        if self.state.guard.is_owned(user_id):
            return False
        async with self.state.lock(user_id):
            with self.state.guard.owning(user_id):
                record = self.state.snapshot.mutes.get(user_id)
                if record is None:
                    return False
                return await self._converge(server, user_id, record.muted, member)

    async def _converge(
        self,
        server: ModerationServer,
        user_id: int,
        muted: bool,
        member: Optional[MemberState] = None,
    ) -> bool:
        if member is None:
            member = await self.caller.fetch("fetch member", server.id, lambda: server.fetch_member(user_id), default=None)
        if member is None:
            return False

        # Nothing to remove if the role does not exist yet.
        role = await self.roles.resolve(server, create=muted)
        if role is None:
            return False
        if member.has_role(role.id) == muted:
            return False

        if muted:
            ok = await self.caller.attempt(
                "add muted role", server.id, lambda: server.add_role(member, role, REASONS["role_add"])
            )
            if ok:
                self.stats.roles_added += 1
                log.info("Added muted role to user %s in guild %s", user_id, server.id)
        else:
            ok = await self.caller.attempt(
                "remove muted role", server.id, lambda: server.remove_role(member, role, REASONS["role_remove"])
            )
            if ok:
                self.stats.roles_removed += 1
                log.info("Removed muted role from user %s in guild %s", user_id, server.id)
        return ok
