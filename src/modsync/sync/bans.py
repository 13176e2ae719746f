from __future__ import annotations

import logging
from typing import Optional

from ..constants import REASONS
from ..interfaces import ModerationServer
from ..models import ModerationSnapshot
from .replicator import Replicator

log = logging.getLogger("modsync.bans")


def _set_ban(user_id: int, banned: bool):
    def mutate(snap: ModerationSnapshot) -> None:
        if banned:
            snap.bans[user_id] = True
        else:
            snap.bans.pop(user_id, None)

    return mutate


class BanReplicator(Replicator):
    """Keeps a user's ban identical on every server."""

    async def sync_ban(
        self,
        user_id: int,
        banned: bool,
        *,
        source_guild_id: Optional[int] = None,
    ) -> list[ModerationServer]:
        changed: list[ModerationServer] = []
        async with self.state.lock(user_id):
            await self.state.commit(_set_ban(user_id, banned))
            with self.state.guard.owning(user_id):
                # The source server already reflects the change it reported.
                for server in self.targets(exclude=source_guild_id):
                    if await self._converge(server, user_id, banned):
                        changed.append(server)

        verb = "Ban" if banned else "Unban"
        log.info("%s for user %s synced; %d server(s) changed", verb, user_id, len(changed))
        await self.report_sweep(f"{'🔨' if banned else '🕊️'} {verb} for user `{user_id}` synced", changed)
        return changed

    async def converge_one(self, server: ModerationServer, user_id: int) -> bool:
        """Bring one server in line with the canonical ban flag."""
        async with self.state.lock(user_id):
            with self.state.guard.owning(user_id):
                return await self._converge(server, user_id, self.state.snapshot.is_banned(user_id))

    async def _converge(self, server: ModerationServer, user_id: int, banned: bool) -> bool:
        current = await self.caller.fetch("check ban", server.id, lambda: server.is_banned(user_id), default=None)
        if current is banned:
            return False

        if banned:
            ok = await self.caller.attempt("ban", server.id, lambda: server.add_ban(user_id, REASONS["ban"]))
            if ok:
                self.stats.bans_applied += 1
                log.info("Banned user %s in guild %s", user_id, server.id)
        else:
            ok = await self.caller.attempt("unban", server.id, lambda: server.remove_ban(user_id, REASONS["unban"]))
            if ok:
                self.stats.unbans_applied += 1
                log.info("Unbanned user %s in guild %s", user_id, server.id)
        return ok
