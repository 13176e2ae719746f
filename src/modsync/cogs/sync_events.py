from __future__ import annotations

import logging

import discord
from discord.ext import commands

from ..sync.events import BanAdded, BanRemoved, MemberUpdated, ServerJoined
from ..sync.gateway import role_ref

log = logging.getLogger("modsync.cogs.sync_events")


class SyncEventsCog(commands.Cog):
    """Turns gateway events into sync events for the engine's queue."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @property
    def engine(self):
        return self.bot.engine  # type: ignore[attr-defined]

    @commands.Cog.listener()
    async def on_ready(self) -> None:
        log.info("Session ready as %s in %d guild(s)", self.bot.user, len(self.bot.guilds))
        self.engine.on_session_ready()

    @commands.Cog.listener()
    async def on_member_ban(self, guild: discord.Guild, user: discord.User | discord.Member) -> None:
        self.engine.submit(BanAdded(guild_id=guild.id, user_id=user.id))

    @commands.Cog.listener()
    async def on_member_unban(self, guild: discord.Guild, user: discord.User) -> None:
        self.engine.submit(BanRemoved(guild_id=guild.id, user_id=user.id))

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        old_roles = frozenset(role_ref(r) for r in before.roles if not r.is_default())
        new_roles = frozenset(role_ref(r) for r in after.roles if not r.is_default())
        if before.timed_out_until == after.timed_out_until and old_roles == new_roles:
            return
        self.engine.submit(
            MemberUpdated(
                guild_id=after.guild.id,
                user_id=after.id,
                old_timeout=before.timed_out_until,
                new_timeout=after.timed_out_until,
                old_roles=old_roles,
                new_roles=new_roles,
            )
        )

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        log.info("Joined new guild: %s (%s)", guild.name, guild.id)
        self.engine.submit(ServerJoined(guild_id=guild.id))

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        log.info("Removed from guild: %s (%s); mutes that originated there may now be claimed by another guild", guild.name, guild.id)
