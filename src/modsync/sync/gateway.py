"""discord.py adapters for the moderation server protocol."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional, Sequence

import discord

from ..errors import ServerCallError
from ..models import MemberState, RoleRef

log = logging.getLogger("modsync.gateway")


def role_ref(role: discord.Role) -> RoleRef:
    return RoleRef(id=role.id, name=role.name)


def member_state(member: discord.Member) -> MemberState:
    return MemberState(
        user_id=member.id,
        guild_id=member.guild.id,
        timeout_until=member.timed_out_until,
        roles=frozenset(role_ref(r) for r in member.roles if not r.is_default()),
        handle=member,
    )


class DiscordServer:
    """One guild seen through the operations the sync engine needs."""

    def __init__(self, guild: discord.Guild) -> None:
        self.guild = guild

    @property
    def id(self) -> int:
        return self.guild.id

    @property
    def name(self) -> str:
        return self.guild.name

    def __repr__(self) -> str:
        return f"<DiscordServer id={self.guild.id} name={self.guild.name!r}>"

    async def prime(self) -> None:
        if not self.guild.chunked:
            await self.guild.chunk(cache=True)

    async def list_bans(self) -> set[int]:
        return {entry.user.id async for entry in self.guild.bans(limit=None)}

    async def is_banned(self, user_id: int) -> bool:
        try:
            await self.guild.fetch_ban(discord.Object(id=user_id))
        except discord.NotFound:
            return False
        return True

    async def add_ban(self, user_id: int, reason: str) -> None:
        await self.guild.ban(discord.Object(id=user_id), reason=reason, delete_message_seconds=0)

    async def remove_ban(self, user_id: int, reason: str) -> None:
        await self.guild.unban(discord.Object(id=user_id), reason=reason)

    async def fetch_member(self, user_id: int) -> Optional[MemberState]:
        member = self.guild.get_member(user_id)
        if member is None:
            try:
                member = await self.guild.fetch_member(user_id)
            except discord.NotFound:
                return None
        return member_state(member)

    async def list_members(self) -> Sequence[MemberState]:
        return [member_state(m) async for m in self.guild.fetch_members(limit=None)]

    async def set_timeout(self, member: MemberState, duration: Optional[timedelta], reason: str) -> None:
        await self._member(member).timeout(duration, reason=reason)

    async def get_role(self, role_id: int) -> Optional[RoleRef]:
        role = self.guild.get_role(role_id)
        return role_ref(role) if role else None

    async def find_role_by_name(self, name: str) -> Optional[RoleRef]:
        role = discord.utils.get(self.guild.roles, name=name)
        return role_ref(role) if role else None

    async def create_role(self, name: str, reason: str) -> RoleRef:
        role = await self.guild.create_role(name=name, permissions=discord.Permissions.none(), reason=reason)
        return role_ref(role)

    async def add_role(self, member: MemberState, role: RoleRef, reason: str) -> None:
        await self._member(member).add_roles(discord.Object(id=role.id), reason=reason)

    async def remove_role(self, member: MemberState, role: RoleRef, reason: str) -> None:
        await self._member(member).remove_roles(discord.Object(id=role.id), reason=reason)

    def _member(self, member: MemberState) -> discord.Member:
        handle = member.handle
        if isinstance(handle, discord.Member):
            return handle
        cached = self.guild.get_member(member.user_id)
        if cached is None:
            raise ServerCallError(self.guild.id, "resolve member", f"user {member.user_id} is not cached")
        return cached


class DiscordDirectory:
    """All guilds the bot is in, sorted by id for a stable sweep order."""

    def __init__(self, client: discord.Client) -> None:
        self._client = client

    def servers(self) -> list[DiscordServer]:
        return [DiscordServer(g) for g in sorted(self._client.guilds, key=lambda g: g.id)]

    def get(self, guild_id: int) -> Optional[DiscordServer]:
        guild = self._client.get_guild(guild_id)
        return DiscordServer(guild) if guild else None
