from __future__ import annotations

import logging
from typing import Iterable, Optional

import aiosqlite

from ..constants import MUTED_ROLE_PURPOSE, REASONS
from ..interfaces import ModerationServer
from ..models import RoleRef
from ..services.role_binding_store import RoleBindingStore
from ..services.safe_calls import SafeCaller
from ..services.stats import RuntimeStats

log = logging.getLogger("modsync.roles")


class MutedRoleRegistry:
    """Resolves each guild's muted role, creating it on first use.

    The resolved role id is bound per guild so later lookups survive renames.
    Name matching on ``role_name`` stays as the fallback for unbound guilds.
    """

    purpose = MUTED_ROLE_PURPOSE

    def __init__(
        self,
        bindings: RoleBindingStore,
        caller: SafeCaller,
        role_name: str,
        stats: Optional[RuntimeStats] = None,
    ) -> None:
        self._bindings = bindings
        self._caller = caller
        self.role_name = role_name
        self._stats = stats

    async def resolve(self, server: ModerationServer, *, create: bool = True) -> Optional[RoleRef]:
        binding = await self._safe_binding(server.id)
        if binding is not None:
            role = await self._caller.fetch("get role", server.id, lambda: server.get_role(binding), default=None)
            if role is not None:
                return role
            log.info("Bound muted role %s no longer exists in guild %s", binding, server.id)

        role = await self._caller.fetch(
            "find role", server.id, lambda: server.find_role_by_name(self.role_name), default=None
        )
        if role is None and create:
            role = await self._caller.fetch(
                "create role",
                server.id,
                lambda: server.create_role(self.role_name, REASONS["role_create"]),
                default=None,
            )
            if role is not None:
                log.info("Created %s role in guild %s", self.role_name, server.id)
                if self._stats is not None:
                    self._stats.roles_created += 1
        if role is not None and role.id != binding:
            await self._safe_bind(server.id, role.id)
        return role

    def is_muted_role(self, guild_id: int, role: RoleRef) -> bool:
        bound = self._bindings.cached_role_id(guild_id, self.purpose)
        return role.id == bound or role.name == self.role_name

    def holds_muted_role(self, guild_id: int, roles: Iterable[RoleRef]) -> bool:
        return any(self.is_muted_role(guild_id, r) for r in roles)

    async def _safe_binding(self, guild_id: int) -> Optional[int]:
        try:
            binding = await self._bindings.get_binding(guild_id, self.purpose)
        except aiosqlite.Error as e:
            log.warning("Could not read role binding for guild %s: %s", guild_id, e)
            return None
        return binding.role_id if binding else None

    async def _safe_bind(self, guild_id: int, role_id: int) -> None:
        try:
            await self._bindings.bind(guild_id, self.purpose, role_id)
        except aiosqlite.Error as e:
            log.warning("Could not persist role binding for guild %s: %s", guild_id, e)
