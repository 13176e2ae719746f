from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import aiosqlite

from .base import BaseService


@dataclass(frozen=True)
class RoleBinding:
    guild_id: int
    purpose: str
    role_id: int
    bound_at: int


class RoleBindingStore(BaseService[RoleBinding]):
    """Per-guild role identity keyed by purpose (e.g. which role is "muted").

    Bound role ids are also mirrored in memory without expiry so that event
    handlers can match roles synchronously.
    """

    def __init__(self, sqlite_path: str, cache_ttl_seconds: int = 300) -> None:
        super().__init__(sqlite_path, cache_ttl_seconds)
        self._role_ids: dict[tuple[int, str], int] = {}

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS role_bindings (
                guild_id INTEGER NOT NULL,
                purpose TEXT NOT NULL,
                role_id INTEGER NOT NULL,
                bound_at INTEGER NOT NULL,
                PRIMARY KEY (guild_id, purpose)
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> RoleBinding:
        return RoleBinding(
            int(row["guild_id"]),
            str(row["purpose"]),
            int(row["role_id"]),
            int(row["bound_at"]),
        )

    @property
    def _get_query(self) -> str:
        return "SELECT guild_id, purpose, role_id, bound_at FROM role_bindings WHERE guild_id = ? AND purpose = ?"

    async def load_all(self) -> int:
        """Warm the in-memory mirror. Returns the number of bindings."""
        async with aiosqlite.connect(self._path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("SELECT guild_id, purpose, role_id, bound_at FROM role_bindings") as cur:
                rows = await cur.fetchall()
        for row in rows:
            binding = self._from_row(row)
            self._role_ids[(binding.guild_id, binding.purpose)] = binding.role_id
        return len(rows)

    async def get_binding(self, guild_id: int, purpose: str) -> Optional[RoleBinding]:
        binding = await self._fetch_one((int(guild_id), purpose), (int(guild_id), purpose))
        if binding is not None:
            self._role_ids[(binding.guild_id, purpose)] = binding.role_id
        return binding

    def cached_role_id(self, guild_id: int, purpose: str) -> Optional[int]:
        return self._role_ids.get((int(guild_id), purpose))

    async def bind(self, guild_id: int, purpose: str, role_id: int) -> RoleBinding:
        binding = RoleBinding(int(guild_id), purpose, int(role_id), int(time.time()))
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                INSERT INTO role_bindings (guild_id, purpose, role_id, bound_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(guild_id, purpose) DO UPDATE SET role_id = excluded.role_id, bound_at = excluded.bound_at
                """,
                (binding.guild_id, binding.purpose, binding.role_id, binding.bound_at),
            )
            await db.commit()
        self._cache.set((binding.guild_id, purpose), binding)
        self._role_ids[(binding.guild_id, purpose)] = binding.role_id
        return binding
