from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional

import aiosqlite

from ..models import ModerationSnapshot
from .base import BaseService

_SNAPSHOT_KEY = "snapshot"


class SnapshotStore(BaseService[Dict[str, Any]]):
    """Durable home of the canonical moderation snapshot.

    There is exactly one row. ``replace`` overwrites it with a single upsert,
    so a reader either sees the previous snapshot or the new one in full.
    """

    def __init__(self, sqlite_path: str, cache_ttl_seconds: int = 300) -> None:
        super().__init__(sqlite_path, cache_ttl_seconds=cache_ttl_seconds)

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS moderation_snapshot (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                updated_at INTEGER NOT NULL,
                payload_json TEXT NOT NULL
            )
            """
        )

    def _from_row(self, row: aiosqlite.Row) -> Dict[str, Any]:
        return json.loads(row["payload_json"])

    @property
    def _get_query(self) -> str:
        return "SELECT payload_json FROM moderation_snapshot WHERE id = 1"

    async def exists(self) -> bool:
        async with aiosqlite.connect(self._path) as db:
            async with db.execute("SELECT 1 FROM moderation_snapshot WHERE id = 1") as cur:
                return await cur.fetchone() is not None

    async def load(self) -> ModerationSnapshot:
        payload = await self._fetch_one(_SNAPSHOT_KEY, ())
        if payload is None:
            return ModerationSnapshot.empty()
        return ModerationSnapshot.from_payload(payload)

    async def replace(self, snapshot: ModerationSnapshot) -> int:
        updated_at = int(time.time())
        payload_json = json.dumps(snapshot.to_payload(), separators=(",", ":"), sort_keys=True)
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                INSERT INTO moderation_snapshot (id, updated_at, payload_json) VALUES (1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET updated_at = excluded.updated_at, payload_json = excluded.payload_json
                """,
                (updated_at, payload_json),
            )
            await db.commit()
        self._cache.set(_SNAPSHOT_KEY, json.loads(payload_json))
        return updated_at

    async def updated_at(self) -> Optional[int]:
        async with aiosqlite.connect(self._path) as db:
            async with db.execute("SELECT updated_at FROM moderation_snapshot WHERE id = 1") as cur:
                row = await cur.fetchone()
        return int(row[0]) if row else None
