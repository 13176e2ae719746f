from __future__ import annotations

import logging
from typing import Iterable

import aiosqlite

from .services.base import BaseService

log = logging.getLogger("modsync.database")


async def initialize_database(sqlite_path: str, stores: Iterable[BaseService]) -> None:
    """Apply SQLite pragmas and create every store's schema."""
    try:
        async with aiosqlite.connect(sqlite_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("PRAGMA synchronous=FULL")
            await db.execute("PRAGMA foreign_keys=ON")
            await db.commit()

        log.info("Applied SQLite pragmas to %s", sqlite_path)

        for store in stores:
            await store.init()
            log.info("Initialized %s", store.__class__.__name__)

        log.info("Database initialization completed")

    except Exception as e:
        log.error("Failed to initialize database: %s", e)
        raise
