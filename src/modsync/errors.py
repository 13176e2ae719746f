from __future__ import annotations


class ModSyncError(Exception):
    """Base class for ModSync errors."""


class ServerCallError(ModSyncError):
    """A benign per-server failure (absent member, missing permission, already in state)."""

    def __init__(self, guild_id: int, operation: str, detail: str = "") -> None:
        self.guild_id = guild_id
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed on guild {guild_id}: {detail or 'unknown error'}")


class PersistenceError(ModSyncError):
    """The canonical snapshot could not be written to durable storage."""
