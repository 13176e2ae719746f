"""Replication and reconciliation engine.

- guard: self-write echo suppression
- state: canonical snapshot, per-user locks, commit/rollback
- bans / timeouts / mutes: one replicator per moderation dimension
- dispatcher: typed event queue routed to replicators
- reconciler: periodic full scan that heals drift
- gateway: discord.py adapters for the server protocol
"""
from __future__ import annotations

from .engine import SyncEngine
from .events import BanAdded, BanRemoved, MemberUpdated, ServerJoined, SessionReady

__all__ = [
    "SyncEngine",
    "BanAdded",
    "BanRemoved",
    "MemberUpdated",
    "ServerJoined",
    "SessionReady",
]
