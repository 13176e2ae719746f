"""
Interface contracts between the sync engine and its collaborators.

The engine only talks to Discord, storage and the status channel through
these protocols, which keeps the replicators testable with in-memory fakes.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Protocol, Sequence, runtime_checkable

from .models import MemberState, ModerationSnapshot, RoleRef


@runtime_checkable
class ModerationServer(Protocol):
    """Per-guild moderation operations."""

    @property
    def id(self) -> int: ...

    @property
    def name(self) -> str: ...

    async def prime(self) -> None:
        """Populate the member cache."""
        ...

    async def list_bans(self) -> set[int]: ...

    async def is_banned(self, user_id: int) -> bool: ...

    async def add_ban(self, user_id: int, reason: str) -> None: ...

    async def remove_ban(self, user_id: int, reason: str) -> None: ...

    async def fetch_member(self, user_id: int) -> Optional[MemberState]: ...

    async def list_members(self) -> Sequence[MemberState]: ...

    async def set_timeout(self, member: MemberState, duration: Optional[timedelta], reason: str) -> None: ...

    async def get_role(self, role_id: int) -> Optional[RoleRef]: ...

    async def find_role_by_name(self, name: str) -> Optional[RoleRef]: ...

    async def create_role(self, name: str, reason: str) -> RoleRef: ...

    async def add_role(self, member: MemberState, role: RoleRef, reason: str) -> None: ...

    async def remove_role(self, member: MemberState, role: RoleRef, reason: str) -> None: ...


@runtime_checkable
class ServerDirectory(Protocol):
    """Enumerates the servers the bot is in, in a stable order."""

    def servers(self) -> Sequence[ModerationServer]: ...

    def get(self, guild_id: int) -> Optional[ModerationServer]: ...


@runtime_checkable
class SnapshotBackend(Protocol):
    async def load(self) -> ModerationSnapshot: ...

    async def replace(self, snapshot: ModerationSnapshot) -> int: ...


@runtime_checkable
class StatusSink(Protocol):
    """Best-effort human readable reporting. ``emit`` must never raise."""

    async def emit(self, text: str) -> None: ...
