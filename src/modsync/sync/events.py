"""Typed change notifications produced by the session layer."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from ..models import RoleRef


@dataclass(frozen=True)
class BanAdded:
    guild_id: int
    user_id: int


@dataclass(frozen=True)
class BanRemoved:
    guild_id: int
    user_id: int


@dataclass(frozen=True)
class MemberUpdated:
    guild_id: int
    user_id: int
    old_timeout: Optional[datetime] = None
    new_timeout: Optional[datetime] = None
    old_roles: frozenset[RoleRef] = field(default_factory=frozenset)
    new_roles: frozenset[RoleRef] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ServerJoined:
    guild_id: int


@dataclass(frozen=True)
class SessionReady:
    pass


SyncEvent = Union[BanAdded, BanRemoved, MemberUpdated, ServerJoined, SessionReady]


def event_user_id(event: SyncEvent) -> Optional[int]:
    return getattr(event, "user_id", None)
