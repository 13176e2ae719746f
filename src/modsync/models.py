"""Canonical moderation state and the per-server views the engine compares against it."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class RoleRef:
    id: int
    name: str


@dataclass(frozen=True)
class MemberState:
    """Live moderation-relevant view of one member on one server."""

    user_id: int
    guild_id: int
    timeout_until: Optional[datetime] = None
    roles: frozenset[RoleRef] = frozenset()
    # Underlying discord.Member, if any; adapters use it for mutations.
    handle: Any = field(default=None, compare=False, repr=False)

    def has_role(self, role_id: int) -> bool:
        return any(r.id == role_id for r in self.roles)


@dataclass
class MuteState:
    muted: bool
    origin_guild_id: int


@dataclass(frozen=True)
class ModerationRecord:
    user_id: int
    banned: bool
    timeout_until: Optional[datetime]
    muted: bool
    mute_origin: Optional[int]


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def normalize_expiry(expiry: Optional[datetime], now: datetime) -> Optional[datetime]:
    """An expiry at or before ``now`` means no active timeout."""
    if expiry is None or expiry <= now:
        return None
    return expiry


@dataclass
class ModerationSnapshot:
    bans: dict[int, bool] = field(default_factory=dict)
    timeouts: dict[int, datetime] = field(default_factory=dict)
    mutes: dict[int, MuteState] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ModerationSnapshot":
        return cls()

    def is_empty(self) -> bool:
        return not (self.bans or self.timeouts or self.mutes)

    def copy(self) -> "ModerationSnapshot":
        return ModerationSnapshot(
            bans=dict(self.bans),
            timeouts=dict(self.timeouts),
            mutes={uid: MuteState(m.muted, m.origin_guild_id) for uid, m in self.mutes.items()},
        )

    def is_banned(self, user_id: int) -> bool:
        return bool(self.bans.get(user_id, False))

    def known_users(self) -> set[int]:
        return set(self.bans) | set(self.timeouts) | set(self.mutes)

    def record(self, user_id: int) -> ModerationRecord:
        mute = self.mutes.get(user_id)
        return ModerationRecord(
            user_id=user_id,
            banned=self.is_banned(user_id),
            timeout_until=self.timeouts.get(user_id),
            muted=bool(mute and mute.muted),
            mute_origin=mute.origin_guild_id if mute else None,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "bans": {str(uid): True for uid, banned in self.bans.items() if banned},
            "timeouts": {str(uid): to_epoch_ms(exp) for uid, exp in self.timeouts.items()},
            "mutes": {
                str(uid): {"muted": m.muted, "origin_guild_id": str(m.origin_guild_id)}
                for uid, m in self.mutes.items()
            },
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ModerationSnapshot":
        snap = cls()
        for uid, banned in (payload.get("bans") or {}).items():
            if banned:
                snap.bans[int(uid)] = True
        for uid, ms in (payload.get("timeouts") or {}).items():
            if ms is not None:
                snap.timeouts[int(uid)] = from_epoch_ms(ms)
        for uid, raw in (payload.get("mutes") or {}).items():
            snap.mutes[int(uid)] = MuteState(
                muted=bool(raw.get("muted", False)),
                origin_guild_id=int(raw["origin_guild_id"]),
            )
        return snap
