from __future__ import annotations

import os
from dataclasses import dataclass

from .constants import (
    CACHE_TTL_SECONDS,
    DEFAULT_CALL_TIMEOUT_SECONDS,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_MUTED_ROLE_NAME,
    DEFAULT_RECONCILE_INTERVAL_SECONDS,
    DEFAULT_TIMEOUT_TOLERANCE_SECONDS,
)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


@dataclass(frozen=True)
class Settings:
    token: str
    sync_guild_id: int
    sqlite_path: str
    log_level: str
    muted_role_name: str = DEFAULT_MUTED_ROLE_NAME
    # 0 disables the status reporter entirely.
    status_channel_id: int = 0
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS
    reconcile_on_ready: bool = True
    call_timeout_seconds: int = DEFAULT_CALL_TIMEOUT_SECONDS
    fetch_timeout_seconds: int = DEFAULT_FETCH_TIMEOUT_SECONDS
    call_max_retries: int = 3
    timeout_tolerance_seconds: int = DEFAULT_TIMEOUT_TOLERANCE_SECONDS
    event_queue_max_size: int = 10_000
    cache_default_ttl_seconds: int = CACHE_TTL_SECONDS
    legacy_sync_file: str = "data/syncData.json"


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")
    return Settings(
        token=token,
        sync_guild_id=_get_int("SYNC_GUILD_ID", 0),
        sqlite_path=_get_str("SQLITE_PATH", "modsync.sqlite3"),
        log_level=_get_str("LOG_LEVEL", "INFO"),
        muted_role_name=_get_str("MUTED_ROLE_NAME", DEFAULT_MUTED_ROLE_NAME),
        status_channel_id=_get_int("STATUS_CHANNEL_ID", 0),
        reconcile_interval_seconds=max(5, _get_int("RECONCILE_INTERVAL_SECONDS", DEFAULT_RECONCILE_INTERVAL_SECONDS)),
        reconcile_on_ready=_get_bool("RECONCILE_ON_READY", True),
        call_timeout_seconds=max(1, _get_int("CALL_TIMEOUT_SECONDS", DEFAULT_CALL_TIMEOUT_SECONDS)),
        fetch_timeout_seconds=max(1, _get_int("FETCH_TIMEOUT_SECONDS", DEFAULT_FETCH_TIMEOUT_SECONDS)),
        call_max_retries=max(1, _get_int("CALL_MAX_RETRIES", 3)),
        timeout_tolerance_seconds=max(0, _get_int("TIMEOUT_TOLERANCE_SECONDS", DEFAULT_TIMEOUT_TOLERANCE_SECONDS)),
        event_queue_max_size=max(1, _get_int("EVENT_QUEUE_MAX_SIZE", 10_000)),
        cache_default_ttl_seconds=_get_int("CACHE_DEFAULT_TTL_SECONDS", CACHE_TTL_SECONDS),
        legacy_sync_file=_get_str("LEGACY_SYNC_FILE", "data/syncData.json"),
    )
