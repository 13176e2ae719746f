"""One-shot import of the JSON snapshot written by earlier deployments."""
from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import ModerationSnapshot, MuteState, from_epoch_ms
from .services.snapshot_store import SnapshotStore

log = logging.getLogger("modsync.migration")


def parse_legacy_payload(raw: dict) -> ModerationSnapshot:
    """Convert ``{bans, timeouts, mutedRoles}`` into a snapshot.

    Legacy timeouts are epoch milliseconds or null; null entries are dropped.
    """
    snap = ModerationSnapshot.empty()
    for uid, banned in (raw.get("bans") or {}).items():
        if banned:
            snap.bans[int(uid)] = True
    for uid, ms in (raw.get("timeouts") or {}).items():
        if ms:
            snap.timeouts[int(uid)] = from_epoch_ms(ms)
    for uid, entry in (raw.get("mutedRoles") or {}).items():
        origin = entry.get("originGuildId")
        if origin is None:
            log.warning("Skipping legacy mute entry for %s without an origin guild", uid)
            continue
        snap.mutes[int(uid)] = MuteState(muted=bool(entry.get("muted")), origin_guild_id=int(origin))
    return snap


async def import_legacy_snapshot(store: SnapshotStore, path: str | Path) -> bool:
    """Import ``path`` into ``store`` if the store has never been written.

    Returns True when a snapshot was imported. The source file is renamed to
    ``<name>.migrated`` so the import never runs twice.
    """
    source = Path(path)
    if not source.is_file():
        return False
    if await store.exists():
        log.info("Legacy file %s ignored; snapshot store already initialized", source)
        return False

    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.error("Could not read legacy sync file %s: %s", source, e)
        return False

    snapshot = parse_legacy_payload(raw)
    await store.replace(snapshot)
    source.rename(source.with_name(source.name + ".migrated"))
    log.info(
        "Imported legacy snapshot: bans=%d timeouts=%d mutes=%d",
        len(snapshot.bans),
        len(snapshot.timeouts),
        len(snapshot.mutes),
    )
    return True
