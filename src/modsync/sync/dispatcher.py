from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..errors import PersistenceError
from ..interfaces import ServerDirectory, StatusSink
from ..models import normalize_expiry
from ..services.stats import RuntimeStats
from .bans import BanReplicator
from .events import (
    BanAdded,
    BanRemoved,
    MemberUpdated,
    ServerJoined,
    SessionReady,
    SyncEvent,
    event_user_id,
)
from .mutes import MuteReplicator
from .reconciler import ReconciliationScheduler
from .state import SyncState
from .timeouts import TimeoutReplicator

log = logging.getLogger("modsync.dispatcher")


class EventDispatcher:
    """Single inbound queue of typed change events, processed one at a time."""

    def __init__(
        self,
        state: SyncState,
        directory: ServerDirectory,
        reporter: StatusSink,
        stats: RuntimeStats,
        bans: BanReplicator,
        timeouts: TimeoutReplicator,
        mutes: MuteReplicator,
        reconciler: ReconciliationScheduler,
        *,
        max_queue_size: int = 10_000,
        on_ready: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.state = state
        self.directory = directory
        self.reporter = reporter
        self.stats = stats
        self.bans = bans
        self.timeouts = timeouts
        self.mutes = mutes
        self.reconciler = reconciler
        self._on_ready = on_ready
        self._q: asyncio.Queue[SyncEvent] = asyncio.Queue(maxsize=max_queue_size)
        self._runner: Optional[asyncio.Task[None]] = None
        self._handlers = {
            BanAdded: self._on_ban_added,
            BanRemoved: self._on_ban_removed,
            MemberUpdated: self._on_member_updated,
            ServerJoined: self._on_server_joined,
            SessionReady: self._on_session_ready,
        }

    def start(self) -> None:
        if self._runner and not self._runner.done():
            return
        self._runner = asyncio.create_task(self._run(), name="modsync-dispatcher")
        log.info("EventDispatcher started (max_size=%s)", self._q.maxsize)

    async def stop(self) -> None:
        if self._runner:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None
        log.info("EventDispatcher stopped")

    def size(self) -> int:
        return self._q.qsize()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._q.join()

    def submit(self, event: SyncEvent) -> bool:
        """Queue an event. Returns False if it was discarded."""
        self.stats.events_received += 1
        user_id = event_user_id(event)
        if user_id is not None and self.state.guard.is_owned(user_id):
            self.stats.events_discarded += 1
            log.debug("Discarded self-caused %s for user %s", type(event).__name__, user_id)
            return False
        try:
            self._q.put_nowait(event)
        except asyncio.QueueFull:
            # Reconciliation heals whatever is dropped here.
            self.stats.events_discarded += 1
            log.warning("Event queue full; dropping %s", event)
            return False
        return True

    async def _run(self) -> None:
        while True:
            event = await self._q.get()
            try:
                await self.dispatch(event)
            except PersistenceError as e:
                self.stats.events_failed += 1
                self.stats.persistence_failures += 1
                log.critical("Event %s not applied: %s", event, e)
                await self.reporter.emit(f"🚨 Moderation snapshot could not be saved while handling {type(event).__name__}: {e}")
            except Exception:
                self.stats.events_failed += 1
                log.exception("Event handling failed: %s", event)
            finally:
                self._q.task_done()

    async def dispatch(self, event: SyncEvent) -> None:
        handler = self._handlers.get(type(event))
        if handler is None:
            log.warning("No handler for event %r", event)
            return
        await handler(event)

    async def _on_ban_added(self, event: BanAdded) -> None:
        if self.state.snapshot.is_banned(event.user_id):
            return
        log.info("User %s banned in guild %s; syncing ban across all guilds", event.user_id, event.guild_id)
        await self.bans.sync_ban(event.user_id, True, source_guild_id=event.guild_id)

    async def _on_ban_removed(self, event: BanRemoved) -> None:
        if not self.state.snapshot.is_banned(event.user_id):
            return
        log.info("User %s unbanned in guild %s; syncing unban across all guilds", event.user_id, event.guild_id)
        await self.bans.sync_ban(event.user_id, False, source_guild_id=event.guild_id)

    async def _on_member_updated(self, event: MemberUpdated) -> None:
        if self.state.guard.is_owned(event.user_id):
            self.stats.events_discarded += 1
            return

        if not self.timeouts.same_expiry(event.old_timeout, event.new_timeout):
            new_expiry = normalize_expiry(event.new_timeout, self.state.now())
            if self.timeouts.same_expiry(self.timeouts.canonical(event.user_id), new_expiry):
                log.debug("Timeout update for user %s already matches canonical state", event.user_id)
            else:
                log.info("Timeout updated for user %s in guild %s; syncing", event.user_id, event.guild_id)
                await self.timeouts.sync_timeout(event.user_id, new_expiry, source_guild_id=event.guild_id)

        had_role = self.mutes.roles.holds_muted_role(event.guild_id, event.old_roles)
        has_role = self.mutes.roles.holds_muted_role(event.guild_id, event.new_roles)
        if had_role != has_role:
            log.info(
                "Muted role %s user %s in guild %s",
                "added to" if has_role else "removed from",
                event.user_id,
                event.guild_id,
            )
            await self.mutes.handle_local_change(event.guild_id, event.user_id, has_role)

    async def _on_server_joined(self, event: ServerJoined) -> None:
        server = self.directory.get(event.guild_id)
        if server is None:
            log.warning("Joined guild %s is not visible to the directory", event.guild_id)
            return
        log.info("Joined new guild %s; running catch-up sync", server.name)
        await self.reconciler.catch_up(server)

    async def _on_session_ready(self, event: SessionReady) -> None:
        if self._on_ready is not None:
            await self._on_ready()
