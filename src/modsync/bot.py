from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import Settings
from .constants import CACHE_TTL_SECONDS
from .database import initialize_database
from .error_handlers import setup_error_handlers
from .migration import import_legacy_snapshot
from .services.role_binding_store import RoleBindingStore
from .services.snapshot_store import SnapshotStore
from .services.stats import RuntimeStats
from .services.status_reporter import StatusReporter
from .sync.engine import SyncEngine
from .sync.gateway import DiscordDirectory

log = logging.getLogger("modsync.bot")


class _CommandSyncManager:
    def __init__(self, bot: "ModSyncBot") -> None:
        self.bot = bot
        self._lock = asyncio.Lock()

    async def sync_startup(self) -> None:
        if self.bot.settings.sync_guild_id:
            await self.sync_guild(self.bot.settings.sync_guild_id)
        else:
            await self.sync_global()

    async def sync_global(self) -> None:
        async with self._lock:
            await self.bot.tree.sync()
            log.info("Commands synced globally")
            self._log_tree()

    async def sync_guild(self, guild_id: int) -> None:
        async with self._lock:
            guild = discord.Object(id=guild_id)
            self.bot.tree.copy_global_to(guild=guild)
            await self.bot.tree.sync(guild=guild)
            log.info("Commands synced to guild %d", guild_id)
            self._log_tree()

    def _log_tree(self) -> None:
        cmds = self.bot.tree.get_commands()
        log.info("Tree commands loaded: %d", len(cmds))
        for c in cmds:
            log.info(" - /%s", c.name)


class ModSyncBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.members = True
        intents.moderation = True
        intents.message_content = False

        log.info("INTENTS: guilds=%s members=%s moderation=%s", intents.guilds, intents.members, intents.moderation)

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions.none(),
            help_command=None,
        )

        self.settings = settings
        self.stats = RuntimeStats()

        cache_ttl = settings.cache_default_ttl_seconds or CACHE_TTL_SECONDS
        self.snapshot_store = SnapshotStore(settings.sqlite_path, cache_ttl)
        self.role_binding_store = RoleBindingStore(settings.sqlite_path, cache_ttl)

        self.status_reporter = StatusReporter(self, settings.status_channel_id)
        self.engine = SyncEngine(
            settings,
            DiscordDirectory(self),
            self.snapshot_store,
            self.role_binding_store,
            self.status_reporter,
            stats=self.stats,
        )
        self._sync_mgr = _CommandSyncManager(self)

    async def setup_hook(self) -> None:
        await initialize_database(self.settings.sqlite_path, [self.snapshot_store, self.role_binding_store])
        if await import_legacy_snapshot(self.snapshot_store, self.settings.legacy_sync_file):
            log.info("Legacy sync file %s imported", self.settings.legacy_sync_file)

        await self.engine.start()
        await setup_error_handlers(self)

        from .cogs.operator import OperatorCog
        from .cogs.sync_events import SyncEventsCog

        await self.add_cog(SyncEventsCog(self))
        await self.add_cog(OperatorCog(self))

        await self._sync_mgr.sync_startup()
        log.info("Command sync complete")

    async def close(self) -> None:
        try:
            await self.engine.stop()
        finally:
            await super().close()
