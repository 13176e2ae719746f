from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..constants import COLORS
from ..models import ModerationRecord
from ..services.discord_safety import safe_defer, safe_send

log = logging.getLogger("modsync.cogs.operator")


def _format_duration(seconds: int) -> str:
    seconds = max(0, int(seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes}m {secs}s"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def record_embed(record: ModerationRecord, display: str) -> discord.Embed:
    embed = discord.Embed(title=f"Canonical state for {display}", color=COLORS["muted"])
    embed.add_field(name="Banned", value="yes" if record.banned else "no", inline=True)
    if record.timeout_until is not None:
        embed.add_field(name="Timed out until", value=discord.utils.format_dt(record.timeout_until, "F"), inline=True)
    else:
        embed.add_field(name="Timed out until", value="—", inline=True)
    if record.mute_origin is not None:
        embed.add_field(
            name="Muted",
            value=f"{'yes' if record.muted else 'no'} (origin `{record.mute_origin}`)",
            inline=False,
        )
    else:
        embed.add_field(name="Muted", value="no record", inline=False)
    return embed


class OperatorCog(commands.Cog):
    """Slash commands for inspecting and nudging the sync engine."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @property
    def engine(self):
        return self.bot.engine  # type: ignore[attr-defined]

    modsync = app_commands.Group(
        name="modsync",
        description="Cross-server moderation sync.",
        default_permissions=discord.Permissions(moderate_members=True),
        guild_only=True,
    )

    @modsync.command(name="status", description="Show sync status, or one user's canonical record.")
    @app_commands.describe(user="User to look up")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def status(self, interaction: discord.Interaction, user: Optional[discord.User] = None) -> None:
        if user is not None:
            record = self.engine.state.snapshot.record(user.id)
            await safe_send(interaction, embed=record_embed(record, f"{user} ({user.id})"))
            return

        engine = self.engine
        s = engine.stats
        snap = engine.state.snapshot
        lines = [
            f"• Uptime: **{_format_duration(s.uptime_seconds())}**",
            f"• Servers: **{len(engine.directory.servers())}**",
            f"• Tracked users: **{len(snap.known_users())}** with **{sum(1 for b in snap.bans.values() if b)}** bans, "
            f"**{len(snap.timeouts)}** timeouts, **{sum(1 for m in snap.mutes.values() if m.muted)}** mutes",
            f"• Queue size: **{engine.dispatcher.size()}**",
            f"• Events received/discarded/failed: **{s.events_received}/{s.events_discarded}/{s.events_failed}**",
            f"• Mutations applied: **{s.mutations()}** (mute reverts: **{s.mute_reverts}**)",
            f"• Server call failures: **{s.server_call_failures}**",
            f"• Passes completed: **{s.passes_completed}** (scheduler {'running' if engine.reconciler.running else 'stopped'})",
        ]
        report = engine.reconciler.last_report
        if report is not None:
            lines.append(f"• Last pass: {report.summary()}")
        written_at = await self.bot.snapshot_store.updated_at()  # type: ignore[attr-defined]
        if written_at is not None:
            lines.append(f"• Snapshot last written: <t:{written_at}:R>")
        embed = discord.Embed(title="ModSync status", description="\n".join(lines), color=COLORS["info"])
        await safe_send(interaction, embed=embed)

    @modsync.command(name="reconcile", description="Run a reconciliation pass now.")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def reconcile(self, interaction: discord.Interaction) -> None:
        await safe_defer(interaction)
        log.info("Manual reconciliation requested by %s in guild %s", interaction.user, interaction.guild_id)
        report = await self.engine.reconciler.run_pass()
        await safe_send(interaction, report.summary())
