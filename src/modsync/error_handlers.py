from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .constants import COLORS
from .services.discord_safety import safe_send

log = logging.getLogger("modsync.error_handlers")


def error_embed(message: str) -> discord.Embed:
    return discord.Embed(title="Error", description=message[:4000], color=COLORS["error"])


class ErrorHandler(commands.Cog):
    """Centralized slash-command error handling."""

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self._previous = bot.tree.on_error
        bot.tree.on_error = self.on_app_command_error

    async def cog_unload(self) -> None:
        self.bot.tree.on_error = self._previous

    async def on_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        if isinstance(error, app_commands.MissingPermissions):
            await safe_send(interaction, embed=error_embed("You need the Moderate Members permission for this."))
            return

        if isinstance(error, app_commands.CommandOnCooldown):
            await safe_send(interaction, embed=error_embed(f"This command is on cooldown. Try again in {error.retry_after:.1f}s"))
            return

        if isinstance(error, app_commands.BotMissingPermissions):
            await safe_send(interaction, embed=error_embed("The bot lacks required permissions to run this command."))
            return

        if isinstance(error, app_commands.NoPrivateMessage):
            await safe_send(interaction, embed=error_embed("This command only works inside a server."))
            return

        log.error("Unexpected error in app command %s", interaction.command, exc_info=error)
        await safe_send(interaction, embed=error_embed("Something went wrong running that command."))


async def setup_error_handlers(bot: commands.Bot) -> None:
    await bot.add_cog(ErrorHandler(bot))
