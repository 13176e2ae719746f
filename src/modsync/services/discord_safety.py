from __future__ import annotations

import logging

import discord

log = logging.getLogger("modsync.discord_safety")


async def safe_defer(interaction: discord.Interaction, *, ephemeral: bool = True, thinking: bool = True) -> bool:
    try:
        if interaction.response.is_done():
            return True
        await interaction.response.defer(ephemeral=ephemeral, thinking=thinking)
        return True
    except (discord.NotFound, discord.HTTPException):
        return interaction.response.is_done()
    except Exception:
        log.exception("safe_defer failed")
        return interaction.response.is_done()


async def safe_send(
    interaction: discord.Interaction,
    content: str | None = None,
    *,
    embed: discord.Embed | None = None,
    ephemeral: bool = True,
) -> bool:
    kwargs = {"content": content, "ephemeral": ephemeral}
    if embed is not None:
        kwargs["embed"] = embed
    try:
        if not interaction.response.is_done():
            await interaction.response.send_message(**kwargs)
            return True
        await interaction.followup.send(**kwargs)
        return True
    except (discord.NotFound, discord.HTTPException):
        return False
    except Exception:
        log.exception("safe_send failed")
        return False
