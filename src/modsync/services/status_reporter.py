from __future__ import annotations

import asyncio
import logging
from typing import Optional

import discord

from ..constants import MAX_MESSAGE_LENGTH

log = logging.getLogger("modsync.status_reporter")


class StatusReporter:
    """Posts sync summaries to one configured text channel.

    Reporting is best-effort: ``emit`` never raises and is a no-op when no
    channel is configured.
    """

    def __init__(self, bot: discord.Client, channel_id: int, send_timeout: float = 10.0) -> None:
        self.bot = bot
        self.channel_id = int(channel_id or 0)
        self._send_timeout = send_timeout
        self._warned_missing = False

    @property
    def enabled(self) -> bool:
        return self.channel_id != 0

    async def emit(self, text: str) -> None:
        if not self.enabled or not text:
            return
        try:
            channel = await self._get_channel()
            if channel is None:
                return
            for chunk in _chunks(text, MAX_MESSAGE_LENGTH):
                await asyncio.wait_for(
                    channel.send(chunk, allowed_mentions=discord.AllowedMentions.none()),
                    timeout=self._send_timeout,
                )
        except (discord.HTTPException, asyncio.TimeoutError) as e:
            log.warning("Status report failed: %s", e)
        except Exception:
            log.exception("Unexpected error while sending status report")

    async def _get_channel(self) -> Optional[discord.abc.Messageable]:
        ch = self.bot.get_channel(self.channel_id)
        if ch is None:
            try:
                ch = await self.bot.fetch_channel(self.channel_id)
            except discord.HTTPException:
                ch = None
        if not isinstance(ch, discord.abc.Messageable):
            if not self._warned_missing:
                log.warning("Status channel %s not found or not messageable; reports are dropped", self.channel_id)
                self._warned_missing = True
            return None
        return ch


def _chunks(text: str, size: int) -> list[str]:
    lines = text.splitlines() or [text]
    out: list[str] = []
    buf = ""
    for line in lines:
        while len(line) > size:
            if buf:
                out.append(buf)
                buf = ""
            out.append(line[:size])
            line = line[size:]
        if buf and len(buf) + 1 + len(line) > size:
            out.append(buf)
            buf = line
        else:
            buf = f"{buf}\n{line}" if buf else line
    if buf:
        out.append(buf)
    return out
