"""
Per-server call safety for sync sweeps.

Every mutation or fetch against a single guild goes through ``SafeCaller`` so
one unresponsive or unauthorized guild cannot stall or abort a sweep.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import discord

from ..errors import ServerCallError
from .stats import RuntimeStats

log = logging.getLogger("modsync.safe_calls")

T = TypeVar("T")

# Failures that only affect the guild being called.
BENIGN_ERRORS = (discord.HTTPException, asyncio.TimeoutError, ServerCallError)


class SafeCaller:
    """Bounded, retrying wrapper for Discord API calls with 429 handling."""

    def __init__(
        self,
        *,
        call_timeout: float = 15.0,
        fetch_timeout: float = 120.0,
        max_retries: int = 3,
        stats: Optional[RuntimeStats] = None,
    ) -> None:
        self.call_timeout = float(call_timeout)
        self.fetch_timeout = float(fetch_timeout)
        self.max_retries = max(1, int(max_retries))
        self._stats = stats

    async def attempt(self, label: str, guild_id: int, fn: Callable[[], Awaitable[object]]) -> bool:
        """Run a mutation. Returns True if it completed, False if it failed benignly."""
        try:
            await self._execute(fn, self.call_timeout)
            return True
        except BENIGN_ERRORS as e:
            self._record_failure(label, guild_id, e)
            return False

    async def fetch(
        self,
        label: str,
        guild_id: int,
        fn: Callable[[], Awaitable[T]],
        *,
        default: T,
        bulk: bool = False,
    ) -> T:
        """Run a read. Returns ``default`` on benign failure."""
        try:
            return await self._execute(fn, self.fetch_timeout if bulk else self.call_timeout)
        except BENIGN_ERRORS as e:
            self._record_failure(label, guild_id, e)
            return default

    async def fetch_or_raise(self, label: str, guild_id: int, fn: Callable[[], Awaitable[T]]) -> T:
        """Run a bulk read and surface failure as ``ServerCallError``."""
        try:
            return await self._execute(fn, self.fetch_timeout)
        except ServerCallError:
            raise
        except BENIGN_ERRORS as e:
            raise ServerCallError(guild_id, label, _describe(e)) from e

    async def _execute(self, fn: Callable[[], Awaitable[T]], timeout: float) -> T:
        for attempt in range(self.max_retries):
            try:
                return await asyncio.wait_for(fn(), timeout=timeout)
            except discord.HTTPException as e:
                if e.status == 429 and attempt < self.max_retries - 1:
                    retry_after = _retry_after(e)
                    log.warning("Rate limited, waiting %.2fs (attempt %d/%d)", retry_after, attempt + 1, self.max_retries)
                    await asyncio.sleep(retry_after)
                    continue
                raise
        raise RuntimeError("unreachable")

    def _record_failure(self, label: str, guild_id: int, error: BaseException) -> None:
        if self._stats is not None:
            self._stats.server_call_failures += 1
        if isinstance(error, (discord.NotFound, discord.Forbidden, ServerCallError)):
            log.debug("%s skipped on guild %s: %s", label, guild_id, _describe(error))
        else:
            log.warning("%s failed on guild %s: %s", label, guild_id, _describe(error))


def _retry_after(e: discord.HTTPException) -> float:
    headers = getattr(getattr(e, "response", None), "headers", None) or {}
    try:
        return max(0.0, float(headers.get("Retry-After", 1.0)))
    except (TypeError, ValueError):
        return 1.0


def _describe(e: BaseException) -> str:
    if isinstance(e, asyncio.TimeoutError):
        return "timed out"
    return f"{type(e).__name__}: {e}"
