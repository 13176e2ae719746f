from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..interfaces import ModerationServer, ServerDirectory, StatusSink
from ..services.safe_calls import SafeCaller
from ..services.stats import RuntimeStats
from .state import SyncState

log = logging.getLogger("modsync.replicator")


class Replicator:
    """Shared plumbing for the per-dimension replicators."""

    def __init__(
        self,
        state: SyncState,
        directory: ServerDirectory,
        caller: SafeCaller,
        reporter: StatusSink,
        stats: RuntimeStats,
    ) -> None:
        self.state = state
        self.directory = directory
        self.caller = caller
        self.reporter = reporter
        self.stats = stats

    def targets(self, exclude: Optional[int] = None) -> list[ModerationServer]:
        return [s for s in self.directory.servers() if s.id != exclude]

    async def report_sweep(self, headline: str, changed: Sequence[ModerationServer]) -> None:
        if not changed:
            return
        names = ", ".join(f"{s.name} (`{s.id}`)" for s in changed)
        await self.reporter.emit(f"{headline} → {names}")
