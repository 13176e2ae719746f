from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class RuntimeStats:
    started_at: float = field(default_factory=time.time)
    events_received: int = 0
    events_discarded: int = 0
    events_failed: int = 0
    bans_applied: int = 0
    unbans_applied: int = 0
    timeouts_applied: int = 0
    timeouts_cleared: int = 0
    roles_added: int = 0
    roles_removed: int = 0
    roles_created: int = 0
    mute_reverts: int = 0
    server_call_failures: int = 0
    passes_completed: int = 0
    persistence_failures: int = 0

    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)

    def mutations(self) -> int:
        return (
            self.bans_applied
            + self.unbans_applied
            + self.timeouts_applied
            + self.timeouts_cleared
            + self.roles_added
            + self.roles_removed
        )
