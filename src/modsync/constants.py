from __future__ import annotations

from datetime import timedelta
from typing import Final

# Discord limits
MAX_MESSAGE_LENGTH: Final[int] = 2000
MAX_TIMEOUT_DURATION: Final[timedelta] = timedelta(days=28)

# Bot configuration
DEFAULT_RECONCILE_INTERVAL_SECONDS: Final[int] = 60
DEFAULT_CALL_TIMEOUT_SECONDS: Final[int] = 15
DEFAULT_FETCH_TIMEOUT_SECONDS: Final[int] = 120
DEFAULT_TIMEOUT_TOLERANCE_SECONDS: Final[int] = 5
CACHE_TTL_SECONDS: Final[int] = 300

DEFAULT_MUTED_ROLE_NAME: Final[str] = "Muted"
MUTED_ROLE_PURPOSE: Final[str] = "muted"

# Audit log reasons
REASONS = {
    "ban": "Ban synced from another server.",
    "unban": "Unban synced from another server.",
    "timeout": "Timeout synced from another server.",
    "role_create": "Muted role created for synchronization.",
    "role_add": "Muted role synced from another server.",
    "role_remove": "Muted role removal synced from another server.",
}

COLORS = {
    "info": 0x3498DB,
    "error": 0xED4245,
    "muted": 0x4F545C,
}
