"""ModSync: keeps bans, timeouts and the muted role consistent across guilds."""

__version__ = "1.0.0"
