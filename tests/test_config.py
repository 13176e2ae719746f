"""Tests for environment-driven settings."""

import pytest

from modsync.config import load_settings

ENV_VARS = (
    "DISCORD_TOKEN",
    "SYNC_GUILD_ID",
    "SQLITE_PATH",
    "LOG_LEVEL",
    "MUTED_ROLE_NAME",
    "STATUS_CHANNEL_ID",
    "RECONCILE_INTERVAL_SECONDS",
    "RECONCILE_ON_READY",
    "CALL_TIMEOUT_SECONDS",
    "CALL_MAX_RETRIES",
    "TIMEOUT_TOLERANCE_SECONDS",
    "EVENT_QUEUE_MAX_SIZE",
    "LEGACY_SYNC_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadSettings:
    def test_token_is_required(self):
        with pytest.raises(RuntimeError):
            load_settings()

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("DISCORD_TOKEN", "abc")

        settings = load_settings()

        assert settings.token == "abc"
        assert settings.sync_guild_id == 0
        assert settings.muted_role_name == "Muted"
        assert settings.status_channel_id == 0
        assert settings.reconcile_interval_seconds == 60
        assert settings.reconcile_on_ready is True
        assert settings.legacy_sync_file == "data/syncData.json"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("DISCORD_TOKEN", "abc")
        monkeypatch.setenv("STATUS_CHANNEL_ID", "123")
        monkeypatch.setenv("MUTED_ROLE_NAME", "Silenced")
        monkeypatch.setenv("RECONCILE_INTERVAL_SECONDS", "120")
        monkeypatch.setenv("RECONCILE_ON_READY", "no")

        settings = load_settings()

        assert settings.status_channel_id == 123
        assert settings.muted_role_name == "Silenced"
        assert settings.reconcile_interval_seconds == 120
        assert settings.reconcile_on_ready is False

    def test_invalid_and_out_of_range_values(self, monkeypatch):
        monkeypatch.setenv("DISCORD_TOKEN", "abc")
        monkeypatch.setenv("STATUS_CHANNEL_ID", "not-a-number")
        monkeypatch.setenv("RECONCILE_INTERVAL_SECONDS", "1")
        monkeypatch.setenv("CALL_MAX_RETRIES", "0")

        settings = load_settings()

        assert settings.status_channel_id == 0
        assert settings.reconcile_interval_seconds == 5
        assert settings.call_max_retries == 1
