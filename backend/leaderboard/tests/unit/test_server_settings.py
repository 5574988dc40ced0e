import pytest
from pydantic import ValidationError

from leaderboard.rotation.types import BoardRuntimeConfig
from leaderboard.server.settings import LeaderboardSettings


class TestLeaderboardSettings:
    def test_defaults(self, monkeypatch):
        for name in ("DATABASE_PATH", "LOG_DIR", "CORS_ORIGINS", "SNAPSHOT_LIMIT", "ROTATION_INTERVAL_MS"):
            monkeypatch.delenv(f"LEADERBOARD_{name}", raising=False)
        settings = LeaderboardSettings()
        assert settings.database_path == "backend/data/leaderboard.db"
        assert settings.log_dir == "backend/logs/leaderboard"
        assert settings.cors_origins == []
        assert settings.snapshot_limit == 10
        assert settings.rotation_interval_ms == 30_000
        assert not settings.published_only

    def test_api_keys_csv(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_API_KEYS", "key-a, key-b")
        settings = LeaderboardSettings()
        assert settings.api_keys == ["key-a", "key-b"]

    def test_api_keys_json_array(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_API_KEYS", '["key-a"]')
        settings = LeaderboardSettings()
        assert settings.api_keys == ["key-a"]

    def test_api_keys_required(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_API_KEYS", "[]")
        with pytest.raises(ValidationError, match="api_keys"):
            LeaderboardSettings()

    def test_cors_origins_csv(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_CORS_ORIGINS", "http://x.com,http://y.com")
        settings = LeaderboardSettings()
        assert settings.cors_origins == ["http://x.com", "http://y.com"]

    def test_snapshot_limit_override(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_SNAPSHOT_LIMIT", "25")
        settings = LeaderboardSettings()
        assert settings.snapshot_limit == 25

    def test_snapshot_limit_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_SNAPSHOT_LIMIT", "0")
        with pytest.raises(ValidationError, match="snapshot_limit"):
            LeaderboardSettings()

    def test_rotation_interval_floor(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_ROTATION_INTERVAL_MS", "500")
        with pytest.raises(ValidationError, match="rotation_interval_ms"):
            LeaderboardSettings()

    def test_board_runtime_config_uses_rotation_settings(self, monkeypatch):
        monkeypatch.setenv("LEADERBOARD_ROTATION_INTERVAL_MS", "45000")
        monkeypatch.setenv("LEADERBOARD_COUNTDOWN_TICK_MS", "250")
        settings = LeaderboardSettings()

        config = settings.board_runtime_config(rotation_enabled=False)

        assert config == BoardRuntimeConfig(rotation_enabled=False, rotation_interval_ms=45_000, tick_ms=250)
