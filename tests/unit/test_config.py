"""Unit tests for settings loading and defaults."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from commitfeed.config import GitHubSettings, RefreshSettings, Settings


class TestDefaults:
    def test_refresh_defaults(self) -> None:
        settings = RefreshSettings()
        assert settings.interval_minutes == 5
        assert settings.stale_after_minutes == 15

    def test_github_defaults(self) -> None:
        settings = GitHubSettings()
        assert settings.token is None
        assert settings.api_url == "https://api.github.com"
        assert settings.request_timeout_seconds >= 30
        assert settings.full_fetch_timeout_seconds > settings.fetch_timeout_seconds

    def test_token_is_not_leaked_in_repr(self) -> None:
        settings = GitHubSettings(token="ghp_supersecret")
        assert "ghp_supersecret" not in repr(settings)
        assert settings.token is not None
        assert settings.token.get_secret_value() == "ghp_supersecret"


class TestValidation:
    @pytest.mark.parametrize("field", ["interval_minutes", "stale_after_minutes"])
    def test_non_positive_intervals_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            RefreshSettings(**{field: 0})


class TestEnvironment:
    def test_nested_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMMITFEED__REFRESH__INTERVAL_MINUTES", "1")
        monkeypatch.setenv("COMMITFEED__GITHUB__TOKEN", "ghp_from_env")
        monkeypatch.setenv("COMMITFEED__SERVER__PORT", "9090")

        settings = Settings()

        assert settings.refresh.interval_minutes == 1
        assert settings.server.port == 9090
        assert settings.github.token is not None
        assert settings.github.token.get_secret_value() == "ghp_from_env"

    def test_init_args_beat_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("COMMITFEED__LOGGING__LEVEL", "ERROR")
        settings = Settings(logging={"level": "DEBUG"})
        assert settings.logging.level == "DEBUG"
