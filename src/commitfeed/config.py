"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (COMMITFEED__GITHUB__TOKEN=ghp_...)
  2. commitfeed.yaml        (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional. Without a GitHub token the server still starts,
but every refresh fails with CLIENT_NOT_INITIALIZED and the feed stays empty.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


def _find_config_file() -> str | None:
    """Return the path of the first commitfeed.yaml found, or None."""
    candidates = [
        Path("commitfeed.yaml"),
        Path(platformdirs.user_config_dir("commitfeed")) / "commitfeed.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    allowed_origins: list[str] = []


class GitHubSettings(BaseModel):
    token: SecretStr | None = None
    api_url: str = "https://api.github.com"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    # Incremental search fetches are small; a full history scan walks every repo.
    fetch_timeout_seconds: float = Field(default=120.0, gt=0)
    full_fetch_timeout_seconds: float = Field(default=600.0, gt=0)
    version_repo: str | None = None  # "owner/name" used by /api/version


class RefreshSettings(BaseModel):
    interval_minutes: float = Field(default=5.0, gt=0)
    stale_after_minutes: float = Field(default=15.0, gt=0)


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: COMMITFEED__SERVER__PORT=9090
        env_prefix="COMMITFEED__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    github: GitHubSettings = GitHubSettings()
    refresh: RefreshSettings = RefreshSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
