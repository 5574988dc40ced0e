"""Leaderboard service configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from leaderboard.rotation.types import BoardRuntimeConfig
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class LeaderboardSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEADERBOARD_", env_file=".env", extra="ignore")

    database_path: str = Field(default="backend/data/leaderboard.db", min_length=1)
    log_dir: str = Field(default="backend/logs/leaderboard", min_length=1)
    cors_origins: list[str] = []
    # keys accepted by POST /update-leaderboard
    api_keys: list[str] = Field(min_length=1)
    snapshot_limit: int = Field(default=10, ge=1)
    published_only: bool = False
    rotation_interval_ms: int = Field(default=30_000, ge=1000)
    countdown_tick_ms: int = Field(default=200, ge=10)

    def board_runtime_config(self, *, rotation_enabled: bool = True) -> BoardRuntimeConfig:
        """Rotation settings for a display session."""
        return BoardRuntimeConfig(
            rotation_enabled=rotation_enabled,
            rotation_interval_ms=self.rotation_interval_ms,
            tick_ms=self.countdown_tick_ms,
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @field_validator("api_keys", mode="before")
    @classmethod
    def validate_api_keys(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
