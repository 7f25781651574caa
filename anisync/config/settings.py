"""AniSync Configuration Settings."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from enum import StrEnum
from functools import cached_property, lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from anisync.exceptions import UserNotFoundError
from anisync.utils.logging import _get_logger

__all__ = [
    "AniSyncConfig",
    "LogLevel",
    "UserConfig",
    "find_yaml_config_file",
    "get_config",
]

_log = _get_logger(__name__)

DEFAULT_ANIME_STUDIOS = [
    "Studio Ghibli",
    "Toei Animation",
    "Madhouse",
    "Bones",
    "Pierrot",
    "Sunrise",
    "Mappa",
    "Wit Studio",
    "A-1 Pictures",
    "Kyoto Animation",
    "Production I.G",
    "Shaft",
    "Trigger",
    "Ufotable",
    "Doga Kobo",
    "J.C.Staff",
    "White Fox",
    "CloverWorks",
    "Studio Deen",
    "Gonzo",
]


def get_data_path() -> Path:
    """Resolve the data directory from `AS_DATA_PATH`."""
    return Path(os.getenv("AS_DATA_PATH", "./data")).resolve()


def find_yaml_config_file() -> Path:
    """Find the YAML configuration file in the data path.

    Returns:
        Path: The path to an existing YAML configuration file or the default location.
    """
    data_path = get_data_path()

    for ext in ("yaml", "yml"):
        yaml_file = data_path / f"config.{ext}"
        if yaml_file.exists():
            _log.debug(f"Using YAML config file: {yaml_file.resolve()}")
            return yaml_file.resolve()
    return data_path / "config.yaml"


class BaseStrEnum(StrEnum):
    """String enumeration with case-insensitive lookup."""

    @classmethod
    def _missing_(cls, value: object) -> BaseStrEnum | None:
        value = value.lower() if isinstance(value, str) else value
        for member in cls:
            if member.lower() == value:
                return member
        return None

    def __repr__(self) -> str:
        return self.value

    def __str__(self) -> str:
        return repr(self)


class LogLevel(BaseStrEnum):
    """Logging levels accepted by the application logger.

    Note: SUCCESS is a custom level used by this application.
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class UserConfig(BaseModel):
    """Credentials and sync preferences for a single user."""

    mal_access_token: SecretStr | None = Field(
        default=None, description="MyAnimeList OAuth access token"
    )
    mal_token_expires_at: datetime | None = Field(
        default=None, description="Expiry of the MyAnimeList access token"
    )
    jellyfin_url: str | None = Field(
        default=None, description="Base URL of the Jellyfin server"
    )
    jellyfin_api_key: SecretStr | None = Field(
        default=None, description="Jellyfin API key"
    )
    jellyfin_user_id: str | None = Field(
        default=None, description="Jellyfin user id whose play state is read"
    )
    statuses: list[str] = Field(
        default_factory=lambda: [
            "watching",
            "completed",
            "on_hold",
            "dropped",
            "plan_to_watch",
        ],
        description="List status partitions to fetch, one request set each",
    )
    include_external_ids: bool = Field(
        default=True, description="Resolve AniDB and other ids during list syncs"
    )
    auto_sync: bool = Field(
        default=True, description="Include this user in scheduled sync batches"
    )
    library_max_items: int | None = Field(
        default=None, ge=1, description="Cap on library series processed per run"
    )

    @property
    def has_list_token(self) -> bool:
        return self.mal_access_token is not None and bool(
            self.mal_access_token.get_secret_value()
        )

    def is_token_expired(self, now: datetime | None = None) -> bool:
        """Check whether the list source token has passed its expiry.

        Args:
            now (datetime | None): Reference time, defaults to the current UTC time

        Returns:
            bool: True if an expiry is known and lies in the past
        """
        if self.mal_token_expires_at is None:
            return False
        expires_at = self.mal_token_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= (now or datetime.now(UTC))

    @property
    def has_library(self) -> bool:
        return bool(self.jellyfin_url and self.jellyfin_api_key)


class AniSyncConfig(BaseSettings):
    """Application configuration for AniSync.

    Configuration is sourced from a YAML file in the data path, optionally
    combined with parameters passed directly to the model.
    """

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="Logging level for the application"
    )
    users: dict[str, UserConfig] = Field(
        default_factory=dict, description="Users to synchronize, keyed by user id"
    )
    mappings_url: str = Field(
        default="https://raw.githubusercontent.com/manami-project/anime-offline-database/master/anime-offline-database-minified.json",
        description="URL or local path of the anime-offline-database document",
    )
    external_mappings_url: str = Field(
        default="https://raw.githubusercontent.com/varoOP/shinkrodb/main/malid-anidbid-tvdbid-tmdbid.json",
        description="URL or local path of the shinkrodb id mapping document",
    )
    freshness_hours: float = Field(
        default=24, ge=0, description="Hours before a record's details are re-synced"
    )
    user_pause_seconds: float = Field(
        default=2.0, ge=0, description="Pause between users in scheduled batches"
    )
    request_timeout: float = Field(
        default=15, gt=0, description="Timeout for list source and dataset requests"
    )
    library_request_timeout: float = Field(
        default=10, gt=0, description="Timeout for library server requests"
    )
    session_inactivity_seconds: int = Field(
        default=3600, gt=0, description="Idle time before progress sessions expire"
    )
    match_threshold: float = Field(
        default=0.7, ge=0, le=1, description="Minimum fuzzy title match score"
    )
    import_batch_size: int = Field(
        default=100, ge=1, description="Mapping rows written per batch on import"
    )
    sync_interval: int = Field(
        default=86400, ge=0, description="Seconds between scheduled sync batches"
    )
    mappings_refresh_interval: int = Field(
        default=86400, ge=0, description="Seconds between mapping database imports"
    )
    max_users_per_batch: int | None = Field(
        default=None, ge=1, description="Cap on users processed per scheduled batch"
    )
    anime_studios: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ANIME_STUDIOS),
        description="Studios whose library series are always treated as anime",
    )
    anime_genres: list[str] = Field(
        default_factory=lambda: ["anime", "animation"],
        description="Genres that mark a library series as anime",
    )
    history_retention_days: int = Field(
        default=30, ge=0, description="Days to keep sync history (0 keeps forever)"
    )

    @cached_property
    def data_path(self) -> Path:
        """Get the data path for AniSync.

        Returns:
            Path: The data path resolved from the environment or default location.
        """
        return get_data_path()

    @model_validator(mode="after")
    def validate_users(self) -> AniSyncConfig:
        """Warn about users that cannot take part in any sync."""
        for user_id, user in self.users.items():
            if not user.has_list_token and not user.has_library:
                _log.warning(
                    f"User $$'{user_id}'$$ has neither a MyAnimeList token nor a "
                    "Jellyfin server configured"
                )
        return self

    def get_user(self, user_id: str) -> UserConfig:
        """Get a specific user's configuration.

        Args:
            user_id: User identifier

        Returns:
            UserConfig: The user configuration.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        if user_id not in self.users:
            raise UserNotFoundError(
                f"User '{user_id}' not found. Available users: {list(self.users)}"
            )
        return self.users[user_id]

    def __str__(self) -> str:
        return (
            f"AniSync Config: {len(self.users)} user(s) [{', '.join(self.users)}], "
            f"DATA_PATH: {self.data_path}, LOG_LEVEL: {self.log_level}"
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of configuration sources."""
        return (
            init_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=find_yaml_config_file()),
        )

    model_config = SettingsConfigDict(extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> AniSyncConfig:
    """Get the singleton instance of AniSyncConfig."""
    return AniSyncConfig()
