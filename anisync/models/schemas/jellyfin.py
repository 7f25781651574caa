"""Jellyfin API Models Module."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal

__all__ = [
    "JellyfinEpisode",
    "JellyfinItemsPage",
    "JellyfinSeries",
    "JellyfinSystemInfo",
    "JellyfinUser",
    "JellyfinUserData",
]

TICKS_PER_SECOND = 10_000_000


class JellyfinBaseModel(BaseModel):
    """Base class for Jellyfin payloads, which use PascalCase keys."""

    model_config = ConfigDict(
        alias_generator=to_pascal, populate_by_name=True, extra="ignore"
    )


class JellyfinUserData(JellyfinBaseModel):
    played: bool = False
    playback_position_ticks: int = 0
    play_count: int = 0
    unplayed_item_count: int | None = None
    last_played_date: datetime | None = None


class JellyfinNameId(JellyfinBaseModel):
    name: str
    id: str | None = None


class JellyfinSeries(JellyfinBaseModel):
    id: str
    name: str
    original_title: str | None = None
    production_year: int | None = None
    genres: list[str] = Field(default_factory=list)
    studios: list[JellyfinNameId] = Field(default_factory=list)
    provider_ids: dict[str, str] = Field(default_factory=dict)
    user_data: JellyfinUserData | None = None
    child_count: int | None = None
    recursive_item_count: int | None = None


class JellyfinEpisode(JellyfinBaseModel):
    id: str
    name: str | None = None
    series_id: str | None = None
    series_name: str | None = None
    parent_index_number: int | None = None
    index_number: int | None = None
    run_time_ticks: int | None = None
    user_data: JellyfinUserData | None = None


class JellyfinItemsPage[T: BaseModel](JellyfinBaseModel):
    items: list[T] = Field(default_factory=list)
    total_record_count: int = 0


class JellyfinSystemInfo(JellyfinBaseModel):
    id: str | None = None
    server_name: str | None = None
    version: str | None = None


class JellyfinUser(JellyfinBaseModel):
    id: str
    name: str
