"""MyAnimeList API v2 Models Module."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = [
    "MalAnime",
    "MalListEntry",
    "MalListPage",
    "MalListStatus",
    "MalPaging",
    "MalSearchPage",
]

_DATE_FIELDS = ("start_date", "finish_date")


class MalBaseModel(BaseModel):
    """Base class for MyAnimeList payloads, which are already snake_case."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class MalNamedObject(MalBaseModel):
    id: int
    name: str


class MalAlternativeTitles(MalBaseModel):
    synonyms: list[str] = Field(default_factory=list)
    en: str | None = None
    ja: str | None = None


class MalSeason(MalBaseModel):
    year: int | None = None
    season: str | None = None


class MalListStatus(MalBaseModel):
    """A user's list status for an anime.

    Every field is optional so that `model_dump(exclude_unset=True)` yields only
    the fields MyAnimeList actually sent. Users may store partial dates such as
    `2019-05`; those are left unset rather than guessed.
    """

    status: str | None = None
    score: int | None = None
    num_episodes_watched: int | None = None
    is_rewatching: bool | None = None
    start_date: date | None = None
    finish_date: date | None = None
    priority: int | None = None
    num_times_rewatched: int | None = None
    rewatch_value: int | None = None
    tags: list[str] | None = None
    comments: str | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_partial_dates(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key in _DATE_FIELDS:
            value = cleaned.get(key)
            if isinstance(value, str) and not _is_full_date(value):
                del cleaned[key]
        return cleaned


def _is_full_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


class MalAnime(MalBaseModel):
    """An anime node as returned by the list and search endpoints."""

    id: int
    title: str
    alternative_titles: MalAlternativeTitles | None = None
    start_date: str | None = None
    start_season: MalSeason | None = None
    media_type: str | None = None
    status: str | None = None
    num_episodes: int | None = None
    genres: list[MalNamedObject] = Field(default_factory=list)
    studios: list[MalNamedObject] = Field(default_factory=list)
    my_list_status: MalListStatus | None = None

    @property
    def year(self) -> int | None:
        if self.start_season and self.start_season.year:
            return self.start_season.year
        if self.start_date and self.start_date[:4].isdigit():
            return int(self.start_date[:4])
        return None

    @property
    def alternate_titles(self) -> list[str]:
        if self.alternative_titles is None:
            return []
        titles = [
            self.alternative_titles.en,
            self.alternative_titles.ja,
            *self.alternative_titles.synonyms,
        ]
        return [t for t in titles if t]


class MalListEntry(MalBaseModel):
    node: MalAnime
    list_status: MalListStatus | None = None


class MalPaging(MalBaseModel):
    next: str | None = None
    previous: str | None = None


class MalListPage(MalBaseModel):
    data: list[MalListEntry] = Field(default_factory=list)
    paging: MalPaging = Field(default_factory=MalPaging)


class MalSearchNode(MalBaseModel):
    node: MalAnime


class MalSearchPage(MalBaseModel):
    data: list[MalSearchNode] = Field(default_factory=list)
    paging: MalPaging = Field(default_factory=MalPaging)
