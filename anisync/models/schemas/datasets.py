"""Bulk mapping dataset and external id mapping models."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

__all__ = ["ExternalMappingRow", "ImportStats", "OfflineDatasetEntry"]


class OfflineAnimeSeason(BaseModel):
    season: str | None = None
    year: int | None = None


class OfflineDatasetEntry(BaseModel):
    """One entry of the anime-offline-database `data` array."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    sources: list[str] = Field(default_factory=list)
    title: str
    synonyms: list[str] = Field(default_factory=list)
    type: str | None = None
    episodes: int | None = None
    status: str | None = None
    anime_season: OfflineAnimeSeason | None = None


class ExternalMappingRow(BaseModel):
    """A row of an external id mapping service such as shinkrodb."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    mal_id: int | None = Field(
        default=None, validation_alias=AliasChoices("malid", "malId", "mal_id")
    )
    anidb_id: int | None = Field(
        default=None, validation_alias=AliasChoices("anidbid", "anidbId", "anidb_id")
    )
    tvdb_id: int | None = Field(
        default=None, validation_alias=AliasChoices("tvdbid", "tvdbId", "tvdb_id")
    )
    tmdb_id: int | None = Field(
        default=None, validation_alias=AliasChoices("tmdbid", "tmdbId", "tmdb_id")
    )

    @field_validator("mal_id", "anidb_id", "tvdb_id", "tmdb_id", mode="before")
    @classmethod
    def _zero_is_missing(cls, value: object) -> object:
        # shinkrodb writes 0 for ids it does not know
        if value in (0, "0", ""):
            return None
        return value


class ImportStats(BaseModel):
    """Counters produced by a bulk dataset import."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    processed: int = 0
    with_primary_id: int = 0
    with_secondary_id: int = 0
    complete: int = 0
    errors: int = 0
    batches_failed: int = 0
