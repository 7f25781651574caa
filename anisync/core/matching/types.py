"""Value types shared by the matching strategies."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable

from anisync.models.schemas.datasets import ExternalMappingRow

__all__ = [
    "ExternalMappingSource",
    "MatchDescriptor",
    "MatchMethod",
    "MatchResult",
    "SearchCandidate",
    "TitleSearchBackend",
]


class MatchMethod(StrEnum):
    DIRECT = "direct"
    MAPPING_STORE = "mapping_store"
    EXTERNAL_MAPPING = "external_mapping"
    FUZZY_TITLE = "fuzzy_title"
    LOCAL_ID = "local_id"
    LOCAL_TITLE = "local_title"


@dataclass(frozen=True, slots=True)
class MatchDescriptor:
    """What one source knows about an anime that needs a MyAnimeList id."""

    title: str
    year: int | None = None
    mal_id: int | None = None
    anidb_id: int | None = None
    alternative_titles: tuple[str, ...] = ()
    genres: tuple[str, ...] = ()
    studios: tuple[str, ...] = ()

    @property
    def titles(self) -> tuple[str, ...]:
        return (self.title, *self.alternative_titles)


@dataclass(slots=True)
class MatchResult:
    mal_id: int
    method: MatchMethod
    confidence: float
    title: str | None = None
    anidb_id: int | None = None
    anomalies: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SearchCandidate:
    """A search hit from the target id space."""

    mal_id: int
    title: str
    alternative_titles: tuple[str, ...] = ()
    year: int | None = None
    media_type: str | None = None
    num_episodes: int | None = None
    anidb_id: int | None = None

    @property
    def titles(self) -> tuple[str, ...]:
        return (self.title, *self.alternative_titles)


@runtime_checkable
class TitleSearchBackend(Protocol):
    """Anything that can search the target id space by title."""

    async def search(self, query: str) -> Sequence[SearchCandidate]: ...


@runtime_checkable
class ExternalMappingSource(Protocol):
    """A bulk id mapping dataset or service consulted during matching."""

    name: str

    async def lookup_by_secondary(self, anidb_id: int) -> ExternalMappingRow | None:
        """Find the row mapping an AniDB id, if any."""
        ...

    async def lookup_by_primary(self, mal_id: int) -> ExternalMappingRow | None:
        """Find the row mapping a MyAnimeList id, if any."""
        ...
