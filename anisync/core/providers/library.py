"""Media library source interface."""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from anisync.core.matching.types import MatchDescriptor

__all__ = ["AnimeClassifier", "LibraryEpisode", "LibrarySeries", "LibrarySource"]

WATCHED_RATIO = 0.9


def _int_or_none(value: str | None) -> int | None:
    if value is None:
        return None
    value = value.strip()
    return int(value) if value.isdigit() and int(value) > 0 else None


@dataclass(slots=True)
class LibrarySeries:
    """A series as listed by the library server."""

    id: str
    name: str
    original_title: str | None = None
    year: int | None = None
    genres: list[str] = field(default_factory=list)
    studios: list[str] = field(default_factory=list)
    provider_ids: dict[str, str] = field(default_factory=dict)

    def provider_id(self, *names: str) -> str | None:
        """Look up a provider id by any of `names`, ignoring case."""
        wanted = {name.lower() for name in names}
        for key, value in self.provider_ids.items():
            if key.lower() in wanted and value:
                return value
        return None

    @property
    def anidb_id(self) -> int | None:
        return _int_or_none(self.provider_id("AniDb", "anidb"))

    @property
    def mal_id(self) -> int | None:
        return _int_or_none(self.provider_id("MyAnimeList", "mal"))

    @property
    def tvdb_id(self) -> int | None:
        return _int_or_none(self.provider_id("Tvdb"))

    @property
    def tmdb_id(self) -> int | None:
        return _int_or_none(self.provider_id("Tmdb"))

    @property
    def imdb_id(self) -> str | None:
        return self.provider_id("Imdb")

    @property
    def titles(self) -> list[str]:
        titles = [self.name]
        if self.original_title and self.original_title != self.name:
            titles.append(self.original_title)
        return titles

    def descriptor(self) -> MatchDescriptor:
        return MatchDescriptor(
            title=self.name,
            year=self.year,
            mal_id=self.mal_id,
            anidb_id=self.anidb_id,
            alternative_titles=tuple(self.titles[1:]),
            genres=tuple(self.genres),
            studios=tuple(self.studios),
        )


@dataclass(slots=True)
class LibraryEpisode:
    """Play state of one episode."""

    id: str
    series_id: str | None
    season: int | None = None
    index: int | None = None
    played: bool = False
    position_ticks: int = 0
    runtime_ticks: int | None = None

    @property
    def watched(self) -> bool:
        """Played, or resumed past 90% of its runtime."""
        if self.played:
            return True
        if not self.runtime_ticks or self.runtime_ticks <= 0:
            return False
        return self.position_ticks / self.runtime_ticks >= WATCHED_RATIO

    @property
    def is_special(self) -> bool:
        return self.season == 0


@runtime_checkable
class LibrarySource(Protocol):
    """A media library server with per-user play markers."""

    async def fetch_series(self, user_id: str | None = None) -> list[LibrarySeries]:
        """List every series visible to the user."""
        ...

    async def fetch_episodes(self, user_id: str | None = None) -> list[LibraryEpisode]:
        """List every episode visible to the user, with play state."""
        ...

    async def item_detail(
        self, item_id: str, user_id: str | None = None
    ) -> LibrarySeries | None:
        """Fetch one series by id."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class AnimeClassifier(Protocol):
    """Decides whether a library series is in scope for anime matching."""

    def is_anime(self, series: LibrarySeries) -> bool: ...
