"""Remote list source interface."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from anisync.core.matching.types import MatchDescriptor, SearchCandidate

__all__ = ["ListEntry", "ListSource"]


@dataclass(slots=True)
class ListEntry:
    """One anime on a user's remote list.

    `status_fields` holds only the list status fields the source actually sent;
    anything missing is left untouched locally.
    """

    mal_id: int
    title: str
    alternative_titles: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)
    studios: list[str] = field(default_factory=list)
    media_type: str | None = None
    airing_status: str | None = None
    num_episodes: int | None = None
    start_year: int | None = None
    updated_on_list: datetime | None = None
    status_fields: dict[str, Any] = field(default_factory=dict)

    def record_fields(self) -> dict[str, Any]:
        """Denormalized AnimeRecord columns carried by this entry."""
        return {
            "title": self.title,
            "alternative_titles": list(self.alternative_titles),
            "genres": list(self.genres),
            "studios": list(self.studios),
            "media_type": self.media_type,
            "airing_status": self.airing_status,
            "num_episodes": self.num_episodes,
            "start_year": self.start_year,
            "last_updated_on_list": self.updated_on_list,
        }

    def descriptor(self) -> MatchDescriptor:
        return MatchDescriptor(
            title=self.title,
            year=self.start_year,
            mal_id=self.mal_id,
            alternative_titles=tuple(self.alternative_titles),
            genres=tuple(self.genres),
            studios=tuple(self.studios),
        )


@runtime_checkable
class ListSource(Protocol):
    """A remote list-tracking service holding a user's authoritative status."""

    async def fetch_list(self, status: str | None = None) -> list[ListEntry]:
        """Fetch the user's list, optionally a single status partition."""
        ...

    async def update_entry(
        self, mal_id: int, fields: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Push a status update for one anime and return the stored status."""
        ...

    async def search(self, query: str) -> Sequence[SearchCandidate]:
        """Search the list source's catalogue by title."""
        ...

    async def close(self) -> None: ...
