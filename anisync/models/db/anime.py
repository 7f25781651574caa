"""Local anime records and per-user list state."""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import StrEnum

from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.schema import ForeignKey, UniqueConstraint
from sqlalchemy.sql.sqltypes import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Integer,
    String,
)

from anisync.models.db.base import Base

__all__ = ["AnimeRecord", "ExternalIdKind", "UserListStatus", "WatchStatus"]


class WatchStatus(StrEnum):
    """A user's status for an anime, as used by MyAnimeList."""

    WATCHING = "watching"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    DROPPED = "dropped"
    PLAN_TO_WATCH = "plan_to_watch"

    @property
    def priority(self) -> int:
        """How far along the status is; planning is the least advanced."""
        match self:
            case WatchStatus.PLAN_TO_WATCH:
                return 0
            case WatchStatus.COMPLETED:
                return 2
            case _:
                return 1


class ExternalIdKind(StrEnum):
    """Identifier spaces an AnimeRecord can be looked up by."""

    MAL = "mal"
    ANIDB = "anidb"
    TVDB = "tvdb"
    TMDB = "tmdb"
    IMDB = "imdb"
    LIBRARY = "library"

    @property
    def column(self) -> str:
        return "library_id" if self is ExternalIdKind.LIBRARY else f"{self.value}_id"


class AnimeRecord(Base):
    """Denormalized union of everything known about one anime.

    Records are addressed by `identity_key`: `mal:<id>` once the MyAnimeList id
    is known, otherwise `library:<library item id>` for series only seen in the
    media library.
    """

    __tablename__ = "anime"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identity_key: Mapped[str] = mapped_column(String, unique=True)

    mal_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    anidb_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    tvdb_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    tmdb_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    imdb_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)

    title: Mapped[str] = mapped_column(String, index=True)
    alternative_titles: Mapped[list[str]] = mapped_column(JSON, default=list)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    studios: Mapped[list[str]] = mapped_column(JSON, default=list)
    media_type: Mapped[str | None] = mapped_column(String, nullable=True)
    airing_status: Mapped[str | None] = mapped_column(String, nullable=True)
    num_episodes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    last_synced_from_list: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_updated_on_list: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_synced_from_library: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    library_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    sync_version: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    statuses: Mapped[list[UserListStatus]] = relationship(
        back_populates="anime", cascade="all, delete-orphan", lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<AnimeRecord id={self.id} mal_id={self.mal_id} title={self.title!r}>"

    def status_for(self, user_id: str) -> UserListStatus | None:
        """Return the list status of `user_id`, if the user has one."""
        return next((s for s in self.statuses if s.user_id == user_id), None)


class UserListStatus(Base):
    """One user's list state for one AnimeRecord."""

    __tablename__ = "user_list_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    anime_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("anime.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(String, index=True)

    status: Mapped[WatchStatus | None] = mapped_column(
        Enum(WatchStatus), nullable=True, index=True
    )
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    num_episodes_watched: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_rewatching: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    finish_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    num_times_rewatched: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rewatch_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    comments: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    anime: Mapped[AnimeRecord] = relationship(back_populates="statuses")

    __table_args__ = (
        UniqueConstraint("anime_id", "user_id", name="uq_user_list_status_anime_user"),
    )
