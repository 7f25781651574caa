"""Anime id mapping database models."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import JSON, DateTime, Enum, Float, Integer, String

from anisync.models.db.base import Base

__all__ = ["AnimeMapping", "ImportState", "ImportStatus", "MappingSource"]


class MappingSource(StrEnum):
    """Provenance of a mapping entry, ordered from weakest to strongest."""

    IMPORTED = "imported"
    MANUAL = "manual"
    CONFIRMED = "confirmed"

    @property
    def strength(self) -> int:
        return {"imported": 0, "manual": 1, "confirmed": 2}[self.value]


class ImportState(StrEnum):
    """Outcome of the most recent bulk dataset import."""

    SUCCESS = "success"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class AnimeMapping(Base):
    """One MyAnimeList id to AniDB id cross reference."""

    __tablename__ = "anime_mapping"

    mal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    anidb_id: Mapped[int] = mapped_column(Integer, index=True)
    title: Mapped[str] = mapped_column(String, index=True)
    source: Mapped[MappingSource] = mapped_column(
        Enum(MappingSource), default=MappingSource.IMPORTED, index=True
    )
    confirmed_by: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Synonyms, type, episodes, status and sources of the dataset entry
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )

    def __repr__(self) -> str:
        return (
            f"<AnimeMapping mal_id={self.mal_id} anidb_id={self.anidb_id} "
            f"source={self.source}>"
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase shape used by outer surfaces."""
        return {
            "primaryId": self.mal_id,
            "secondaryId": self.anidb_id,
            "title": self.title,
            "source": str(self.source),
            "confirmedBy": self.confirmed_by,
            "confidence": self.confidence,
            "metadata": self.extra or {},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class ImportStatus(Base):
    """Status record of a bulk dataset import, keyed by dataset identifier."""

    __tablename__ = "import_status"

    dataset_id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[ImportState] = mapped_column(Enum(ImportState))
    last_updated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(String, nullable=True)
    statistics: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    total_entries: Mapped[int | None] = mapped_column(Integer, nullable=True)
    schema_version: Mapped[str | None] = mapped_column(String, nullable=True)
    source_url: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )
