"""Sync History Database Model."""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import ForeignKey
from sqlalchemy.sql.sqltypes import DateTime, Enum, Float, Integer, String

from anisync.models.db.base import Base

__all__ = ["SyncHistory", "SyncOutcome", "SyncSource"]


class SyncSource(StrEnum):
    """Which side of the reconciliation a run read from."""

    LIST = "list"
    LIBRARY = "library"
    MAPPINGS = "mappings"


class SyncOutcome(StrEnum):
    """Result of processing a single item, mirrored by the progress counters."""

    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


class SyncHistory(Base):
    """One processed item of a sync run."""

    __tablename__ = "sync_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    source: Mapped[SyncSource] = mapped_column(Enum(SyncSource), index=True)

    title: Mapped[str] = mapped_column(String)
    anime_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("anime.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    mal_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    library_id: Mapped[str | None] = mapped_column(String, nullable=True)

    outcome: Mapped[SyncOutcome] = mapped_column(Enum(SyncOutcome), index=True)
    match_method: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    error_message: Mapped[str | None] = mapped_column(String, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )
