"""Housekeeping Model Module."""

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql.sqltypes import String

from anisync.models.db.base import Base

__all__ = ["Housekeeping"]


class Housekeeping(Base):
    """Key/value table for per-user sync bookkeeping.

    Keys in use:
        `last_synced_{user_id}`: ISO timestamp of the user's last list sync
        `last_sync_stats_{user_id}`: JSON result summary of that sync
    """

    __tablename__ = "house_keeping"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str | None] = mapped_column(String, nullable=True)
