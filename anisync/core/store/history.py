"""Itemized sync history."""

from datetime import datetime, timedelta

from sqlalchemy import delete, select

from anisync.config.database import AniSyncDB, db
from anisync.models.db.sync_history import SyncHistory, SyncOutcome, SyncSource
from anisync.utils.dates import utcnow

__all__ = ["HistoryStore"]


class HistoryStore:
    """Append-only log of processed items with age-based cleanup."""

    def __init__(self, database: AniSyncDB | None = None) -> None:
        self._database = database

    @property
    def database(self) -> AniSyncDB:
        return self._database or db()

    def record(
        self,
        *,
        user_id: str,
        source: SyncSource,
        title: str,
        outcome: SyncOutcome,
        session_id: str | None = None,
        anime_id: int | None = None,
        mal_id: int | None = None,
        library_id: str | None = None,
        match_method: str | None = None,
        confidence: float | None = None,
        error_message: str | None = None,
    ) -> None:
        with self.database as ctx:
            ctx.session.add(
                SyncHistory(
                    session_id=session_id,
                    user_id=user_id,
                    source=source,
                    title=title,
                    anime_id=anime_id,
                    mal_id=mal_id,
                    library_id=library_id,
                    outcome=outcome,
                    match_method=match_method,
                    confidence=confidence,
                    error_message=error_message,
                    timestamp=utcnow(),
                )
            )
            ctx.session.commit()

    def for_session(self, session_id: str) -> list[SyncHistory]:
        with self.database as ctx:
            return list(
                ctx.session.scalars(
                    select(SyncHistory)
                    .where(SyncHistory.session_id == session_id)
                    .order_by(SyncHistory.id)
                )
            )

    def errors_for_user(self, user_id: str, limit: int = 50) -> list[SyncHistory]:
        with self.database as ctx:
            return list(
                ctx.session.scalars(
                    select(SyncHistory)
                    .where(
                        SyncHistory.user_id == user_id,
                        SyncHistory.outcome == SyncOutcome.ERROR,
                    )
                    .order_by(SyncHistory.timestamp.desc())
                    .limit(limit)
                )
            )

    def cleanup(self, days_old: int = 30, now: datetime | None = None) -> int:
        """Delete history rows older than `days_old` days.

        Returns:
            int: Number of deleted rows
        """
        cutoff = (now or utcnow()) - timedelta(days=days_old)
        with self.database as ctx:
            result = ctx.session.execute(
                delete(SyncHistory).where(SyncHistory.timestamp < cutoff)
            )
            ctx.session.commit()
            return result.rowcount or 0
