"""Per-user sync bookkeeping stored in the housekeeping table."""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import select

from anisync.config.database import AniSyncDB, db
from anisync.models.db.housekeeping import Housekeeping
from anisync.utils.dates import ensure_utc

__all__ = ["HousekeepingStore"]


class HousekeepingStore:
    """Reads and writes `last_synced_*` and `last_sync_stats_*` keys."""

    def __init__(self, database: AniSyncDB | None = None) -> None:
        self._database = database

    @property
    def database(self) -> AniSyncDB:
        return self._database or db()

    @staticmethod
    def _last_synced_key(user_id: str) -> str:
        return f"last_synced_{user_id}"

    @staticmethod
    def _last_stats_key(user_id: str) -> str:
        return f"last_sync_stats_{user_id}"

    def _set(self, key: str, value: str | None) -> None:
        with self.database as ctx:
            ctx.session.merge(Housekeeping(key=key, value=value))
            ctx.session.commit()

    def _get(self, key: str) -> str | None:
        with self.database as ctx:
            entry = ctx.session.get(Housekeeping, key)
            return entry.value if entry is not None else None

    def get_last_synced(self, user_id: str) -> datetime | None:
        value = self._get(self._last_synced_key(user_id))
        return ensure_utc(datetime.fromisoformat(value)) if value else None

    def get_last_stats(self, user_id: str) -> dict[str, Any] | None:
        value = self._get(self._last_stats_key(user_id))
        return json.loads(value) if value else None

    def set_last_synced(
        self, user_id: str, synced_at: datetime, stats: dict[str, Any] | None = None
    ) -> None:
        """Record the end of a user's list sync and its summary."""
        self._set(self._last_synced_key(user_id), synced_at.isoformat())
        if stats is not None:
            self._set(self._last_stats_key(user_id), json.dumps(stats))

    def last_synced_by_user(self) -> dict[str, datetime]:
        """All recorded last-sync times, keyed by user id."""
        prefix = "last_synced_"
        with self.database as ctx:
            rows = ctx.session.scalars(
                select(Housekeeping).where(Housekeeping.key.startswith(prefix))
            )
            return {
                row.key.removeprefix(prefix): ensure_utc(
                    datetime.fromisoformat(row.value)
                )
                for row in rows
                if row.value
            }
