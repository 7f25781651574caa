"""AnimeRecord store: the local union of list and library state."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from anisync.config.database import AniSyncDB, db
from anisync.exceptions import RecordNotFoundError
from anisync.models.db.anime import (
    AnimeRecord,
    ExternalIdKind,
    UserListStatus,
    WatchStatus,
)
from anisync.utils.dates import utcnow
from anisync.utils.sql import json_array_equals, json_array_like, like_contains

__all__ = ["AnimeStore", "UpsertResult", "identity_key_for"]

# Columns that are filled once and never overwritten by a later sync
EXTERNAL_ID_COLUMNS = frozenset({"anidb_id", "tvdb_id", "tmdb_id", "imdb_id"})

# Columns callers may not set through `upsert`
_MANAGED_COLUMNS = frozenset(
    {"id", "identity_key", "mal_id", "created_at", "updated_at", "sync_version"}
)

USER_STATUS_FIELDS = frozenset(
    {
        "status",
        "score",
        "num_episodes_watched",
        "is_rewatching",
        "start_date",
        "finish_date",
        "priority",
        "num_times_rewatched",
        "rewatch_value",
        "tags",
        "comments",
    }
)


def identity_key_for(mal_id: int | None, library_id: str | None = None) -> str:
    """Build the natural key an AnimeRecord is upserted by.

    Raises:
        ValueError: If neither id is given.
    """
    if mal_id is not None:
        return f"mal:{mal_id}"
    if library_id:
        return f"library:{library_id}"
    raise ValueError("A MyAnimeList id or a library id is required")


@dataclass(slots=True)
class UpsertResult:
    record: AnimeRecord
    created: bool


class AnimeStore:
    """Keyed access to AnimeRecord and UserListStatus rows.

    Writes are `INSERT ... ON CONFLICT DO UPDATE` statements keyed by the
    record's identity key, or by (record, user) for list statuses. Updates only
    touch the columns supplied by the caller, and external ids are merged with
    `COALESCE` so a known id is never replaced.
    """

    def __init__(self, database: AniSyncDB | None = None) -> None:
        self._database = database

    @property
    def database(self) -> AniSyncDB:
        return self._database or db()

    def get(self, record_id: int) -> AnimeRecord:
        """Fetch a record by surrogate id.

        Raises:
            RecordNotFoundError: If no such record exists.
        """
        with self.database as ctx:
            record = ctx.session.get(AnimeRecord, record_id, populate_existing=True)
        if record is None:
            raise RecordNotFoundError(f"Anime record {record_id} does not exist")
        return record

    def find_by_primary(self, mal_id: int) -> AnimeRecord | None:
        with self.database as ctx:
            return ctx.session.scalar(
                select(AnimeRecord)
                .where(AnimeRecord.mal_id == mal_id)
                .execution_options(populate_existing=True)
            )

    def find_by_external_id(
        self,
        kind: ExternalIdKind | str,
        value: int | str,
        *,
        unlinked_only: bool = False,
    ) -> AnimeRecord | None:
        """Find a record by one of its ids.

        Args:
            kind (ExternalIdKind | str): Identifier space of `value`
            value (int | str): The id to look up
            unlinked_only (bool): Only consider records without a MyAnimeList id

        Returns:
            AnimeRecord | None: The matching record, active records first
        """
        column = getattr(AnimeRecord, ExternalIdKind(kind).column)
        query = select(AnimeRecord).where(column == value)
        if unlinked_only:
            query = query.where(AnimeRecord.mal_id.is_(None))

        with self.database as ctx:
            return ctx.session.scalar(
                query.order_by(AnimeRecord.is_active.desc(), AnimeRecord.id)
                .limit(1)
                .execution_options(populate_existing=True)
            )

    def find_by_title(self, title: str) -> AnimeRecord | None:
        """Find a record by title, trying an exact match before a partial one.

        Both passes ignore case and also consider alternative titles.
        """
        title = title.strip()
        if not title:
            return None

        exact = or_(
            func.lower(AnimeRecord.title) == title.lower(),
            json_array_equals(AnimeRecord.alternative_titles, title),
        )
        pattern = like_contains(title)
        partial = or_(
            AnimeRecord.title.like(pattern, escape="\\"),
            json_array_like(AnimeRecord.alternative_titles, pattern),
        )

        with self.database as ctx:
            for condition in (exact, partial):
                record = ctx.session.scalar(
                    select(AnimeRecord)
                    .where(condition)
                    .order_by(AnimeRecord.is_active.desc(), AnimeRecord.id)
                    .limit(1)
                    .execution_options(populate_existing=True)
                )
                if record is not None:
                    return record
        return None

    def upsert(
        self,
        fields: Mapping[str, Any],
        *,
        mal_id: int | None = None,
        library_id: str | None = None,
    ) -> UpsertResult:
        """Create or update the record identified by `mal_id` or `library_id`.

        Args:
            fields (Mapping[str, Any]): Column values to apply. Only these columns
                are written on update; external ids are only filled when unset.
            mal_id (int | None): MyAnimeList id, preferred identity
            library_id (str | None): Library item id, identity for records that
                have no MyAnimeList id

        Returns:
            UpsertResult: The stored record and whether it was created
        """
        unknown = set(fields) & _MANAGED_COLUMNS
        if unknown:
            raise ValueError(f"Columns managed by the store cannot be set: {unknown}")

        table = AnimeRecord.__table__
        now = utcnow()
        values: dict[str, Any] = {
            "title": "",
            "alternative_titles": [],
            "genres": [],
            "studios": [],
            "is_active": True,
            **fields,
            "identity_key": identity_key_for(mal_id, library_id),
            "mal_id": mal_id,
            "sync_version": 1,
            "created_at": now,
            "updated_at": now,
        }
        if library_id is not None:
            values.setdefault("library_id", library_id)

        stmt = sqlite_insert(table).values(**values)
        set_: dict[str, Any] = {}
        for key in fields:
            if key in EXTERNAL_ID_COLUMNS:
                set_[key] = func.coalesce(table.c[key], stmt.excluded[key])
            else:
                set_[key] = stmt.excluded[key]
        if library_id is not None and "library_id" not in fields:
            set_["library_id"] = func.coalesce(
                table.c.library_id, stmt.excluded["library_id"]
            )
        set_["is_active"] = True
        set_["updated_at"] = stmt.excluded["updated_at"]
        set_["sync_version"] = table.c.sync_version + 1

        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.identity_key], set_=set_
        ).returning(table.c.id, table.c.sync_version)

        with self.database as ctx:
            row = ctx.session.execute(stmt).one()
            ctx.session.commit()
            record = ctx.session.get(AnimeRecord, row.id, populate_existing=True)

        if record is None:
            raise RecordNotFoundError(f"Anime record {row.id} vanished after upsert")
        return UpsertResult(record=record, created=row.sync_version == 1)

    def adopt(self, record_id: int, mal_id: int) -> AnimeRecord:
        """Attach a MyAnimeList id to a record that so far only had library ids.

        Raises:
            RecordNotFoundError: If the record does not exist.
        """
        with self.database as ctx:
            record = ctx.session.get(AnimeRecord, record_id)
            if record is None:
                raise RecordNotFoundError(f"Anime record {record_id} does not exist")
            record.mal_id = mal_id
            record.identity_key = identity_key_for(mal_id)
            record.updated_at = utcnow()
            ctx.session.commit()
            return record

    def merge_external_ids(
        self, record_id: int, ids: Mapping[str, int | str | None]
    ) -> AnimeRecord:
        """Fill in external ids the record does not have yet."""
        with self.database as ctx:
            record = ctx.session.get(AnimeRecord, record_id, populate_existing=True)
            if record is None:
                raise RecordNotFoundError(f"Anime record {record_id} does not exist")
            changed = False
            for key, value in ids.items():
                if key not in EXTERNAL_ID_COLUMNS or value is None:
                    continue
                if getattr(record, key) is None:
                    setattr(record, key, value)
                    changed = True
            if changed:
                record.updated_at = utcnow()
                ctx.session.commit()
            return record

    def retire(self, record_id: int) -> None:
        """Soft-retire a record; the next sync touch revives it."""
        with self.database as ctx:
            record = ctx.session.get(AnimeRecord, record_id)
            if record is None:
                raise RecordNotFoundError(f"Anime record {record_id} does not exist")
            record.is_active = False
            record.updated_at = utcnow()
            ctx.session.commit()

    def get_user_status(self, record_id: int, user_id: str) -> UserListStatus | None:
        with self.database as ctx:
            return ctx.session.scalar(
                select(UserListStatus)
                .where(
                    UserListStatus.anime_id == record_id,
                    UserListStatus.user_id == user_id,
                )
                .execution_options(populate_existing=True)
            )

    def upsert_user_status(
        self, record_id: int, user_id: str, fields: Mapping[str, Any]
    ) -> UserListStatus:
        """Create or update one user's status for a record.

        Only the columns in `fields` are written on update; everything else keeps
        its stored value.

        Args:
            record_id (int): AnimeRecord id
            user_id (str): Local user id
            fields (Mapping[str, Any]): Status columns that were explicitly set

        Returns:
            UserListStatus: The stored status
        """
        unknown = set(fields) - USER_STATUS_FIELDS
        if unknown:
            raise ValueError(f"Unknown list status fields: {sorted(unknown)}")

        table = UserListStatus.__table__
        values: dict[str, Any] = {
            **fields,
            "anime_id": record_id,
            "user_id": user_id,
            "updated_at": utcnow(),
        }
        if "status" in values and values["status"] is not None:
            values["status"] = WatchStatus(values["status"])

        stmt = sqlite_insert(table).values(**values)
        set_ = {key: stmt.excluded[key] for key in fields}
        set_["updated_at"] = stmt.excluded["updated_at"]
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.anime_id, table.c.user_id], set_=set_
        ).returning(table.c.id)

        with self.database as ctx:
            status_id = ctx.session.execute(stmt).scalar_one()
            ctx.session.commit()
            status = ctx.session.get(UserListStatus, status_id, populate_existing=True)

        if status is None:
            raise RecordNotFoundError(
                f"List status of user {user_id} for record {record_id} vanished"
            )
        return status

    def remove_user_status(self, record_id: int, user_id: str) -> bool:
        """Unlink a user from a record. Returns False if there was no status."""
        with self.database as ctx:
            status = ctx.session.scalar(
                select(UserListStatus).where(
                    UserListStatus.anime_id == record_id,
                    UserListStatus.user_id == user_id,
                )
            )
            if status is None:
                return False
            ctx.session.delete(status)
            ctx.session.commit()
            return True

    def count(self, *, active_only: bool = False) -> int:
        query = select(func.count()).select_from(AnimeRecord)
        if active_only:
            query = query.where(AnimeRecord.is_active.is_(True))
        with self.database as ctx:
            return ctx.session.scalar(query)

    def find_needing_sync(
        self, older_than: datetime, limit: int | None = None
    ) -> list[AnimeRecord]:
        """Active list-linked records whose details were last synced before a time."""
        query = (
            select(AnimeRecord)
            .where(
                AnimeRecord.is_active.is_(True),
                AnimeRecord.mal_id.is_not(None),
                or_(
                    AnimeRecord.last_synced_from_list.is_(None),
                    AnimeRecord.last_synced_from_list < older_than,
                ),
            )
            .order_by(AnimeRecord.last_synced_from_list.asc().nulls_first())
        )
        if limit is not None:
            query = query.limit(limit)
        with self.database as ctx:
            return list(ctx.session.scalars(query))

    def find_missing_secondary(self, limit: int | None = None) -> list[AnimeRecord]:
        """Records with a MyAnimeList id but no AniDB id."""
        query = (
            select(AnimeRecord)
            .where(AnimeRecord.mal_id.is_not(None), AnimeRecord.anidb_id.is_(None))
            .order_by(AnimeRecord.id)
        )
        if limit is not None:
            query = query.limit(limit)
        with self.database as ctx:
            return list(ctx.session.scalars(query))

    def user_stats(self, user_id: str, older_than: datetime) -> dict[str, Any]:
        """Summarize a user's list: totals, per-status counts and stale records.

        Args:
            user_id (str): Local user id
            older_than (datetime): Records last synced before this need a sync

        Returns:
            dict[str, Any]: `{totalAnime, byStatus, needsSync}`
        """
        with self.database as ctx:
            by_status = {
                str(status): count
                for status, count in ctx.session.execute(
                    select(UserListStatus.status, func.count())
                    .where(UserListStatus.user_id == user_id)
                    .group_by(UserListStatus.status)
                )
                if status is not None
            }
            needs_sync = ctx.session.scalar(
                select(func.count())
                .select_from(UserListStatus)
                .join(AnimeRecord, AnimeRecord.id == UserListStatus.anime_id)
                .where(
                    UserListStatus.user_id == user_id,
                    or_(
                        AnimeRecord.last_synced_from_list.is_(None),
                        AnimeRecord.last_synced_from_list < older_than,
                    ),
                )
            )

        return {
            "totalAnime": sum(by_status.values()),
            "byStatus": {str(s): by_status.get(str(s), 0) for s in WatchStatus},
            "needsSync": needs_sync or 0,
        }
