"""Mapping Store: persisted MyAnimeList to AniDB id cross references."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import case, func, or_, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from anisync.config.database import AniSyncDB, db
from anisync.exceptions import MappingConflictError, MappingNotFoundError
from anisync.models.db.mapping import AnimeMapping, MappingSource
from anisync.utils.dates import utcnow
from anisync.utils.sql import json_array_like, like_contains

__all__ = ["MappingStore", "MappingUpsert"]


@dataclass(frozen=True, slots=True)
class MappingUpsert:
    """A complete mapping extracted from a bulk dataset."""

    mal_id: int
    anidb_id: int
    title: str
    metadata: dict[str, Any] = field(default_factory=dict)


class MappingStore:
    """Keyed access to the `anime_mapping` table.

    Every write is an `INSERT ... ON CONFLICT (mal_id) DO UPDATE`, so concurrent
    imports and manual edits converge without locking. A row's `source` only
    ever strengthens: imports never downgrade manual or confirmed rows, they
    only refresh their title and metadata.
    """

    def __init__(self, database: AniSyncDB | None = None) -> None:
        self._database = database

    @property
    def database(self) -> AniSyncDB:
        return self._database or db()

    @staticmethod
    def _source_rank():
        return case(
            (AnimeMapping.source == MappingSource.CONFIRMED, 0),
            (AnimeMapping.source == MappingSource.MANUAL, 1),
            else_=2,
        )

    def find_by_primary(self, mal_id: int) -> AnimeMapping | None:
        """Return the mapping for a MyAnimeList id, if any."""
        with self.database as ctx:
            return ctx.session.get(AnimeMapping, mal_id)

    def find_by_secondary(self, anidb_id: int) -> AnimeMapping | None:
        """Return the strongest mapping pointing at an AniDB id, if any.

        Several MyAnimeList entries can share one AniDB id (split cours); the
        strongest source wins, then the lowest MyAnimeList id.
        """
        with self.database as ctx:
            return ctx.session.scalar(
                select(AnimeMapping)
                .where(AnimeMapping.anidb_id == anidb_id)
                .order_by(self._source_rank(), AnimeMapping.mal_id)
                .limit(1)
            )

    def get(self, mal_id: int) -> AnimeMapping:
        """Like `find_by_primary`, but raises if the mapping is missing.

        Raises:
            MappingNotFoundError: If no mapping exists for `mal_id`.
        """
        mapping = self.find_by_primary(mal_id)
        if mapping is None:
            raise MappingNotFoundError(f"No mapping exists for MyAnimeList id {mal_id}")
        return mapping

    def upsert_batch(self, entries: Sequence[MappingUpsert]) -> int:
        """Upsert a batch of imported mappings in a single statement.

        Args:
            entries (Sequence[MappingUpsert]): Complete mappings to write

        Returns:
            int: Number of rows written
        """
        if not entries:
            return 0

        table = AnimeMapping.__table__
        now = utcnow()
        # Last occurrence wins when a batch repeats a key
        rows = {
            e.mal_id: {
                "mal_id": e.mal_id,
                "anidb_id": e.anidb_id,
                "title": e.title,
                "source": MappingSource.IMPORTED,
                "confirmed_by": None,
                "confidence": None,
                "metadata": e.metadata,
                "created_at": now,
                "updated_at": now,
            }
            for e in entries
        }

        stmt = sqlite_insert(table).values(list(rows.values()))
        is_imported = table.c.source == MappingSource.IMPORTED
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.mal_id],
            set_={
                "anidb_id": case(
                    (is_imported, stmt.excluded["anidb_id"]),
                    else_=table.c.anidb_id,
                ),
                "title": stmt.excluded["title"],
                "metadata": stmt.excluded["metadata"],
                "updated_at": stmt.excluded["updated_at"],
            },
        )

        with self.database as ctx:
            ctx.session.execute(stmt)
            ctx.session.commit()
        return len(rows)

    def create_manual(
        self, mal_id: int, anidb_id: int, title: str, user_id: str | None = None
    ) -> AnimeMapping:
        """Create or overwrite a mapping by hand.

        An existing row for `mal_id` is updated in place. A confirmed row stays
        confirmed; anything weaker becomes a manual mapping.

        Raises:
            MappingConflictError: If another MyAnimeList id already holds a manual
                or confirmed mapping to the same AniDB id.
        """
        table = AnimeMapping.__table__
        now = utcnow()

        with self.database as ctx:
            claimed_by = ctx.session.scalar(
                select(AnimeMapping.mal_id).where(
                    AnimeMapping.anidb_id == anidb_id,
                    AnimeMapping.mal_id != mal_id,
                    AnimeMapping.source.in_(
                        [MappingSource.MANUAL, MappingSource.CONFIRMED]
                    ),
                )
            )
            if claimed_by is not None:
                raise MappingConflictError(
                    f"AniDB id {anidb_id} is already mapped to MyAnimeList id "
                    f"{claimed_by}"
                )

            stmt = sqlite_insert(table).values(
                mal_id=mal_id,
                anidb_id=anidb_id,
                title=title,
                source=MappingSource.MANUAL,
                confirmed_by=user_id,
                confidence=1.0,
                metadata={},
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.mal_id],
                set_={
                    "anidb_id": stmt.excluded["anidb_id"],
                    "title": stmt.excluded["title"],
                    "source": case(
                        (
                            table.c.source == MappingSource.CONFIRMED,
                            table.c.source,
                        ),
                        else_=stmt.excluded["source"],
                    ),
                    "confirmed_by": stmt.excluded["confirmed_by"],
                    "confidence": stmt.excluded["confidence"],
                    "updated_at": stmt.excluded["updated_at"],
                },
            )
            ctx.session.execute(stmt)
            ctx.session.commit()
            mapping = ctx.session.get(AnimeMapping, mal_id, populate_existing=True)
            if mapping is None:
                raise MappingNotFoundError(f"Mapping {mal_id} vanished after upsert")
            return mapping

    def confirm(self, mal_id: int, user_id: str | None = None) -> AnimeMapping:
        """Mark a mapping as confirmed by a user.

        Raises:
            MappingNotFoundError: If no mapping exists for `mal_id`.
        """
        with self.database as ctx:
            mapping = ctx.session.get(AnimeMapping, mal_id)
            if mapping is None:
                raise MappingNotFoundError(
                    f"No mapping exists for MyAnimeList id {mal_id}"
                )
            mapping.source = MappingSource.CONFIRMED
            mapping.confirmed_by = user_id
            mapping.confidence = 1.0
            mapping.updated_at = utcnow()
            ctx.session.commit()
            return mapping

    def search_by_title(self, text: str, limit: int = 10) -> list[AnimeMapping]:
        """Case-insensitive substring search over titles and synonyms."""
        text = text.strip()
        if not text:
            return []

        pattern = like_contains(text)
        with self.database as ctx:
            return list(
                ctx.session.scalars(
                    select(AnimeMapping)
                    .where(
                        or_(
                            AnimeMapping.title.like(pattern, escape="\\"),
                            json_array_like(
                                AnimeMapping.extra, pattern, path="$.synonyms"
                            ),
                        )
                    )
                    .order_by(self._source_rank(), AnimeMapping.title)
                    .limit(limit)
                )
            )

    def count(self) -> int:
        with self.database as ctx:
            return ctx.session.scalar(select(func.count()).select_from(AnimeMapping))

    def count_confirmed(self) -> int:
        """Number of mappings a user created or confirmed."""
        with self.database as ctx:
            return ctx.session.scalar(
                select(func.count())
                .select_from(AnimeMapping)
                .where(
                    AnimeMapping.source.in_(
                        [MappingSource.MANUAL, MappingSource.CONFIRMED]
                    )
                )
            )
