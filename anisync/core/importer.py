"""Offline Mapping Importer: populate the Mapping Store from a bulk dataset."""

from typing import Any

from pydantic import ValidationError
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from anisync import log
from anisync.config.database import AniSyncDB, db
from anisync.core.datasets import DatasetClient, extract_ids
from anisync.core.progress import ProgressTracker, SessionType
from anisync.core.store.mappings import MappingStore, MappingUpsert
from anisync.exceptions import DatasetError, InvalidDatasetFormatError
from anisync.models.db.mapping import ImportState, ImportStatus
from anisync.models.db.sync_history import SyncOutcome
from anisync.models.schemas.datasets import ImportStats, OfflineDatasetEntry
from anisync.utils.dates import ensure_utc, utcnow

__all__ = ["DATASET_ID", "OfflineMappingImporter"]

DATASET_ID = "anime-offline-database"


class OfflineMappingImporter:
    """Imports MyAnimeList to AniDB mappings from anime-offline-database.

    Entries that carry both a MyAnimeList and an AniDB source URL become
    mappings. They are written in fixed-size batches; a batch that fails to
    write is logged and skipped, so callers should read the returned statistics
    rather than assume every mapping landed.
    """

    def __init__(
        self,
        client: DatasetClient,
        store: MappingStore | None = None,
        *,
        batch_size: int = 100,
        tracker: ProgressTracker | None = None,
        database: AniSyncDB | None = None,
        dataset_id: str = DATASET_ID,
    ) -> None:
        """Initialize the importer.

        Args:
            client (DatasetClient): Where the dataset document is read from
            store (MappingStore | None): Destination store
            batch_size (int): Mappings written per statement
            tracker (ProgressTracker | None): Reports one item per batch when given
            database (AniSyncDB | None): Database holding the import status record
            dataset_id (str): Key of the import status record
        """
        self.client = client
        self._database = database
        self.store = store if store is not None else MappingStore(database)
        self.batch_size = max(1, batch_size)
        self.tracker = tracker
        self.dataset_id = dataset_id

    @property
    def database(self) -> AniSyncDB:
        return self._database or db()

    async def run(self, session_id: str | None = None) -> ImportStats:
        """Fetch the dataset and import it.

        Args:
            session_id (str | None): Progress session to report to; one is created
                when a tracker is configured and no id is given

        Returns:
            ImportStats: Counters of the import

        Raises:
            DatasetFetchError: If the document cannot be retrieved
            InvalidDatasetFormatError: If the document lacks the `data` array
        """
        if self.tracker is not None and session_id is None:
            session_id = self.tracker.start_session(
                SessionType.MAPPING_IMPORT, message="Downloading mapping dataset"
            ).session_id

        self._set_status(ImportState.IN_PROGRESS)
        log.info(f"Importing mappings from $$'{self.client.source}'$$")

        try:
            document = await self.client.fetch()
        except DatasetError as e:
            self._set_status(ImportState.FAILED, error_message=str(e))
            raise

        return self.import_document(document, session_id=session_id)

    def import_document(
        self, document: Any, *, session_id: str | None = None
    ) -> ImportStats:
        """Import an already decoded dataset document.

        Raises:
            InvalidDatasetFormatError: If the document lacks the `data` array
        """
        try:
            mappings, stats, total_entries = self.extract(document)
        except InvalidDatasetFormatError as e:
            self._set_status(ImportState.FAILED, error_message=str(e))
            raise

        batches = [
            mappings[i : i + self.batch_size]
            for i in range(0, len(mappings), self.batch_size)
        ]
        if self.tracker is not None and session_id is not None:
            self.tracker.update(
                session_id,
                total=len(batches),
                message=f"Writing {len(mappings)} mappings",
            )

        for number, batch in enumerate(batches, start=1):
            label = f"batch {number}/{len(batches)}"
            try:
                self.store.upsert_batch(batch)
            except Exception as e:
                stats.batches_failed += 1
                log.error(f"Failed to write mapping {label}: {e}", exc_info=True)
                self._report(session_id, label, SyncOutcome.ERROR, str(e))
                continue
            log.debug(f"Wrote mapping {label} $${{size: {len(batch)}}}$$")
            self._report(session_id, label, SyncOutcome.UPDATED)

        schema_version = None
        if isinstance(document, dict):
            schema_version = document.get("schemaVersion") or document.get("$schema")

        error_message = None
        state = ImportState.SUCCESS
        if stats.batches_failed:
            error_message = (
                f"{stats.batches_failed} of {len(batches)} mapping batches "
                "failed to write"
            )
            if stats.batches_failed == len(batches):
                state = ImportState.FAILED

        self._set_status(
            state,
            error_message=error_message,
            statistics=stats.model_dump(by_alias=True),
            total_entries=total_entries,
            schema_version=str(schema_version) if schema_version else "unknown",
        )
        if state == ImportState.FAILED:
            log.error(f"Mapping import failed: {error_message}")
        elif error_message:
            log.warning(f"Mapping import incomplete: {error_message}")
        else:
            log.success(
                f"Imported $$'{stats.complete}'$$ mappings from "
                f"$$'{total_entries}'$$ dataset entries "
                f"$${stats.model_dump(by_alias=True)}$$"
            )
        if self.tracker is not None and session_id is not None:
            self.tracker.complete(
                session_id,
                error_message or f"Imported {stats.complete} mappings",
                result=stats.model_dump(by_alias=True),
            )
        return stats

    def extract(self, document: Any) -> tuple[list[MappingUpsert], ImportStats, int]:
        """Scan the dataset entries for complete mappings.

        Returns:
            tuple[list[MappingUpsert], ImportStats, int]: The complete mappings,
                the scan counters and the number of dataset entries

        Raises:
            InvalidDatasetFormatError: If the document lacks the `data` array
        """
        entries = document.get("data") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise InvalidDatasetFormatError(
                "Invalid offline database format: 'data' must be an array"
            )

        stats = ImportStats()
        mappings: list[MappingUpsert] = []
        for raw in entries:
            try:
                entry = OfflineDatasetEntry.model_validate(raw)
                mal_id, anidb_id = extract_ids(entry.sources)
            except (ValidationError, TypeError, ValueError) as e:
                stats.errors += 1
                log.debug(f"Skipping malformed dataset entry: {e}")
                continue

            if mal_id is not None:
                stats.with_primary_id += 1
            if anidb_id is not None:
                stats.with_secondary_id += 1
            if mal_id is not None and anidb_id is not None:
                stats.complete += 1
                mappings.append(
                    MappingUpsert(
                        mal_id=mal_id,
                        anidb_id=anidb_id,
                        title=entry.title,
                        metadata={
                            "sources": entry.sources,
                            "synonyms": entry.synonyms,
                            "type": entry.type,
                            "episodes": entry.episodes,
                            "status": entry.status,
                        },
                    )
                )
            stats.processed += 1

        return mappings, stats, len(entries)

    def _report(
        self,
        session_id: str | None,
        label: str,
        outcome: SyncOutcome,
        error: str | None = None,
    ) -> None:
        if self.tracker is not None and session_id is not None:
            self.tracker.record_item(session_id, label, outcome, error)

    def _set_status(
        self,
        status: ImportState,
        *,
        error_message: str | None = None,
        statistics: dict[str, Any] | None = None,
        total_entries: int | None = None,
        schema_version: str | None = None,
    ) -> None:
        table = ImportStatus.__table__
        now = utcnow()
        values: dict[str, Any] = {
            "dataset_id": self.dataset_id,
            "status": status,
            "error_message": error_message,
            "source_url": self.client.source,
            "updated_at": now,
        }
        if status == ImportState.SUCCESS:
            values["last_updated"] = now
        if statistics is not None:
            values.update(
                statistics=statistics,
                total_entries=total_entries,
                schema_version=schema_version,
            )

        stmt = sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.dataset_id],
            set_={key: stmt.excluded[key] for key in values if key != "dataset_id"},
        )
        with self.database as ctx:
            ctx.session.execute(stmt)
            ctx.session.commit()

    def get_status(self) -> ImportStatus | None:
        with self.database as ctx:
            return ctx.session.get(
                ImportStatus, self.dataset_id, populate_existing=True
            )

    def get_database_status(self) -> dict[str, Any]:
        """Summary of the last import and the mapping table."""
        status = self.get_status()
        last_updated = ensure_utc(status.last_updated) if status else None
        return {
            "lastUpdated": last_updated.isoformat() if last_updated else None,
            "downloadStatus": str(status.status) if status else "unknown",
            "totalEntries": (status.total_entries or 0) if status else 0,
            "totalMappings": self.store.count(),
            "confirmedMappings": self.store.count_confirmed(),
            "errorMessage": status.error_message if status else None,
        }
