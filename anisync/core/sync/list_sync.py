"""List source to local store synchronization."""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from anisync import log
from anisync.core.matching import ExternalIds, IdentityMatcher
from anisync.core.progress import ProgressTracker
from anisync.core.providers.list import ListEntry, ListSource
from anisync.core.store import AnimeStore, HistoryStore, HousekeepingStore
from anisync.core.sync.freshness import evaluate_freshness
from anisync.core.sync.result import SyncMatch, SyncNoMatch, SyncResult
from anisync.exceptions import ListSourceUnauthorizedError, SyncAbortedError
from anisync.models.db.anime import AnimeRecord, ExternalIdKind
from anisync.models.db.sync_history import SyncOutcome, SyncSource
from anisync.utils.dates import utcnow

__all__ = ["ListSyncService"]

_ITEMIZED_FIELDS = {"matches", "no_matches", "error_details"}


class ListSyncService:
    """Reconciles one user's remote list into the local AnimeRecord store.

    Entries are processed one at a time in the order the list source returned
    them. A failing entry is recorded and skipped; only losing the whole list
    aborts the run.
    """

    def __init__(
        self,
        user_id: str,
        source: ListSource,
        *,
        anime_store: AnimeStore | None = None,
        matcher: IdentityMatcher | None = None,
        tracker: ProgressTracker | None = None,
        history: HistoryStore | None = None,
        housekeeping: HousekeepingStore | None = None,
        statuses: Sequence[str] | None = None,
        include_external_ids: bool = True,
        freshness_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the service.

        Args:
            user_id (str): Local user id the list belongs to
            source (ListSource): Client for the user's remote list
            anime_store (AnimeStore | None): Destination store
            matcher (IdentityMatcher | None): Resolves AniDB, TVDB and TMDB ids
            tracker (ProgressTracker | None): Progress reporting
            history (HistoryStore | None): Itemized sync history
            housekeeping (HousekeepingStore | None): Per-user last sync bookkeeping
            statuses (Sequence[str] | None): Status partitions to fetch; the whole
                list is fetched in one go when empty
            include_external_ids (bool): Resolve external ids for refreshed records
            freshness_window (timedelta): Minimum age before details are re-synced
            clock (Callable[[], datetime]): Source of the current time
        """
        self.user_id = user_id
        self.source = source
        self.anime_store = anime_store or AnimeStore()
        self.matcher = matcher
        self.tracker = tracker
        self.history = history
        self.housekeeping = housekeeping
        self.statuses: list[str | None] = list(statuses or []) or [None]
        self.include_external_ids = include_external_ids
        self.freshness_window = freshness_window
        self.clock = clock
        self.session_id: str | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}:{self.user_id}>"

    async def run(
        self, *, force: bool = False, session_id: str | None = None
    ) -> SyncResult:
        """Synchronize the user's list.

        Args:
            force (bool): Rewrite every record's details regardless of freshness
            session_id (str | None): Progress session to report to

        Returns:
            SyncResult: Counters and itemized matches of the run

        Raises:
            ListSourceUnauthorizedError: If the list source rejects the token
            SyncAbortedError: If no part of the list could be fetched
        """
        self.session_id = session_id
        result = SyncResult()
        log.info(
            f"Starting list sync for user $$'{self.user_id}'$$ "
            f"$${{force: {force}, partitions: {self.statuses}}}$$"
        )

        entries, failures = await self._fetch_entries()
        self._update_session(
            total=len(entries) + len(failures),
            message=f"Processing {len(entries)} list entries",
        )
        for label, message in failures:
            result.processed += 1
            result.add_error(label, message)
            self._report(label, SyncOutcome.ERROR, message)

        for entry in entries:
            result.processed += 1
            try:
                outcome = await self._sync_entry(entry, force, result)
            except Exception as e:
                log.error(
                    f"Failed to sync $$'{entry.title}'$$ "
                    f"$${{mal_id: {entry.mal_id}}}$$: {e}",
                    exc_info=True,
                )
                result.add_error(entry.title, str(e))
                self._report(entry.title, SyncOutcome.ERROR, str(e))
                self._record_history(entry, SyncOutcome.ERROR, error_message=str(e))
                continue

            match outcome:
                case SyncOutcome.ADDED:
                    result.created += 1
                case SyncOutcome.UPDATED:
                    result.updated += 1
                case _:
                    result.skipped += 1
            self._report(entry.title, outcome)

        if self.housekeeping is not None:
            self.housekeeping.set_last_synced(
                self.user_id,
                self.clock(),
                result.model_dump(by_alias=True, exclude=_ITEMIZED_FIELDS),
            )

        log.success(
            f"List sync for user $$'{self.user_id}'$$ finished: {result.summary}"
        )
        if self.tracker is not None and self.session_id is not None:
            self.tracker.complete(
                self.session_id, f"Sync completed: {result.summary}", result.to_wire()
            )
        return result

    async def _fetch_entries(self) -> tuple[list[ListEntry], list[tuple[str, str]]]:
        """Fetch every partition, each independently of the others.

        Returns:
            tuple[list[ListEntry], list[tuple[str, str]]]: Entries in fetch order
                without duplicates, and `(label, message)` of failed partitions
        """
        entries: list[ListEntry] = []
        seen: set[int] = set()
        failures: list[tuple[str, str]] = []

        for status in self.statuses:
            label = f"{status or 'all'} list"
            self._update_session(message=f"Fetching {label} from MyAnimeList")
            try:
                partition = await self.source.fetch_list(status)
            except ListSourceUnauthorizedError:
                raise
            except Exception as e:
                log.warning(
                    f"Failed to fetch the $$'{label}'$$ of user "
                    f"$$'{self.user_id}'$$: {e}"
                )
                failures.append((f"Fetching {label}", str(e)))
                continue

            for entry in partition:
                if entry.mal_id in seen:
                    continue
                seen.add(entry.mal_id)
                entries.append(entry)

        if failures and len(failures) == len(self.statuses):
            raise SyncAbortedError(
                f"Could not fetch the list of user '{self.user_id}': {failures[0][1]}"
            )

        log.info(f"Fetched $$'{len(entries)}'$$ list entries for $$'{self.user_id}'$$")
        return entries, failures

    async def _sync_entry(
        self, entry: ListEntry, force: bool, result: SyncResult
    ) -> SyncOutcome:
        now = self.clock()
        record = self.anime_store.find_by_primary(entry.mal_id)

        decision = evaluate_freshness(
            record, now, force=force, window=self.freshness_window
        )
        if decision.skip and record is not None:
            if entry.status_fields:
                self.anime_store.upsert_user_status(
                    record.id, self.user_id, entry.status_fields
                )
            log.debug(f"$$'{entry.title}'$$ is fresh, refreshed list status only")
            self._record_history(entry, SyncOutcome.SKIPPED, record=record)
            return SyncOutcome.SKIPPED

        fields = entry.record_fields()
        fields["last_synced_from_list"] = now

        ids: ExternalIds | None = None
        if self.include_external_ids and self.matcher is not None:
            ids = await self.matcher.resolve_external_ids(entry.mal_id)
            fields.update(ids.as_columns())
            if record is None and ids.anidb_id is not None:
                self._adopt_library_record(entry, ids.anidb_id)

        upserted = self.anime_store.upsert(fields, mal_id=entry.mal_id)
        if entry.status_fields:
            self.anime_store.upsert_user_status(
                upserted.record.id, self.user_id, entry.status_fields
            )

        if ids is not None:
            if ids.anidb_id is not None:
                result.matches.append(
                    SyncMatch(
                        title=entry.title,
                        mal_id=entry.mal_id,
                        anime_id=upserted.record.id,
                        method="+".join(ids.sources),
                        confidence=1.0 if "mapping_store" in ids.sources else 0.9,
                        anomalies=ids.anomalies,
                    )
                )
            else:
                result.no_matches.append(
                    SyncNoMatch(title=entry.title, reason="no AniDB id found")
                )

        outcome = SyncOutcome.ADDED if upserted.created else SyncOutcome.UPDATED
        log.debug(
            f"{'Created' if upserted.created else 'Updated'} $$'{entry.title}'$$ "
            f"$${{mal_id: {entry.mal_id}, anidb_id: {upserted.record.anidb_id}}}$$"
        )
        self._record_history(entry, outcome, record=upserted.record)
        return outcome

    def _adopt_library_record(self, entry: ListEntry, anidb_id: int) -> None:
        """Link a record created from the library to this list entry."""
        orphan = self.anime_store.find_by_external_id(
            ExternalIdKind.ANIDB, anidb_id, unlinked_only=True
        )
        if orphan is None:
            return
        log.info(
            f"Linking library record $$'{orphan.title}'$$ to MyAnimeList id "
            f"$$'{entry.mal_id}'$$"
        )
        self.anime_store.adopt(orphan.id, entry.mal_id)

    def _update_session(
        self, *, total: int | None = None, message: str | None = None
    ) -> None:
        if self.tracker is not None and self.session_id is not None:
            self.tracker.update(self.session_id, total=total, message=message)

    def _report(
        self, label: str, outcome: SyncOutcome, error: str | None = None
    ) -> None:
        if self.tracker is not None and self.session_id is not None:
            self.tracker.record_item(self.session_id, label, outcome, error)

    def _record_history(
        self,
        entry: ListEntry,
        outcome: SyncOutcome,
        *,
        record: AnimeRecord | None = None,
        error_message: str | None = None,
    ) -> None:
        if self.history is None:
            return
        try:
            self.history.record(
                user_id=self.user_id,
                source=SyncSource.LIST,
                title=entry.title,
                outcome=outcome,
                session_id=self.session_id,
                anime_id=record.id if record is not None else None,
                mal_id=entry.mal_id,
                error_message=error_message,
            )
        except Exception:
            log.warning(
                f"Could not write sync history for $$'{entry.title}'$$", exc_info=True
            )
