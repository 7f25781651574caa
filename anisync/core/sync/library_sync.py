"""Library source to local store synchronization."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from anisync import log
from anisync.core.matching import IdentityMatcher, MatchMethod, similarity
from anisync.core.progress import ProgressTracker
from anisync.core.providers.library import (
    AnimeClassifier,
    LibraryEpisode,
    LibrarySeries,
    LibrarySource,
)
from anisync.core.store import AnimeStore, HistoryStore
from anisync.core.sync.freshness import evaluate_freshness
from anisync.core.sync.result import SyncMatch, SyncNoMatch, SyncResult
from anisync.exceptions import (
    LibrarySourceUnauthorizedError,
    RecordNotFoundError,
    SyncAbortedError,
)
from anisync.models.db.anime import AnimeRecord, ExternalIdKind, WatchStatus
from anisync.models.db.sync_history import SyncOutcome, SyncSource
from anisync.utils.dates import utcnow

__all__ = [
    "EpisodeTally",
    "LibrarySyncService",
    "aggregate_episodes",
    "derive_status",
]


@dataclass(slots=True)
class EpisodeTally:
    watched: int = 0
    total: int = 0


def aggregate_episodes(episodes: Iterable[LibraryEpisode]) -> dict[str, EpisodeTally]:
    """Count watched and total regular episodes per series id.

    Specials (season 0) and episodes without a parent series are ignored.
    """
    tallies: dict[str, EpisodeTally] = {}
    for episode in episodes:
        if not episode.series_id or episode.is_special:
            continue
        tally = tallies.setdefault(episode.series_id, EpisodeTally())
        tally.total += 1
        if episode.watched:
            tally.watched += 1
    return tallies


def derive_status(
    watched: int, total: int, current: WatchStatus | None = None
) -> WatchStatus:
    """Derive a list status from episode counts.

    Nothing watched keeps the current status (or plans to watch), everything
    watched completes the series and anything in between is watching. A
    current status that is further along is never downgraded.
    """
    if watched <= 0:
        return current or WatchStatus.PLAN_TO_WATCH
    if total > 0 and watched >= total:
        derived = WatchStatus.COMPLETED
    else:
        derived = WatchStatus.WATCHING
    if current is not None and current.priority > derived.priority:
        return current
    return derived


@dataclass(slots=True)
class _Located:
    record: AnimeRecord | None = None
    mal_id: int | None = None
    anidb_id: int | None = None
    title: str | None = None
    method: MatchMethod | None = None
    confidence: float = 0.0
    anomalies: list[str] = field(default_factory=list)


class LibrarySyncService:
    """Reconciles one user's library play state into the local store.

    Series are matched to local records by library id and AniDB id, then by
    the identity matcher and finally by title; unmatched series become
    library-only records. Watched counts come from the episode listing, not
    from the series' cached counters.
    """

    def __init__(
        self,
        user_id: str,
        source: LibrarySource,
        *,
        anime_store: AnimeStore | None = None,
        matcher: IdentityMatcher | None = None,
        classifier: AnimeClassifier | None = None,
        tracker: ProgressTracker | None = None,
        history: HistoryStore | None = None,
        library_user_id: str | None = None,
        max_items: int | None = None,
        freshness_window: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.user_id = user_id
        self.source = source
        self.anime_store = anime_store or AnimeStore()
        self.matcher = matcher
        self.classifier = classifier
        self.tracker = tracker
        self.history = history
        self.library_user_id = library_user_id
        self.max_items = max_items
        self.freshness_window = freshness_window
        self.clock = clock
        self.session_id: str | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}:{self.user_id}>"

    async def run(
        self, *, force: bool = False, session_id: str | None = None
    ) -> SyncResult:
        """Synchronize the user's library.

        Args:
            force (bool): Rewrite every record's library details
            session_id (str | None): Progress session to report to

        Returns:
            SyncResult: Counters and itemized matches of the run

        Raises:
            LibrarySourceUnauthorizedError: If the server rejects the API key
            SyncAbortedError: If the series or episode listing cannot be fetched
        """
        self.session_id = session_id
        result = SyncResult()
        log.info(f"Starting library sync for user $$'{self.user_id}'$$")

        self._update_session(message="Fetching library series")
        series = await self._enumerate(self.source.fetch_series, "series")
        self._update_session(message="Fetching library episodes")
        episodes = await self._enumerate(self.source.fetch_episodes, "episodes")

        if self.classifier is not None:
            series = [s for s in series if self.classifier.is_anime(s)]
        if self.max_items is not None:
            series = series[: self.max_items]
        tallies = aggregate_episodes(episodes)

        log.info(
            f"Found $$'{len(series)}'$$ anime series and $$'{len(episodes)}'$$ "
            f"episodes for $$'{self.user_id}'$$"
        )
        self._update_session(
            total=len(series), message=f"Processing {len(series)} series"
        )

        for item in series:
            result.processed += 1
            tally = tallies.get(item.id, EpisodeTally())
            try:
                outcome = await self._sync_series(item, tally, force, result)
            except Exception as e:
                log.error(
                    f"Failed to sync library series $$'{item.name}'$$ "
                    f"$${{library_id: {item.id}}}$$: {e}",
                    exc_info=True,
                )
                result.add_error(item.name, str(e))
                self._report(item.name, SyncOutcome.ERROR, str(e))
                self._record_history(item, SyncOutcome.ERROR, error_message=str(e))
                continue

            match outcome:
                case SyncOutcome.ADDED:
                    result.created += 1
                case SyncOutcome.UPDATED:
                    result.updated += 1
                case _:
                    result.skipped += 1
            self._report(item.name, outcome)

        log.success(
            f"Library sync for user $$'{self.user_id}'$$ finished: {result.summary}"
        )
        if self.tracker is not None and self.session_id is not None:
            self.tracker.complete(
                self.session_id, f"Sync completed: {result.summary}", result.to_wire()
            )
        return result

    async def _enumerate(self, fetch: Callable[..., Any], what: str) -> list[Any]:
        try:
            return list(await fetch(self.library_user_id))
        except LibrarySourceUnauthorizedError:
            raise
        except Exception as e:
            raise SyncAbortedError(
                f"Could not fetch library {what} of user '{self.user_id}': {e}"
            ) from e

    async def _locate(self, series: LibrarySeries) -> _Located:
        """Find the local record (or at least the MyAnimeList id) of a series."""
        anidb_id = series.anidb_id

        record = self.anime_store.find_by_external_id(
            ExternalIdKind.LIBRARY, series.id
        )
        if record is None and anidb_id is not None:
            record = self.anime_store.find_by_external_id(
                ExternalIdKind.ANIDB, anidb_id
            )
        if record is not None:
            located = _Located(
                record=record,
                mal_id=record.mal_id,
                anidb_id=anidb_id,
                method=MatchMethod.LOCAL_ID,
                confidence=1.0,
            )
            if record.mal_id is None and self.matcher is not None:
                await self._link(located, series)
            return located

        if self.matcher is not None:
            match = await self.matcher.match(series.descriptor())
            if match is not None:
                return _Located(
                    record=self.anime_store.find_by_primary(match.mal_id),
                    mal_id=match.mal_id,
                    anidb_id=anidb_id or match.anidb_id,
                    title=match.title,
                    method=match.method,
                    confidence=match.confidence,
                    anomalies=match.anomalies,
                )

        for title in series.titles:
            record = self.anime_store.find_by_title(title)
            if record is not None:
                return _Located(
                    record=record,
                    mal_id=record.mal_id,
                    anidb_id=anidb_id,
                    method=MatchMethod.LOCAL_TITLE,
                    confidence=round(
                        max(similarity(t, record.title) for t in series.titles), 4
                    ),
                )

        return _Located(anidb_id=anidb_id)

    async def _link(self, located: _Located, series: LibrarySeries) -> None:
        """Give a library-only record the MyAnimeList id the matcher finds."""
        if self.matcher is None or located.record is None:
            return
        match = await self.matcher.match(series.descriptor())
        if match is None or self.anime_store.find_by_primary(match.mal_id):
            return
        log.info(
            f"Linking library series $$'{series.name}'$$ to MyAnimeList id "
            f"$$'{match.mal_id}'$$ $${{method: {match.method}}}$$"
        )
        located.record = self.anime_store.adopt(located.record.id, match.mal_id)
        located.mal_id = match.mal_id
        located.anidb_id = located.anidb_id or match.anidb_id
        located.method = match.method
        located.confidence = match.confidence
        located.anomalies = match.anomalies

    async def _sync_series(
        self,
        series: LibrarySeries,
        tally: EpisodeTally,
        force: bool,
        result: SyncResult,
    ) -> SyncOutcome:
        located = await self._locate(series)
        record = located.record
        now = self.clock()

        decision = evaluate_freshness(
            record,
            now,
            force=force,
            window=self.freshness_window,
            source=SyncSource.LIBRARY,
        )

        created = False
        if decision.full_refresh:
            fields: dict[str, Any] = {
                "last_synced_from_library": now,
                "anidb_id": located.anidb_id,
                "tvdb_id": series.tvdb_id,
                "tmdb_id": series.tmdb_id,
                "imdb_id": series.imdb_id,
            }
            if record is None:
                fields.update(
                    title=located.title or series.name,
                    alternative_titles=series.titles[1:],
                    genres=list(series.genres),
                    studios=list(series.studios),
                    start_year=series.year,
                    num_episodes=tally.total or None,
                )
            fields = {k: v for k, v in fields.items() if v is not None}

            mal_id = record.mal_id if record is not None else located.mal_id
            library_id = series.id
            if mal_id is None and record is not None and record.library_id:
                library_id = record.library_id
            upserted = self.anime_store.upsert(
                fields, mal_id=mal_id, library_id=library_id
            )
            record, created = upserted.record, upserted.created

        if record is None:
            raise RecordNotFoundError(
                f"No local record for library series {series.id}"
            )
        current = self.anime_store.get_user_status(record.id, self.user_id)
        current_status = current.status if current is not None else None
        current_watched = (current.num_episodes_watched or 0) if current else 0
        self.anime_store.upsert_user_status(
            record.id,
            self.user_id,
            {
                "status": derive_status(tally.watched, tally.total, current_status),
                "num_episodes_watched": max(current_watched, tally.watched),
            },
        )

        if located.method is not None:
            result.matches.append(
                SyncMatch(
                    title=series.name,
                    mal_id=record.mal_id,
                    library_id=series.id,
                    anime_id=record.id,
                    method=str(located.method),
                    confidence=located.confidence,
                    anomalies=located.anomalies,
                )
            )
        else:
            result.no_matches.append(
                SyncNoMatch(
                    title=series.name,
                    library_id=series.id,
                    reason="created as a library-only record",
                )
            )

        if created:
            outcome = SyncOutcome.ADDED
        elif decision.full_refresh:
            outcome = SyncOutcome.UPDATED
        else:
            outcome = SyncOutcome.SKIPPED
        log.debug(
            f"Synced library series $$'{series.name}'$$ "
            f"$${{outcome: {outcome}, method: {located.method}, "
            f"watched: {tally.watched}/{tally.total}}}$$"
        )
        self._record_history(
            series,
            outcome,
            record=record,
            method=located.method,
            confidence=located.confidence if located.method else None,
        )
        return outcome

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
        series: LibrarySeries,
        outcome: SyncOutcome,
        *,
        record: AnimeRecord | None = None,
        method: MatchMethod | None = None,
        confidence: float | None = None,
        error_message: str | None = None,
    ) -> None:
        if self.history is None:
            return
        try:
            self.history.record(
                user_id=self.user_id,
                source=SyncSource.LIBRARY,
                title=series.name,
                outcome=outcome,
                session_id=self.session_id,
                anime_id=record.id if record is not None else None,
                mal_id=record.mal_id if record is not None else None,
                library_id=series.id,
                match_method=str(method) if method else None,
                confidence=confidence,
                error_message=error_message,
            )
        except Exception:
            log.warning(
                f"Could not write sync history for $$'{series.name}'$$",
                exc_info=True,
            )
