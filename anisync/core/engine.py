"""Sync Engine: launches and supervises list, library and mapping import runs."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime, timedelta
from typing import Any

import cachetools

from anisync import log
from anisync.config.database import AniSyncDB
from anisync.config.settings import AniSyncConfig, get_config
from anisync.core.datasets import (
    DatasetClient,
    OfflineDatasetMappingSource,
    ShinkroMappingSource,
)
from anisync.core.importer import OfflineMappingImporter
from anisync.core.matching import ExternalMappingSource, IdentityMatcher
from anisync.core.progress import ProgressTracker, SessionType, SyncSession
from anisync.core.providers.library import AnimeClassifier, LibrarySource
from anisync.core.providers.list import ListSource
from anisync.core.store import (
    AnimeStore,
    HistoryStore,
    HousekeepingStore,
    MappingStore,
)
from anisync.core.sync import (
    LibrarySyncService,
    ListSyncService,
    SyncResult,
    backfill_secondary_ids,
)
from anisync.exceptions import (
    AniSyncError,
    ListSourceTokenExpiredError,
    MissingCredentialsError,
    SessionNotFoundError,
)
from anisync.providers.factory import (
    build_classifier,
    build_library_client,
    build_list_client,
)
from anisync.utils.dates import utcnow

__all__ = ["SyncEngine"]

ListClientFactory = Callable[[str, Any, AniSyncConfig], ListSource]
LibraryClientFactory = Callable[[str, Any, AniSyncConfig], LibrarySource]


class SyncEngine:
    """Long-lived owner of the stores, match cache and progress sessions.

    `start_*` methods validate their prerequisites synchronously, create the
    progress session and only then spawn the run as a detached task, returning
    the session id. Errors raised inside a run are written to its session and
    never reach the caller.
    """

    def __init__(
        self,
        config: AniSyncConfig | None = None,
        *,
        database: AniSyncDB | None = None,
        tracker: ProgressTracker | None = None,
        external_sources: list[ExternalMappingSource] | None = None,
        dataset_client: DatasetClient | None = None,
        list_client_factory: ListClientFactory = build_list_client,
        library_client_factory: LibraryClientFactory = build_library_client,
        classifier: AnimeClassifier | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            config (AniSyncConfig | None): Application configuration
            database (AniSyncDB | None): Database of every store, the process-wide
                database by default
            tracker (ProgressTracker | None): Progress sessions of all runs
            external_sources (list[ExternalMappingSource] | None): Fallback id
                mapping sources in priority order, shinkrodb then the offline
                dataset when omitted
            dataset_client (DatasetClient | None): Where mapping imports read the
                bulk dataset from
            list_client_factory (ListClientFactory): Builds a user's list client
            library_client_factory (LibraryClientFactory): Builds a user's
                library client
            classifier (AnimeClassifier | None): Decides which library series
                are anime
            clock (Callable[[], datetime]): Source of the current time
            sleep (Callable[[float], Awaitable[None]]): Pause between users
        """
        self.config = config or get_config()
        self.database = database
        self.clock = clock
        self.sleep = sleep

        self.tracker = tracker or ProgressTracker(
            inactivity=timedelta(seconds=self.config.session_inactivity_seconds),
            clock=clock,
        )
        self.mapping_store = MappingStore(database)
        self.anime_store = AnimeStore(database)
        self.history = HistoryStore(database)
        self.housekeeping = HousekeepingStore(database)

        if external_sources is None:
            timeout = self.config.request_timeout
            external_sources = [
                ShinkroMappingSource(
                    DatasetClient(self.config.external_mappings_url, timeout=timeout)
                ),
                OfflineDatasetMappingSource(
                    DatasetClient(self.config.mappings_url, timeout=timeout)
                ),
            ]
        self.external_sources = external_sources

        if dataset_client is None:
            dataset_client = DatasetClient(
                self.config.mappings_url, timeout=self.config.request_timeout
            )
        self.importer = OfflineMappingImporter(
            dataset_client,
            self.mapping_store,
            batch_size=self.config.import_batch_size,
            tracker=self.tracker,
            database=database,
        )

        self.list_client_factory = list_client_factory
        self.library_client_factory = library_client_factory
        self.classifier = classifier or build_classifier(self.config)

        self._match_cache: cachetools.LRUCache = cachetools.LRUCache(maxsize=2**32)
        self.matcher = self._matcher()
        self._tasks: set[asyncio.Task] = set()  # Prevents early GC

    def _matcher(self, search_backend: Any = None) -> IdentityMatcher:
        """Build a matcher sharing the engine's result cache."""
        return IdentityMatcher.create(
            self.mapping_store,
            self.external_sources,
            search_backend=search_backend,
            threshold=self.config.match_threshold,
            cache=self._match_cache,
        )

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(hours=self.config.freshness_hours)

    def _spawn(
        self, session: SyncSession, run: Callable[[], Coroutine[Any, Any, Any]]
    ) -> str:
        """Run a coroutine detached, failing its session if it raises."""

        async def guarded() -> None:
            try:
                await run()
            except asyncio.CancelledError:
                self._fail_session(session.session_id, "Run was cancelled")
                raise
            except Exception as e:
                log.error(
                    f"Run $$'{session.session_id}'$$ ({session.type}) failed: {e}",
                    exc_info=not isinstance(e, AniSyncError),
                )
                self._fail_session(session.session_id, str(e))

        task = asyncio.create_task(guarded(), name=f"anisync-{session.session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session.session_id

    def _fail_session(self, session_id: str, message: str) -> None:
        try:
            self.tracker.fail(session_id, message)
        except SessionNotFoundError:
            log.warning(f"Session $$'{session_id}'$$ expired before it failed")

    def _list_service(self, user_id: str, client: ListSource) -> ListSyncService:
        user = self.config.get_user(user_id)
        return ListSyncService(
            user_id,
            client,
            anime_store=self.anime_store,
            matcher=self._matcher(client),
            tracker=self.tracker,
            history=self.history,
            housekeeping=self.housekeeping,
            statuses=user.statuses,
            include_external_ids=user.include_external_ids,
            freshness_window=self.freshness_window,
            clock=self.clock,
        )

    async def run_list_sync(
        self,
        user_id: str,
        *,
        force: bool = False,
        session_id: str | None = None,
        client: ListSource | None = None,
    ) -> SyncResult:
        """Run a list sync for a user and wait for it to finish.

        Raises:
            UserNotFoundError: If the user is not configured
            MissingCredentialsError: If the user has no access token
            ListSourceTokenExpiredError: If the access token has expired
        """
        user = self.config.get_user(user_id)
        if client is None:
            client = self.list_client_factory(user_id, user, self.config)
        try:
            return await self._list_service(user_id, client).run(
                force=force, session_id=session_id
            )
        finally:
            await client.close()

    def start_list_sync(self, user_id: str, *, force: bool = False) -> str:
        """Start a detached list sync.

        Returns:
            str: Id of the progress session of the run

        Raises:
            UserNotFoundError: If the user is not configured
            MissingCredentialsError: If the user has no access token
            ListSourceTokenExpiredError: If the access token has expired
        """
        user = self.config.get_user(user_id)
        client = self.list_client_factory(user_id, user, self.config)
        session = self.tracker.start_session(
            SessionType.LIST_SYNC,
            user_id=user_id,
            message="Fetching list from MyAnimeList",
        )
        log.info(
            f"Queued list sync for user $$'{user_id}'$$ "
            f"$${{session: {session.session_id}, force: {force}}}$$"
        )
        return self._spawn(
            session,
            lambda: self.run_list_sync(
                user_id, force=force, session_id=session.session_id, client=client
            ),
        )

    async def run_library_sync(
        self,
        user_id: str,
        *,
        force: bool = False,
        session_id: str | None = None,
        client: LibrarySource | None = None,
    ) -> SyncResult:
        """Run a library sync for a user and wait for it to finish.

        Fuzzy title matching searches MyAnimeList when the user has a valid
        access token; otherwise only id based strategies are used.
        """
        user = self.config.get_user(user_id)
        if client is None:
            client = self.library_client_factory(user_id, user, self.config)

        search_client: ListSource | None = None
        if user.has_list_token and not user.is_token_expired():
            search_client = self.list_client_factory(user_id, user, self.config)

        service = LibrarySyncService(
            user_id,
            client,
            anime_store=self.anime_store,
            matcher=self._matcher(search_client),
            classifier=self.classifier,
            tracker=self.tracker,
            history=self.history,
            library_user_id=user.jellyfin_user_id,
            max_items=user.library_max_items,
            freshness_window=self.freshness_window,
            clock=self.clock,
        )
        try:
            return await service.run(force=force, session_id=session_id)
        finally:
            await client.close()
            if search_client is not None:
                await search_client.close()

    def start_library_sync(self, user_id: str, *, force: bool = False) -> str:
        """Start a detached library sync.

        Raises:
            UserNotFoundError: If the user is not configured
            MissingCredentialsError: If the user has no Jellyfin server
        """
        user = self.config.get_user(user_id)
        client = self.library_client_factory(user_id, user, self.config)
        session = self.tracker.start_session(
            SessionType.LIBRARY_SYNC,
            user_id=user_id,
            message="Fetching library from Jellyfin",
        )
        log.info(
            f"Queued library sync for user $$'{user_id}'$$ "
            f"$${{session: {session.session_id}, force: {force}}}$$"
        )
        return self._spawn(
            session,
            lambda: self.run_library_sync(
                user_id, force=force, session_id=session.session_id, client=client
            ),
        )

    def start_mapping_import(self) -> str:
        """Start a detached import of the bulk mapping dataset."""
        session = self.tracker.start_session(
            SessionType.MAPPING_IMPORT, message="Downloading mapping dataset"
        )
        log.info(f"Queued mapping import $${{session: {session.session_id}}}$$")
        return self._spawn(
            session, lambda: self.importer.run(session_id=session.session_id)
        )

    def users_needing_sync(self, max_users: int | None = None) -> list[str]:
        """Users due for a scheduled sync, least recently synced first.

        A user is due if `auto_sync` is on and their last list sync is older
        than the sync interval. Users never synced come first.
        """
        now = self.clock()
        interval = timedelta(seconds=self.config.sync_interval)
        last_synced = self.housekeeping.last_synced_by_user()

        due: list[tuple[float, str]] = []
        for user_id, user in self.config.users.items():
            if not user.auto_sync:
                continue
            synced_at = last_synced.get(user_id)
            if synced_at is not None and now - synced_at < interval:
                continue
            due.append(
                (synced_at.timestamp() if synced_at else float("-inf"), user_id)
            )

        due.sort()
        users = [user_id for _, user_id in due]
        return users[:max_users] if max_users else users

    async def run_scheduled_sync(
        self, max_users: int | None = None, *, force: bool = False
    ) -> dict[str, Any]:
        """Run list syncs for every user that is due, one after the other.

        Users without a usable access token are reported as failed without
        starting a run. A fixed pause separates consecutive users.

        Returns:
            dict[str, Any]: `{users: [...], summary: {totalUsers, successCount,
                errorCount}}`
        """
        users = self.users_needing_sync(max_users or self.config.max_users_per_batch)
        log.info(f"Scheduled sync batch for $$'{len(users)}'$$ user(s)")

        reports: list[dict[str, Any]] = []
        for i, user_id in enumerate(users):
            if i > 0 and self.config.user_pause_seconds > 0:
                await self.sleep(self.config.user_pause_seconds)

            started = time.perf_counter()
            report: dict[str, Any] = {"userId": user_id}
            try:
                result = await self.run_list_sync(user_id, force=force)
            except (MissingCredentialsError, ListSourceTokenExpiredError) as e:
                log.warning(f"Skipping scheduled sync of $$'{user_id}'$$: {e}")
                report.update(success=False, error=str(e))
            except Exception as e:
                log.error(
                    f"Scheduled sync of $$'{user_id}'$$ failed: {e}", exc_info=True
                )
                report.update(success=False, error=str(e))
            else:
                report.update(success=True, result=result.to_wire())
            report["duration"] = round(time.perf_counter() - started, 3)
            reports.append(report)

        success_count = sum(1 for r in reports if r["success"])
        summary = {
            "totalUsers": len(reports),
            "successCount": success_count,
            "errorCount": len(reports) - success_count,
        }
        log.success(
            f"Scheduled sync batch finished: $$'{success_count}'$$ of "
            f"$$'{len(reports)}'$$ user(s) succeeded"
        )
        return {"users": reports, "summary": summary}

    def get_progress(self, session_id: str) -> dict[str, Any]:
        """Wire representation of a progress session.

        Raises:
            SessionNotFoundError: If the session is unknown or expired
        """
        session = self.tracker.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Progress session '{session_id}' not found")
        return session.to_wire()

    def get_sync_stats(self, user_id: str) -> dict[str, Any]:
        """Summary of a user's list plus their last sync time and statistics."""
        self.config.get_user(user_id)
        stats = self.anime_store.user_stats(
            user_id, self.clock() - self.freshness_window
        )
        last_synced = self.housekeeping.get_last_synced(user_id)
        stats["lastSync"] = last_synced.isoformat() if last_synced else None
        stats["lastSyncStats"] = self.housekeeping.get_last_stats(user_id)
        return stats

    def backfill(self, limit: int | None = None) -> dict[str, int]:
        return backfill_secondary_ids(
            self.anime_store, self.mapping_store, limit=limit
        )

    def cleanup_history(self, days_old: int | None = None) -> int:
        """Prune sync history older than `days_old` (default: configured retention)."""
        days = self.config.history_retention_days if days_old is None else days_old
        if days <= 0:
            return 0
        deleted = self.history.cleanup(days, now=self.clock())
        if deleted:
            log.info(f"Removed $$'{deleted}'$$ sync history row(s)")
        return deleted

    def sweep_sessions(self) -> int:
        return self.tracker.sweep()

    def clear_match_cache(self) -> None:
        self.matcher.clear_cache()

    def match_cache_stats(self) -> dict[str, Any]:
        return self.matcher.cache_stats()

    async def wait_for_runs(self) -> None:
        """Wait until every detached run has finished."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding runs and close the mapping source clients."""
        for task in list(self._tasks):
            task.cancel()
        await self.wait_for_runs()

        for source in self.external_sources:
            close = getattr(source, "close", None)
            if close is not None:
                await close()
        await self.importer.client.close()
