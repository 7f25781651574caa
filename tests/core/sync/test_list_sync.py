"""Tests for the list sync service."""

from datetime import UTC, datetime, timedelta

import pytest

from anisync.config.database import AniSyncDB
from anisync.core.matching import IdentityMatcher
from anisync.core.progress import ProgressTracker, SessionStatus, SessionType
from anisync.core.store import (
    AnimeStore,
    HistoryStore,
    HousekeepingStore,
    MappingStore,
    MappingUpsert,
)
from anisync.core.sync import ListSyncService
from anisync.exceptions import ListSourceUnauthorizedError, SyncAbortedError
from anisync.models.db.anime import WatchStatus
from anisync.models.db.sync_history import SyncOutcome
from tests.core.sync.fakes import FakeListSource, make_entry


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> Clock:
    """Provide a controllable clock."""
    return Clock()


@pytest.fixture
def anime_store(memory_db: AniSyncDB) -> AnimeStore:
    """Provide an empty anime store."""
    return AnimeStore(memory_db)


@pytest.fixture
def matcher(memory_db: AniSyncDB) -> IdentityMatcher:
    """Provide a matcher whose mapping store knows Cowboy Bebop."""
    mappings = MappingStore(memory_db)
    mappings.upsert_batch([MappingUpsert(mal_id=1, anidb_id=23, title="Cowboy Bebop")])
    return IdentityMatcher.create(mappings)


def service(
    source: FakeListSource,
    anime_store: AnimeStore,
    clock: Clock,
    **kwargs,
) -> ListSyncService:
    return ListSyncService(
        "alice", source, anime_store=anime_store, clock=clock, **kwargs
    )


SAMPLE = [
    make_entry(1, "Cowboy Bebop"),
    make_entry(6, "Trigun", status="completed"),
    make_entry(30, "Neon Genesis Evangelion", status="plan_to_watch"),
]


@pytest.mark.asyncio
async def test_first_run_creates_records(
    anime_store: AnimeStore, clock: Clock
) -> None:
    """Every entry becomes a record with the user's status."""
    result = await service(FakeListSource(SAMPLE), anime_store, clock).run()

    assert result.processed == 3
    assert result.created == 3
    assert result.errors == 0
    assert anime_store.count() == 3

    record = anime_store.find_by_primary(6)
    status = anime_store.get_user_status(record.id, "alice")
    assert status.status == WatchStatus.COMPLETED
    assert record.last_synced_from_list is not None


@pytest.mark.asyncio
async def test_second_run_is_idempotent(anime_store: AnimeStore, clock: Clock) -> None:
    """Re-running inside the freshness window creates nothing new."""
    source = FakeListSource(SAMPLE)
    await service(source, anime_store, clock).run()

    clock.now += timedelta(hours=1)
    result = await service(source, anime_store, clock).run()

    assert result.created == 0
    assert result.skipped == 3
    assert anime_store.count() == 3


@pytest.mark.asyncio
async def test_fresh_record_still_gets_status(
    anime_store: AnimeStore, clock: Clock
) -> None:
    """A skipped record still has the user's list status refreshed."""
    await service(FakeListSource(SAMPLE), anime_store, clock).run()

    changed = [make_entry(1, "Cowboy Bebop", status="dropped")]
    result = await service(FakeListSource(changed), anime_store, clock).run()

    assert result.skipped == 1
    record = anime_store.find_by_primary(1)
    assert anime_store.get_user_status(record.id, "alice").status == (
        WatchStatus.DROPPED
    )


@pytest.mark.asyncio
async def test_stale_and_forced_runs_update(
    anime_store: AnimeStore, clock: Clock
) -> None:
    """Stale records and forced runs rewrite the details."""
    source = FakeListSource(SAMPLE)
    await service(source, anime_store, clock).run()

    forced = await service(source, anime_store, clock).run(force=True)
    assert forced.updated == 3

    clock.now += timedelta(hours=25)
    stale = await service(source, anime_store, clock).run()
    assert stale.updated == 3
    assert stale.created == 0


@pytest.mark.asyncio
async def test_failing_entry_is_isolated(anime_store: AnimeStore, clock: Clock) -> None:
    """An entry that fails is counted as an error and the rest still sync."""
    entries = [
        make_entry(1, "Cowboy Bebop"),
        make_entry(2, "Broken", status="not-a-status"),
        make_entry(3, "Trigun"),
    ]
    tracker = ProgressTracker(clock=clock)
    session_id = tracker.start_session(SessionType.LIST_SYNC).session_id
    history = HistoryStore(anime_store.database)

    result = await service(
        FakeListSource(entries), anime_store, clock, tracker=tracker, history=history
    ).run(session_id=session_id)

    assert result.processed == 3
    assert result.errors == 1
    assert result.error_details[0]["item"] == "Broken"
    assert anime_store.find_by_primary(3) is not None

    session = tracker.get(session_id)
    assert session.status == SessionStatus.COMPLETED
    assert session.error_entries == 1
    assert session.processed_items == 3
    outcomes = [h.outcome for h in history.for_session(session_id)]
    assert outcomes.count(SyncOutcome.ERROR) == 1


@pytest.mark.asyncio
async def test_partition_failure_is_counted(
    anime_store: AnimeStore, clock: Clock
) -> None:
    """A failing partition is an error while the others still sync."""
    source = FakeListSource(SAMPLE)
    source.failing_statuses = {"completed"}

    result = await service(
        source, anime_store, clock, statuses=["watching", "completed"]
    ).run()

    assert source.fetches == ["watching", "completed"]
    assert result.processed == 2
    assert result.created == 1
    assert result.errors == 1


@pytest.mark.asyncio
async def test_all_partitions_failing_aborts(
    anime_store: AnimeStore, clock: Clock
) -> None:
    """Losing every partition aborts the run."""
    source = FakeListSource(SAMPLE)
    source.failing_statuses = {None}

    with pytest.raises(SyncAbortedError):
        await service(source, anime_store, clock).run()


@pytest.mark.asyncio
async def test_unauthorized_propagates(anime_store: AnimeStore, clock: Clock) -> None:
    """A rejected token is not swallowed as a partition failure."""

    class RejectingSource(FakeListSource):
        async def fetch_list(self, status=None):
            raise ListSourceUnauthorizedError("token rejected")

    with pytest.raises(ListSourceUnauthorizedError):
        await service(RejectingSource(), anime_store, clock).run()


@pytest.mark.asyncio
async def test_duplicate_entries_across_partitions(
    anime_store: AnimeStore, clock: Clock
) -> None:
    """An entry returned by two partitions is only processed once."""

    class OverlappingSource(FakeListSource):
        async def fetch_list(self, status=None):
            return list(self.entries)

    result = await service(
        OverlappingSource(SAMPLE), anime_store, clock, statuses=["a", "b"]
    ).run()

    assert result.processed == 3


@pytest.mark.asyncio
async def test_external_ids_are_resolved(
    anime_store: AnimeStore, matcher: IdentityMatcher, clock: Clock
) -> None:
    """Records get AniDB ids from the mapping store and report matches."""
    result = await service(
        FakeListSource(SAMPLE), anime_store, clock, matcher=matcher
    ).run()

    assert anime_store.find_by_primary(1).anidb_id == 23
    assert [m.mal_id for m in result.matches] == [1]
    assert len(result.no_matches) == 2


@pytest.mark.asyncio
async def test_library_record_is_adopted(
    anime_store: AnimeStore, matcher: IdentityMatcher, clock: Clock
) -> None:
    """A library-only record with the same AniDB id is linked, not duplicated."""
    orphan = anime_store.upsert(
        {"title": "Bebop", "anidb_id": 23}, library_id="jf-1"
    ).record

    await service(
        FakeListSource([make_entry(1, "Cowboy Bebop")]),
        anime_store,
        clock,
        matcher=matcher,
    ).run()

    record = anime_store.find_by_primary(1)
    assert record.id == orphan.id
    assert record.library_id == "jf-1"
    assert anime_store.count() == 1


@pytest.mark.asyncio
async def test_last_sync_is_recorded(anime_store: AnimeStore, clock: Clock) -> None:
    """The run stores the last sync time and summary counters."""
    housekeeping = HousekeepingStore(anime_store.database)

    await service(
        FakeListSource(SAMPLE), anime_store, clock, housekeeping=housekeeping
    ).run()

    assert housekeeping.get_last_synced("alice") == clock.now
    stats = housekeeping.get_last_stats("alice")
    assert stats["created"] == 3
    assert "matches" not in stats
