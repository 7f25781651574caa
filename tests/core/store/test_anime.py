"""Tests for the anime record store."""

from datetime import UTC, date, datetime, timedelta

import pytest

from anisync.config.database import AniSyncDB
from anisync.core.store.anime import AnimeStore, identity_key_for
from anisync.exceptions import RecordNotFoundError
from anisync.models.db.anime import ExternalIdKind, WatchStatus


@pytest.fixture
def store(memory_db: AniSyncDB) -> AnimeStore:
    """Provide an empty anime store."""
    return AnimeStore(memory_db)


def test_identity_key_for() -> None:
    """The MyAnimeList id is preferred over the library id."""
    assert identity_key_for(1, "abc") == "mal:1"
    assert identity_key_for(None, "abc") == "library:abc"
    with pytest.raises(ValueError):
        identity_key_for(None, None)


def test_upsert_creates_then_updates(store: AnimeStore) -> None:
    """The second upsert of the same id updates instead of inserting."""
    first = store.upsert({"title": "Cowboy Bebop", "num_episodes": 26}, mal_id=1)
    second = store.upsert({"title": "Cowboy Bebop (TV)"}, mal_id=1)

    assert first.created
    assert not second.created
    assert second.record.id == first.record.id
    assert second.record.title == "Cowboy Bebop (TV)"
    assert second.record.num_episodes == 26
    assert second.record.sync_version == 2
    assert store.count() == 1


def test_upsert_never_replaces_external_ids(store: AnimeStore) -> None:
    """Known external ids survive later upserts."""
    store.upsert({"title": "Cowboy Bebop", "anidb_id": 23}, mal_id=1)
    result = store.upsert({"title": "Cowboy Bebop", "anidb_id": 99}, mal_id=1)

    assert result.record.anidb_id == 23


def test_upsert_rejects_managed_columns(store: AnimeStore) -> None:
    """Identity and bookkeeping columns cannot be set by callers."""
    with pytest.raises(ValueError):
        store.upsert({"title": "X", "sync_version": 5}, mal_id=1)


def test_upsert_revives_retired_records(store: AnimeStore) -> None:
    """Touching a retired record makes it active again."""
    record = store.upsert({"title": "Trigun"}, mal_id=6).record
    store.retire(record.id)
    assert store.count(active_only=True) == 0

    store.upsert({"title": "Trigun"}, mal_id=6)

    assert store.count(active_only=True) == 1


def test_library_record_adoption(store: AnimeStore) -> None:
    """A library-only record can later be linked to a MyAnimeList id."""
    record = store.upsert({"title": "Bebop"}, library_id="jf-1").record
    assert record.identity_key == "library:jf-1"
    assert record.library_id == "jf-1"

    adopted = store.adopt(record.id, 1)

    assert adopted.mal_id == 1
    assert adopted.identity_key == "mal:1"
    assert store.find_by_primary(1).id == record.id


def test_adopt_missing_record(store: AnimeStore) -> None:
    """Adopting an unknown record raises."""
    with pytest.raises(RecordNotFoundError):
        store.adopt(12345, 1)


def test_find_by_external_id(store: AnimeStore) -> None:
    """Records are found by AniDB id and by library id."""
    linked = store.upsert({"title": "Cowboy Bebop", "anidb_id": 23}, mal_id=1)
    unlinked = store.upsert({"title": "Bebop", "anidb_id": 23}, library_id="jf-1")

    assert store.find_by_external_id(ExternalIdKind.ANIDB, 23).id == (
        linked.record.id
    )
    assert store.find_by_external_id("anidb", 23, unlinked_only=True).id == (
        unlinked.record.id
    )
    assert store.find_by_external_id("library", "jf-1").id == unlinked.record.id
    assert store.find_by_external_id("tvdb", 1) is None


def test_find_by_title(store: AnimeStore) -> None:
    """Exact matches beat partial ones and alternative titles count."""
    store.upsert({"title": "Cowboy Bebop: The Movie"}, mal_id=5)
    store.upsert(
        {"title": "Cowboy Bebop", "alternative_titles": ["Kauboi Bibappu"]}, mal_id=1
    )

    assert store.find_by_title("cowboy bebop").mal_id == 1
    assert store.find_by_title("KAUBOI BIBAPPU").mal_id == 1
    assert store.find_by_title("The Movie").mal_id == 5
    assert store.find_by_title("Naruto") is None
    assert store.find_by_title("  ") is None


def test_merge_external_ids(store: AnimeStore) -> None:
    """Only missing external ids are filled in."""
    record = store.upsert({"title": "Cowboy Bebop", "anidb_id": 23}, mal_id=1).record

    merged = store.merge_external_ids(
        record.id, {"anidb_id": 99, "tvdb_id": 76885, "title": "ignored"}
    )

    assert merged.anidb_id == 23
    assert merged.tvdb_id == 76885
    assert merged.title == "Cowboy Bebop"


def test_upsert_user_status_partial(store: AnimeStore) -> None:
    """Updating a status only touches the supplied fields."""
    record = store.upsert({"title": "Cowboy Bebop"}, mal_id=1).record
    store.upsert_user_status(
        record.id,
        "alice",
        {
            "status": "watching",
            "score": 8,
            "num_episodes_watched": 5,
            "start_date": date(2024, 1, 1),
        },
    )

    status = store.upsert_user_status(
        record.id, "alice", {"num_episodes_watched": 6}
    )

    assert status.status == WatchStatus.WATCHING
    assert status.score == 8
    assert status.num_episodes_watched == 6
    assert status.start_date == date(2024, 1, 1)


def test_upsert_user_status_rejects_unknown_fields(store: AnimeStore) -> None:
    """Fields outside the list status columns are rejected."""
    record = store.upsert({"title": "Cowboy Bebop"}, mal_id=1).record
    with pytest.raises(ValueError):
        store.upsert_user_status(record.id, "alice", {"title": "nope"})


def test_user_statuses_are_per_user(store: AnimeStore) -> None:
    """Each user has an independent status; removing one keeps the other."""
    record = store.upsert({"title": "Cowboy Bebop"}, mal_id=1).record
    store.upsert_user_status(record.id, "alice", {"status": "completed"})
    store.upsert_user_status(record.id, "bob", {"status": "dropped"})

    assert store.remove_user_status(record.id, "alice")
    assert not store.remove_user_status(record.id, "alice")
    assert store.get_user_status(record.id, "alice") is None
    assert store.get_user_status(record.id, "bob").status == WatchStatus.DROPPED


def test_find_needing_sync(store: AnimeStore) -> None:
    """Stale and never-synced list records need a sync, fresh ones do not."""
    now = datetime(2026, 1, 10, tzinfo=UTC)
    store.upsert({"title": "Never"}, mal_id=1)
    store.upsert(
        {"title": "Stale", "last_synced_from_list": now - timedelta(days=2)}, mal_id=2
    )
    store.upsert({"title": "Fresh", "last_synced_from_list": now}, mal_id=3)
    store.upsert({"title": "Library only"}, library_id="jf-9")

    stale = store.find_needing_sync(now - timedelta(days=1))

    assert [r.mal_id for r in stale] == [1, 2]
    assert [r.mal_id for r in store.find_missing_secondary(limit=2)] == [1, 2]


def test_user_stats(store: AnimeStore) -> None:
    """Stats count statuses per user and stale entries."""
    now = datetime(2026, 1, 10, tzinfo=UTC)
    fresh = store.upsert({"title": "A", "last_synced_from_list": now}, mal_id=1)
    stale = store.upsert({"title": "B"}, mal_id=2)
    store.upsert_user_status(fresh.record.id, "alice", {"status": "watching"})
    store.upsert_user_status(stale.record.id, "alice", {"status": "completed"})
    store.upsert_user_status(stale.record.id, "bob", {"status": "completed"})

    stats = store.user_stats("alice", now - timedelta(days=1))

    assert stats["totalAnime"] == 2
    assert stats["byStatus"]["watching"] == 1
    assert stats["byStatus"]["completed"] == 1
    assert stats["byStatus"]["dropped"] == 0
    assert stats["needsSync"] == 1
