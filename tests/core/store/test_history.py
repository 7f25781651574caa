"""Tests for the sync history and housekeeping stores."""

from datetime import UTC, datetime, timedelta

from anisync.config.database import AniSyncDB
from anisync.core.store.history import HistoryStore
from anisync.core.store.housekeeping import HousekeepingStore
from anisync.models.db.sync_history import SyncOutcome, SyncSource


def test_history_record_and_query(memory_db: AniSyncDB) -> None:
    """Recorded items are listed per session and errors per user."""
    store = HistoryStore(memory_db)
    store.record(
        user_id="alice",
        source=SyncSource.LIST,
        title="Cowboy Bebop",
        outcome=SyncOutcome.ADDED,
        session_id="s1",
        mal_id=1,
    )
    store.record(
        user_id="alice",
        source=SyncSource.LIST,
        title="Trigun",
        outcome=SyncOutcome.ERROR,
        session_id="s1",
        error_message="boom",
    )

    assert [h.title for h in store.for_session("s1")] == ["Cowboy Bebop", "Trigun"]
    (error,) = store.errors_for_user("alice")
    assert error.error_message == "boom"
    assert store.errors_for_user("bob") == []


def test_history_cleanup(memory_db: AniSyncDB) -> None:
    """Only rows older than the cutoff are deleted."""
    store = HistoryStore(memory_db)
    store.record(
        user_id="alice",
        source=SyncSource.LIBRARY,
        title="Old",
        outcome=SyncOutcome.UPDATED,
    )

    assert store.cleanup(days_old=30) == 0
    future = datetime.now(UTC) + timedelta(days=31)
    assert store.cleanup(days_old=30, now=future) == 1


def test_housekeeping_last_synced(memory_db: AniSyncDB) -> None:
    """Last sync times and stats round through the key-value table."""
    store = HousekeepingStore(memory_db)
    synced_at = datetime(2026, 1, 1, 12, tzinfo=UTC)

    assert store.get_last_synced("alice") is None
    store.set_last_synced("alice", synced_at, {"created": 3})
    store.set_last_synced("bob", synced_at + timedelta(hours=1))

    assert store.get_last_synced("alice") == synced_at
    assert store.get_last_stats("alice") == {"created": 3}
    assert store.get_last_stats("bob") is None
    assert store.last_synced_by_user() == {
        "alice": synced_at,
        "bob": synced_at + timedelta(hours=1),
    }
