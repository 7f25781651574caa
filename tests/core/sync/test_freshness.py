"""Tests for the per-record freshness policy."""

from datetime import UTC, datetime, timedelta

from anisync.core.sync import evaluate_freshness
from anisync.models.db.anime import AnimeRecord
from anisync.models.db.sync_history import SyncSource

NOW = datetime(2026, 3, 1, tzinfo=UTC)


def test_missing_record_needs_full_refresh() -> None:
    """Records that do not exist yet are always written in full."""
    decision = evaluate_freshness(None, NOW)
    assert decision.full_refresh
    assert not decision.skip


def test_recent_record_is_skipped() -> None:
    """A record synced inside the window only gets a status refresh."""
    record = AnimeRecord(last_synced_from_list=NOW - timedelta(hours=2))
    decision = evaluate_freshness(record, NOW)
    assert decision.skip
    assert not decision.full_refresh


def test_old_record_and_force_refresh() -> None:
    """Stale records and forced runs are refreshed in full."""
    record = AnimeRecord(last_synced_from_list=NOW - timedelta(hours=30))
    assert evaluate_freshness(record, NOW).full_refresh

    recent = AnimeRecord(last_synced_from_list=NOW)
    assert evaluate_freshness(recent, NOW, force=True).full_refresh


def test_freshness_per_source() -> None:
    """The library side consults its own sync timestamp."""
    record = AnimeRecord(last_synced_from_list=NOW, last_synced_from_library=None)
    assert evaluate_freshness(record, NOW, source=SyncSource.LIBRARY).full_refresh
    assert evaluate_freshness(
        record, NOW, window=timedelta(minutes=1), source=SyncSource.LIST
    ).skip
