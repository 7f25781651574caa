"""Tests for the progress tracker."""

from datetime import UTC, datetime, timedelta

import pytest

from anisync.core.progress import (
    ProgressTracker,
    SessionStatus,
    SessionType,
)
from anisync.exceptions import SessionNotFoundError
from anisync.models.db.sync_history import SyncOutcome


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Provide a controllable clock."""
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> ProgressTracker:
    """Provide a tracker with a one hour inactivity window."""
    return ProgressTracker(inactivity=timedelta(hours=1), clock=clock)


def test_start_session_is_started(tracker: ProgressTracker) -> None:
    """A new session starts in the started state with zero progress."""
    session = tracker.start_session(SessionType.LIST_SYNC, 10, user_id="alice")

    assert session.status == SessionStatus.STARTED
    assert session.percentage == 0
    assert tracker.get(session.session_id) is not None


def test_percentage_after_four_of_ten(tracker: ProgressTracker) -> None:
    """Four recorded items out of ten report 40 percent and running."""
    session_id = tracker.start_session(SessionType.LIST_SYNC, 10).session_id

    for i in range(4):
        session = tracker.record_item(session_id, f"item {i}", SyncOutcome.ADDED)

    assert session.percentage == 40
    assert session.status == SessionStatus.RUNNING
    assert session.added_entries == 4


def test_auto_completes_when_total_reached(tracker: ProgressTracker) -> None:
    """Reaching the declared total completes a running session."""
    session_id = tracker.start_session(SessionType.LIST_SYNC, 2).session_id

    tracker.record_item(session_id, "one", SyncOutcome.UPDATED)
    session = tracker.record_item(session_id, "two", SyncOutcome.SKIPPED)

    assert session.status == SessionStatus.COMPLETED
    assert session.percentage == 100
    assert session.end_time is not None
    assert session.updated_entries == 1
    assert session.skipped_entries == 1


def test_errors_are_itemized(tracker: ProgressTracker) -> None:
    """Error outcomes keep the label and message."""
    session_id = tracker.start_session(SessionType.LIBRARY_SYNC, 5).session_id

    session = tracker.record_item(session_id, "Bebop", SyncOutcome.ERROR, "boom")

    assert session.error_entries == 1
    assert session.errors[0].item == "Bebop"
    assert session.errors[0].message == "boom"
    assert session.current_item == "Bebop"


def test_fail_sets_duration(tracker: ProgressTracker, clock: FakeClock) -> None:
    """Failing a session records the message and its duration."""
    session_id = tracker.start_session(SessionType.MAPPING_IMPORT).session_id
    clock.advance(seconds=30)

    session = tracker.fail(session_id, "download failed")

    assert session.status == SessionStatus.FAILED
    assert session.message == "download failed"
    assert session.duration == 30


def test_complete_stores_result(tracker: ProgressTracker) -> None:
    """Completing a session keeps the final message and result."""
    session_id = tracker.start_session(SessionType.LIST_SYNC).session_id

    session = tracker.complete(session_id, "done", {"created": 1})

    assert session.status == SessionStatus.COMPLETED
    assert session.message == "done"
    assert session.result == {"created": 1}


def test_sessions_are_independent(tracker: ProgressTracker) -> None:
    """Updating one session leaves another untouched."""
    first = tracker.start_session(SessionType.LIST_SYNC, 3).session_id
    second = tracker.start_session(SessionType.LIST_SYNC, 3).session_id

    tracker.record_item(first, "a", SyncOutcome.ADDED)

    other = tracker.get(second)
    assert other is not None
    assert other.processed_items == 0


def test_sweep_discards_inactive_sessions(
    tracker: ProgressTracker, clock: FakeClock
) -> None:
    """Sessions idle for longer than the window are swept."""
    stale = tracker.start_session(SessionType.LIST_SYNC).session_id
    clock.advance(minutes=45)
    fresh = tracker.start_session(SessionType.LIST_SYNC).session_id
    clock.advance(minutes=30)

    assert tracker.sweep() == 1
    assert tracker.get(stale) is None
    assert tracker.get(fresh) is not None


def test_unknown_session_raises(tracker: ProgressTracker) -> None:
    """Mutating an unknown session raises SessionNotFoundError."""
    with pytest.raises(SessionNotFoundError):
        tracker.record_item("missing", "x", SyncOutcome.ADDED)


def test_wire_shape_uses_camel_case(tracker: ProgressTracker) -> None:
    """The wire representation uses camelCase keys."""
    session_id = tracker.start_session(SessionType.LIST_SYNC, 4).session_id
    tracker.record_item(session_id, "a", SyncOutcome.ADDED)

    wire = tracker.get(session_id).to_wire()

    assert wire["sessionId"] == session_id
    assert wire["totalItems"] == 4
    assert wire["processedItems"] == 1
    assert wire["addedEntries"] == 1
    assert wire["percentage"] == 25
    assert wire["status"] == "running"
