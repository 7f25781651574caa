"""Progress Tracker for long-running sync runs.

Each run owns a session, addressed by an opaque id, that moves through
`started -> running -> completed | failed`. Pollers read sessions by id; the
run writes to its session through the tracker. Sessions idle for longer than
the inactivity window are swept away.
"""

import uuid
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from anisync import log
from anisync.exceptions import SessionNotFoundError
from anisync.models.db.sync_history import SyncOutcome
from anisync.utils.dates import utcnow

__all__ = [
    "InMemorySessionStore",
    "ProgressTracker",
    "SessionStatus",
    "SessionStore",
    "SessionType",
    "SyncSession",
]


class SessionStatus(StrEnum):
    STARTED = "started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


class SessionType(StrEnum):
    LIST_SYNC = "list_sync"
    LIBRARY_SYNC = "library_sync"
    MAPPING_IMPORT = "mapping_import"
    SCHEDULED_SYNC = "scheduled_sync"


class ItemError(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    item: str
    message: str


class SyncSession(BaseModel):
    """Observable state of one run, serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, validate_assignment=True
    )

    session_id: str
    type: SessionType
    user_id: str | None = None
    total_items: int = Field(default=0, ge=0)
    processed_items: int = 0
    added_entries: int = 0
    updated_entries: int = 0
    error_entries: int = 0
    skipped_entries: int = 0
    status: SessionStatus = SessionStatus.STARTED
    message: str = ""
    current_item: str | None = None
    start_time: datetime
    last_update: datetime
    end_time: datetime | None = None
    duration: float | None = None
    errors: list[ItemError] = Field(default_factory=list)
    result: dict[str, Any] | None = None

    @computed_field
    @property
    def percentage(self) -> int:
        if self.total_items <= 0:
            return 0
        return min(100, round(self.processed_items * 100 / self.total_items))

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SessionStore(Protocol):
    """Backing table for sessions; replace to share sessions across processes."""

    def get(self, session_id: str) -> SyncSession | None: ...

    def put(self, session: SyncSession) -> None: ...

    def delete(self, session_id: str) -> None: ...

    def __iter__(self) -> Iterator[SyncSession]: ...


class InMemorySessionStore:
    """Process-local session table."""

    def __init__(self) -> None:
        self._sessions: dict[str, SyncSession] = {}

    def get(self, session_id: str) -> SyncSession | None:
        return self._sessions.get(session_id)

    def put(self, session: SyncSession) -> None:
        self._sessions[session.session_id] = session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __iter__(self) -> Iterator[SyncSession]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)


_OUTCOME_COUNTERS = {
    SyncOutcome.ADDED: "added_entries",
    SyncOutcome.UPDATED: "updated_entries",
    SyncOutcome.ERROR: "error_entries",
    SyncOutcome.SKIPPED: "skipped_entries",
}


class ProgressTracker:
    """Creates, mutates and expires sync sessions.

    Every mutation recomputes the percentage and, when a running session has
    processed its declared total, completes it.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        *,
        inactivity: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the tracker.

        Args:
            store (SessionStore | None): Session table, in-memory by default
            inactivity (timedelta): Idle time after which a session is discarded
            clock (Callable[[], datetime]): Source of the current time
        """
        self.store: SessionStore = (
            store if store is not None else InMemorySessionStore()
        )
        self.inactivity = inactivity
        self.clock = clock

    def start_session(
        self,
        session_type: SessionType,
        total: int = 0,
        *,
        user_id: str | None = None,
        message: str = "",
        session_id: str | None = None,
    ) -> SyncSession:
        """Create a session in the `started` state.

        Args:
            session_type (SessionType): Kind of run
            total (int): Declared (possibly provisional) number of items
            user_id (str | None): User the run belongs to
            message (str): Initial human-readable message
            session_id (str | None): Explicit id, generated when omitted

        Returns:
            SyncSession: A copy of the new session
        """
        now = self.clock()
        session = SyncSession(
            session_id=session_id or uuid.uuid4().hex,
            type=session_type,
            user_id=user_id,
            total_items=max(0, total),
            message=message or f"Starting {session_type}",
            start_time=now,
            last_update=now,
        )
        self.store.put(session)
        log.debug(
            f"Started session $$'{session.session_id}'$$ "
            f"$${{type: {session_type}, user: {user_id}, total: {total}}}$$"
        )
        return session.model_copy(deep=True)

    def _require(self, session_id: str) -> SyncSession:
        session = self.store.get(session_id)
        if session is None or self._is_expired(session):
            raise SessionNotFoundError(f"Progress session '{session_id}' not found")
        return session

    def _finish(self, session: SyncSession, status: SessionStatus) -> None:
        now = self.clock()
        session.status = status
        session.end_time = now
        session.duration = (now - session.start_time).total_seconds()
        session.current_item = None

    def _commit(self, session: SyncSession) -> SyncSession:
        session.last_update = self.clock()
        if (
            session.status == SessionStatus.RUNNING
            and session.total_items > 0
            and session.processed_items >= session.total_items
        ):
            self._finish(session, SessionStatus.COMPLETED)
            if not session.message or session.message.startswith("Processing"):
                session.message = (
                    f"Processed {session.processed_items} of "
                    f"{session.total_items} items"
                )
        self.store.put(session)
        return session.model_copy(deep=True)

    def update(
        self,
        session_id: str,
        *,
        total: int | None = None,
        processed: int | None = None,
        message: str | None = None,
        current_item: str | None = None,
        status: SessionStatus | None = None,
    ) -> SyncSession:
        """Apply a partial update to a session.

        Raises:
            SessionNotFoundError: If the session does not exist or has expired.
        """
        session = self._require(session_id)
        if total is not None:
            session.total_items = max(0, total)
        if processed is not None:
            session.processed_items = max(0, processed)
        if message is not None:
            session.message = message
        if current_item is not None:
            session.current_item = current_item
        if status is not None:
            session.status = status
        return self._commit(session)

    def record_item(
        self,
        session_id: str,
        label: str,
        outcome: SyncOutcome,
        error: str | None = None,
    ) -> SyncSession:
        """Count one processed item.

        Increments `processed_items` and the counter matching `outcome`, sets
        the current item message and moves a `started` session to `running`.

        Args:
            session_id (str): Session to update
            label (str): Human-readable item name, e.g. its title
            outcome (SyncOutcome): Result of processing the item
            error (str | None): Error detail, kept in the itemized error list

        Raises:
            SessionNotFoundError: If the session does not exist or has expired.
        """
        session = self._require(session_id)
        outcome = SyncOutcome(outcome)

        session.processed_items += 1
        counter = _OUTCOME_COUNTERS[outcome]
        setattr(session, counter, getattr(session, counter) + 1)
        if outcome == SyncOutcome.ERROR:
            session.errors.append(
                ItemError(item=label, message=error or "Unknown error")
            )

        session.current_item = label
        if session.total_items:
            session.message = (
                f"Processing {label} ({session.processed_items}/{session.total_items})"
            )
        else:
            session.message = f"Processing {label}"
        if session.status == SessionStatus.STARTED:
            session.status = SessionStatus.RUNNING
        return self._commit(session)

    def complete(
        self,
        session_id: str,
        message: str = "",
        result: dict[str, Any] | None = None,
    ) -> SyncSession:
        """Mark a session as completed with a final message and result."""
        session = self._require(session_id)
        if session.status != SessionStatus.COMPLETED:
            self._finish(session, SessionStatus.COMPLETED)
        if message:
            session.message = message
        if result is not None:
            session.result = result
        return self._commit(session)

    def fail(self, session_id: str, message: str) -> SyncSession:
        """Mark a session as failed."""
        session = self._require(session_id)
        self._finish(session, SessionStatus.FAILED)
        session.message = message
        return self._commit(session)

    def get(self, session_id: str) -> SyncSession | None:
        """Return a copy of a session, or None if it is unknown or expired."""
        session = self.store.get(session_id)
        if session is None:
            return None
        if self._is_expired(session):
            self.store.delete(session_id)
            return None
        return session.model_copy(deep=True)

    def remove(self, session_id: str) -> None:
        self.store.delete(session_id)

    def _is_expired(self, session: SyncSession) -> bool:
        return self.clock() - session.last_update > self.inactivity

    def sweep(self) -> int:
        """Discard sessions idle for longer than the inactivity window.

        Returns:
            int: Number of discarded sessions
        """
        expired = [s.session_id for s in self.store if self._is_expired(s)]
        for session_id in expired:
            self.store.delete(session_id)
        if expired:
            log.debug(f"Swept {len(expired)} inactive progress session(s)")
        return len(expired)

    def sessions(self) -> list[SyncSession]:
        return [s.model_copy(deep=True) for s in self.store if not self._is_expired(s)]
