"""Per-record freshness policy for incremental syncs."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from anisync.models.db.anime import AnimeRecord
from anisync.models.db.sync_history import SyncSource
from anisync.utils.dates import ensure_utc

__all__ = ["FreshnessDecision", "evaluate_freshness"]


@dataclass(frozen=True, slots=True)
class FreshnessDecision:
    """Whether a record's denormalized details should be rewritten.

    `skip` means only the per-user status is refreshed; `full_refresh` means
    the details are rewritten as well. Exactly one of the two is set.
    """

    skip: bool
    full_refresh: bool


FULL = FreshnessDecision(skip=False, full_refresh=True)
STATUS_ONLY = FreshnessDecision(skip=True, full_refresh=False)


def evaluate_freshness(
    record: AnimeRecord | None,
    now: datetime,
    *,
    force: bool = False,
    window: timedelta = timedelta(hours=24),
    source: SyncSource = SyncSource.LIST,
) -> FreshnessDecision:
    """Decide whether a record needs its details re-synced from `source`.

    Args:
        record (AnimeRecord | None): The stored record, None if it does not exist
        now (datetime): Reference time
        force (bool): A forced full refresh ignores the window
        window (timedelta): Minimum age before details are re-synced
        source (SyncSource): Which side's sync timestamp to consult

    Returns:
        FreshnessDecision: The decision for this record
    """
    if force or record is None:
        return FULL

    if source == SyncSource.LIBRARY:
        last_synced = record.last_synced_from_library
    else:
        last_synced = record.last_synced_from_list
    last_synced = ensure_utc(last_synced)

    if last_synced is None or now - last_synced >= window:
        return FULL
    return STATUS_ONLY
