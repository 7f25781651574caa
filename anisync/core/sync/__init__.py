"""Sync Orchestrator: list and library reconciliation flows."""

from anisync.core.sync.backfill import backfill_secondary_ids
from anisync.core.sync.freshness import FreshnessDecision, evaluate_freshness
from anisync.core.sync.library_sync import (
    EpisodeTally,
    LibrarySyncService,
    aggregate_episodes,
    derive_status,
)
from anisync.core.sync.list_sync import ListSyncService
from anisync.core.sync.result import SyncMatch, SyncNoMatch, SyncResult

__all__ = [
    "EpisodeTally",
    "FreshnessDecision",
    "LibrarySyncService",
    "ListSyncService",
    "SyncMatch",
    "SyncNoMatch",
    "SyncResult",
    "aggregate_episodes",
    "backfill_secondary_ids",
    "derive_status",
    "evaluate_freshness",
]
