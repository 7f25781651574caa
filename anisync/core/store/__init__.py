"""Persistent stores backing the sync engine."""

from anisync.core.store.anime import AnimeStore, UpsertResult, identity_key_for
from anisync.core.store.history import HistoryStore
from anisync.core.store.housekeeping import HousekeepingStore
from anisync.core.store.mappings import MappingStore, MappingUpsert

__all__ = [
    "AnimeStore",
    "HistoryStore",
    "HousekeepingStore",
    "MappingStore",
    "MappingUpsert",
    "UpsertResult",
    "identity_key_for",
]
