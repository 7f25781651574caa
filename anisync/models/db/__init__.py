"""Models for AniSync database tables."""

from anisync.models.db.anime import (
    AnimeRecord,
    ExternalIdKind,
    UserListStatus,
    WatchStatus,
)
from anisync.models.db.base import Base
from anisync.models.db.housekeeping import Housekeeping
from anisync.models.db.mapping import (
    AnimeMapping,
    ImportState,
    ImportStatus,
    MappingSource,
)
from anisync.models.db.sync_history import SyncHistory, SyncOutcome, SyncSource

__all__ = [
    "AnimeMapping",
    "AnimeRecord",
    "Base",
    "ExternalIdKind",
    "Housekeeping",
    "ImportState",
    "ImportStatus",
    "MappingSource",
    "SyncHistory",
    "SyncOutcome",
    "SyncSource",
    "UserListStatus",
    "WatchStatus",
]
