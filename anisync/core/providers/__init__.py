"""Interfaces of the list and library sources the sync engine consumes."""

from anisync.core.providers.library import (
    AnimeClassifier,
    LibraryEpisode,
    LibrarySeries,
    LibrarySource,
)
from anisync.core.providers.list import ListEntry, ListSource

__all__ = [
    "AnimeClassifier",
    "LibraryEpisode",
    "LibrarySeries",
    "LibrarySource",
    "ListEntry",
    "ListSource",
]
