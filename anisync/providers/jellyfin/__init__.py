"""Jellyfin library source."""

from anisync.providers.jellyfin.classifier import HeuristicAnimeClassifier
from anisync.providers.jellyfin.client import JellyfinClient

__all__ = ["HeuristicAnimeClassifier", "JellyfinClient"]
