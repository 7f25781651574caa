"""MyAnimeList list source."""

from anisync.providers.mal.client import MalClient, to_list_entry

__all__ = ["MalClient", "to_list_entry"]
