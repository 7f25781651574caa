"""Identity Matcher: resolve anime across id spaces."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import cachetools

from anisync import log
from anisync.core.matching.normalize import normalize_title
from anisync.core.matching.strategies import (
    DirectIdStrategy,
    ExternalMappingStrategy,
    FuzzyTitleStrategy,
    MappingStoreStrategy,
    MatchStrategy,
)
from anisync.core.matching.types import (
    ExternalMappingSource,
    MatchDescriptor,
    MatchResult,
    TitleSearchBackend,
)
from anisync.core.store.mappings import MappingStore

__all__ = ["ExternalIds", "IdentityMatcher"]

CacheKey = tuple[str, int | None, int | None, int | None]


@dataclass(slots=True)
class ExternalIds:
    """Ids resolved for a known MyAnimeList entry."""

    anidb_id: int | None = None
    tvdb_id: int | None = None
    tmdb_id: int | None = None
    sources: list[str] = field(default_factory=list)
    anomalies: list[str] = field(default_factory=list)

    def as_columns(self) -> dict[str, int]:
        columns = {
            "anidb_id": self.anidb_id,
            "tvdb_id": self.tvdb_id,
            "tmdb_id": self.tmdb_id,
        }
        return {k: v for k, v in columns.items() if v is not None}


class IdentityMatcher:
    """Runs an ordered cascade of match strategies, first success wins.

    A strategy that raises is logged and skipped, so the cascade degrades one
    stage at a time and ends in "no match" rather than an exception. Successful
    results are cached for the lifetime of the matcher, keyed by normalized
    title, year and the known ids.
    """

    def __init__(
        self,
        strategies: Sequence[MatchStrategy],
        *,
        mapping_store: MappingStore | None = None,
        external_sources: Sequence[ExternalMappingSource] = (),
        cache_size: int | None = None,
        cache: cachetools.LRUCache[CacheKey, MatchResult] | None = None,
    ) -> None:
        """Initialize the matcher.

        Args:
            strategies (Sequence[MatchStrategy]): Cascade, in evaluation order
            mapping_store (MappingStore | None): Store used to resolve external
                ids of known MyAnimeList entries
            external_sources (Sequence[ExternalMappingSource]): Fallback sources
                for that resolution, in priority order
            cache_size (int | None): Maximum number of cached results, unbounded
                when None
            cache (LRUCache | None): Existing result cache to share with other
                matchers, overrides `cache_size`
        """
        self.strategies = list(strategies)
        self.mapping_store = mapping_store
        self.external_sources = list(external_sources)
        self._cache: cachetools.LRUCache[CacheKey, MatchResult] = (
            cache
            if cache is not None
            else cachetools.LRUCache(maxsize=cache_size or 2**32)
        )

    @classmethod
    def create(
        cls,
        mapping_store: MappingStore,
        external_sources: Sequence[ExternalMappingSource] = (),
        search_backend: TitleSearchBackend | None = None,
        threshold: float = 0.7,
        cache: cachetools.LRUCache[CacheKey, MatchResult] | None = None,
    ) -> IdentityMatcher:
        """Build the standard cascade.

        Direct id, mapping store and external mappings, followed by a fuzzy
        title search when a search backend is available.
        """
        strategies: list[MatchStrategy] = [
            DirectIdStrategy(),
            MappingStoreStrategy(mapping_store),
            ExternalMappingStrategy(external_sources),
        ]
        if search_backend is not None:
            strategies.append(FuzzyTitleStrategy(search_backend, threshold))
        return cls(
            strategies,
            mapping_store=mapping_store,
            external_sources=external_sources,
            cache=cache,
        )

    @staticmethod
    def cache_key(descriptor: MatchDescriptor) -> CacheKey:
        return (
            normalize_title(descriptor.title),
            descriptor.year,
            descriptor.mal_id,
            descriptor.anidb_id,
        )

    async def match(self, descriptor: MatchDescriptor) -> MatchResult | None:
        """Resolve a descriptor to a MyAnimeList id.

        Args:
            descriptor (MatchDescriptor): What the source knows about the anime

        Returns:
            MatchResult | None: The first successful strategy's result, or None
        """
        key = self.cache_key(descriptor)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        for strategy in self.strategies:
            try:
                result = await strategy.attempt(descriptor)
            except Exception:
                log.warning(
                    f"{strategy.__class__.__name__} failed for "
                    f"$$'{descriptor.title}'$$, trying the next strategy",
                    exc_info=True,
                )
                continue
            if result is not None:
                log.debug(
                    f"Matched $$'{descriptor.title}'$$ to MyAnimeList id "
                    f"$$'{result.mal_id}'$$ "
                    f"$${{method: {result.method}, confidence: {result.confidence}}}$$"
                )
                self._cache[key] = result
                return result

        log.debug(f"No match found for $$'{descriptor.title}'$$")
        return None

    async def resolve_external_ids(self, mal_id: int) -> ExternalIds:
        """Collect AniDB, TVDB and TMDB ids for a MyAnimeList entry.

        The mapping store is consulted first, then each external source in
        priority order; the first value found for an id wins. A later source
        naming a different AniDB id is recorded as an anomaly.
        """
        ids = ExternalIds()
        anidb_from = ""

        if self.mapping_store is not None:
            try:
                mapping = self.mapping_store.find_by_primary(mal_id)
            except Exception:
                log.warning(
                    f"Mapping store lookup failed for MyAnimeList id $$'{mal_id}'$$",
                    exc_info=True,
                )
                mapping = None
            if mapping is not None:
                ids.anidb_id = mapping.anidb_id
                anidb_from = "mapping_store"
                ids.sources.append(anidb_from)

        for source in self.external_sources:
            try:
                row = await source.lookup_by_primary(mal_id)
            except Exception as e:
                log.warning(
                    f"External mapping source $$'{source.name}'$$ failed for "
                    f"MyAnimeList id $$'{mal_id}'$$: {e}"
                )
                continue
            if row is None:
                continue

            ids.sources.append(source.name)
            if row.anidb_id is not None:
                if ids.anidb_id is None:
                    ids.anidb_id = row.anidb_id
                    anidb_from = source.name
                elif row.anidb_id != ids.anidb_id:
                    anomaly = (
                        f"{source.name} maps MyAnimeList {mal_id} to AniDB "
                        f"{row.anidb_id}, {anidb_from} maps it to {ids.anidb_id}"
                    )
                    log.warning(f"Mapping sources disagree: {anomaly}")
                    ids.anomalies.append(anomaly)
            ids.tvdb_id = ids.tvdb_id or row.tvdb_id
            ids.tmdb_id = ids.tmdb_id or row.tmdb_id

        return ids

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, Any]:
        """Size of the match cache and its keys as `title|year|mal|anidb`."""
        return {
            "size": len(self._cache),
            "keys": [
                "|".join("" if part is None else str(part) for part in key)
                for key in self._cache
            ],
        }
