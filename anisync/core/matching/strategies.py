"""Match strategies, tried in order by the IdentityMatcher."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from anisync import log
from anisync.core.matching.normalize import normalize_title, similarity
from anisync.core.matching.types import (
    ExternalMappingSource,
    MatchDescriptor,
    MatchMethod,
    MatchResult,
    SearchCandidate,
    TitleSearchBackend,
)
from anisync.core.store.mappings import MappingStore

__all__ = [
    "DirectIdStrategy",
    "ExternalMappingStrategy",
    "FuzzyTitleStrategy",
    "MappingStoreStrategy",
    "MatchStrategy",
    "score_candidate",
]

TITLE_WEIGHT = 0.6
YEAR_WEIGHT = 0.2
MEDIA_TYPE_WEIGHT = 0.1
EPISODES_WEIGHT = 0.1
SERIES_MEDIA_TYPES = frozenset({"tv", "ova"})


class MatchStrategy(ABC):
    """One stage of the matching cascade."""

    method: MatchMethod

    @abstractmethod
    async def attempt(self, descriptor: MatchDescriptor) -> MatchResult | None:
        """Try to resolve the descriptor; return None to defer to the next stage."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"


class DirectIdStrategy(MatchStrategy):
    """Accept a MyAnimeList id the descriptor already carries."""

    method = MatchMethod.DIRECT

    async def attempt(self, descriptor: MatchDescriptor) -> MatchResult | None:
        if descriptor.mal_id is None:
            return None
        return MatchResult(
            mal_id=descriptor.mal_id,
            anidb_id=descriptor.anidb_id,
            title=descriptor.title,
            method=self.method,
            confidence=1.0,
        )


class MappingStoreStrategy(MatchStrategy):
    """Look the AniDB id up in the local mapping store."""

    method = MatchMethod.MAPPING_STORE

    def __init__(self, store: MappingStore) -> None:
        self.store = store

    async def attempt(self, descriptor: MatchDescriptor) -> MatchResult | None:
        if descriptor.anidb_id is None:
            return None
        mapping = self.store.find_by_secondary(descriptor.anidb_id)
        if mapping is None:
            return None
        return MatchResult(
            mal_id=mapping.mal_id,
            anidb_id=mapping.anidb_id,
            title=mapping.title,
            method=self.method,
            confidence=1.0,
        )


class ExternalMappingStrategy(MatchStrategy):
    """Query external mapping sources in priority order.

    The first source with a row for the AniDB id decides the match. The
    remaining sources are still consulted so that disagreement between them is
    logged and attached to the result as an anomaly. A failing source is
    logged and skipped.
    """

    method = MatchMethod.EXTERNAL_MAPPING
    confidence = 0.9

    def __init__(self, sources: Sequence[ExternalMappingSource]) -> None:
        self.sources = list(sources)

    async def attempt(self, descriptor: MatchDescriptor) -> MatchResult | None:
        if descriptor.anidb_id is None or not self.sources:
            return None

        result: MatchResult | None = None
        chosen_by = ""
        for source in self.sources:
            try:
                row = await source.lookup_by_secondary(descriptor.anidb_id)
            except Exception as e:
                log.warning(
                    f"External mapping source $$'{source.name}'$$ failed for AniDB "
                    f"id $$'{descriptor.anidb_id}'$$: {e}"
                )
                continue
            if row is None or row.mal_id is None:
                continue

            if result is None:
                chosen_by = source.name
                result = MatchResult(
                    mal_id=row.mal_id,
                    anidb_id=descriptor.anidb_id,
                    title=descriptor.title,
                    method=self.method,
                    confidence=self.confidence,
                )
            elif row.mal_id != result.mal_id:
                anomaly = (
                    f"{source.name} maps AniDB {descriptor.anidb_id} to MyAnimeList "
                    f"{row.mal_id}, {chosen_by} maps it to {result.mal_id}"
                )
                log.warning(f"Mapping sources disagree: {anomaly}")
                result.anomalies.append(anomaly)
        return result


def score_candidate(descriptor: MatchDescriptor, candidate: SearchCandidate) -> float:
    """Weighted composite score of a search hit, in [0, 1].

    Title similarity weighs 60%, a release year within one year 20% (only
    counted when both years are known), a series-like media type 10% and a
    known episode count 10%. The sum is divided by the weights that applied.
    """
    titles = [
        similarity(ours, theirs)
        for ours in descriptor.titles
        if ours
        for theirs in candidate.titles
        if theirs
    ]
    score = max(titles, default=0.0) * TITLE_WEIGHT
    weights = TITLE_WEIGHT

    if descriptor.year and candidate.year:
        weights += YEAR_WEIGHT
        if abs(descriptor.year - candidate.year) <= 1:
            score += YEAR_WEIGHT

    weights += MEDIA_TYPE_WEIGHT
    if (candidate.media_type or "").lower() in SERIES_MEDIA_TYPES:
        score += MEDIA_TYPE_WEIGHT

    weights += EPISODES_WEIGHT
    if candidate.num_episodes and candidate.num_episodes > 0:
        score += EPISODES_WEIGHT

    return score / weights


class FuzzyTitleStrategy(MatchStrategy):
    """Search by title and keep the best candidate above a threshold."""

    method = MatchMethod.FUZZY_TITLE

    def __init__(self, backend: TitleSearchBackend, threshold: float = 0.7) -> None:
        self.backend = backend
        self.threshold = threshold

    async def attempt(self, descriptor: MatchDescriptor) -> MatchResult | None:
        query = normalize_title(descriptor.title)
        if not query:
            return None

        candidates = await self.backend.search(query)

        best: SearchCandidate | None = None
        best_score = 0.0
        for candidate in candidates:
            candidate_score = score_candidate(descriptor, candidate)
            if candidate_score > best_score:
                best, best_score = candidate, candidate_score

        if best is None or best_score < self.threshold:
            log.debug(
                f"No title match above {self.threshold:.2f} for "
                f"$$'{descriptor.title}'$$ (best {best_score:.2f})"
            )
            return None

        return MatchResult(
            mal_id=best.mal_id,
            anidb_id=best.anidb_id or descriptor.anidb_id,
            title=best.title,
            method=self.method,
            confidence=round(best_score, 4),
        )
