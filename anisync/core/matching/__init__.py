"""Identity matching between MyAnimeList, AniDB and library titles."""

from anisync.core.matching.matcher import ExternalIds, IdentityMatcher
from anisync.core.matching.normalize import normalize_title, similarity
from anisync.core.matching.strategies import (
    DirectIdStrategy,
    ExternalMappingStrategy,
    FuzzyTitleStrategy,
    MappingStoreStrategy,
    MatchStrategy,
    score_candidate,
)
from anisync.core.matching.types import (
    ExternalMappingSource,
    MatchDescriptor,
    MatchMethod,
    MatchResult,
    SearchCandidate,
    TitleSearchBackend,
)

__all__ = [
    "DirectIdStrategy",
    "ExternalIds",
    "ExternalMappingSource",
    "ExternalMappingStrategy",
    "FuzzyTitleStrategy",
    "IdentityMatcher",
    "MappingStoreStrategy",
    "MatchDescriptor",
    "MatchMethod",
    "MatchResult",
    "MatchStrategy",
    "SearchCandidate",
    "TitleSearchBackend",
    "normalize_title",
    "score_candidate",
    "similarity",
]
