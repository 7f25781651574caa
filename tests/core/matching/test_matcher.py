"""Tests for the identity matcher and its strategies."""

from collections.abc import Sequence

import pytest

from anisync.config.database import AniSyncDB
from anisync.core.matching import (
    ExternalMappingStrategy,
    FuzzyTitleStrategy,
    IdentityMatcher,
    MatchDescriptor,
    MatchMethod,
    MatchResult,
    MatchStrategy,
    SearchCandidate,
    score_candidate,
)
from anisync.core.store.mappings import MappingStore, MappingUpsert
from anisync.models.schemas.datasets import ExternalMappingRow


class FakeSearch:
    """Title search backend returning canned candidates."""

    def __init__(self, candidates: Sequence[SearchCandidate] = ()) -> None:
        self.candidates = list(candidates)
        self.queries: list[str] = []

    async def search(self, query: str) -> list[SearchCandidate]:
        self.queries.append(query)
        return self.candidates


class FakeMappingSource:
    """External mapping source backed by a list of rows."""

    def __init__(self, name: str, rows: Sequence[ExternalMappingRow] = ()) -> None:
        self.name = name
        self.rows = list(rows)
        self.fail = False

    async def lookup_by_secondary(self, anidb_id: int) -> ExternalMappingRow | None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return next((r for r in self.rows if r.anidb_id == anidb_id), None)

    async def lookup_by_primary(self, mal_id: int) -> ExternalMappingRow | None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        return next((r for r in self.rows if r.mal_id == mal_id), None)


class ExplodingStrategy(MatchStrategy):
    method = MatchMethod.DIRECT

    async def attempt(self, descriptor: MatchDescriptor) -> MatchResult | None:
        raise RuntimeError("boom")


@pytest.fixture
def mapping_store(memory_db: AniSyncDB) -> MappingStore:
    """Provide a mapping store with one imported mapping."""
    store = MappingStore(memory_db)
    store.upsert_batch([MappingUpsert(mal_id=1, anidb_id=23, title="Cowboy Bebop")])
    return store


def bebop_candidate(**overrides) -> SearchCandidate:
    values = {
        "mal_id": 1,
        "title": "Cowboy Bebop",
        "year": 1998,
        "media_type": "tv",
        "num_episodes": 26,
    }
    values.update(overrides)
    return SearchCandidate(**values)


@pytest.mark.asyncio
async def test_direct_id_short_circuits(mapping_store: MappingStore) -> None:
    """A descriptor with a MyAnimeList id never reaches the search backend."""
    search = FakeSearch([bebop_candidate(mal_id=99)])
    matcher = IdentityMatcher.create(mapping_store, search_backend=search)

    result = await matcher.match(MatchDescriptor(title="Cowboy Bebop", mal_id=5))

    assert result is not None
    assert result.mal_id == 5
    assert result.method == MatchMethod.DIRECT
    assert result.confidence == 1.0
    assert search.queries == []


@pytest.mark.asyncio
async def test_mapping_store_match(mapping_store: MappingStore) -> None:
    """A known AniDB id resolves through the mapping store."""
    matcher = IdentityMatcher.create(mapping_store)

    result = await matcher.match(MatchDescriptor(title="Bebop", anidb_id=23))

    assert result is not None
    assert result.mal_id == 1
    assert result.method == MatchMethod.MAPPING_STORE


@pytest.mark.asyncio
async def test_external_mapping_match(mapping_store: MappingStore) -> None:
    """Unknown AniDB ids fall through to the external sources."""
    source = FakeMappingSource(
        "shinkrodb", [ExternalMappingRow(mal_id=30, anidb_id=400)]
    )
    matcher = IdentityMatcher.create(mapping_store, [source])

    result = await matcher.match(MatchDescriptor(title="Other", anidb_id=400))

    assert result is not None
    assert result.mal_id == 30
    assert result.method == MatchMethod.EXTERNAL_MAPPING
    assert result.confidence == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_external_sources_disagreeing_is_an_anomaly() -> None:
    """The first source wins and the disagreement is recorded."""
    first = FakeMappingSource("first", [ExternalMappingRow(mal_id=30, anidb_id=400)])
    second = FakeMappingSource("second", [ExternalMappingRow(mal_id=31, anidb_id=400)])
    strategy = ExternalMappingStrategy([first, second])

    result = await strategy.attempt(MatchDescriptor(title="X", anidb_id=400))

    assert result is not None
    assert result.mal_id == 30
    assert len(result.anomalies) == 1
    assert "second" in result.anomalies[0]


@pytest.mark.asyncio
async def test_failing_external_source_is_skipped() -> None:
    """A raising source does not stop the next one from answering."""
    broken = FakeMappingSource("broken")
    broken.fail = True
    working = FakeMappingSource(
        "working", [ExternalMappingRow(mal_id=7, anidb_id=70)]
    )
    strategy = ExternalMappingStrategy([broken, working])

    result = await strategy.attempt(MatchDescriptor(title="X", anidb_id=70))

    assert result is not None
    assert result.mal_id == 7


@pytest.mark.asyncio
async def test_fuzzy_title_match_above_threshold() -> None:
    """A close title with matching year and type is accepted."""
    search = FakeSearch([bebop_candidate(), bebop_candidate(mal_id=2, title="Trigun")])
    strategy = FuzzyTitleStrategy(search, threshold=0.7)

    result = await strategy.attempt(MatchDescriptor(title="Cowboy Bebop", year=1998))

    assert result is not None
    assert result.mal_id == 1
    assert result.method == MatchMethod.FUZZY_TITLE
    assert result.confidence == pytest.approx(1.0)
    assert search.queries == ["cowboy bebop"]


@pytest.mark.asyncio
async def test_fuzzy_title_below_threshold() -> None:
    """No candidate above the threshold means no match."""
    search = FakeSearch([bebop_candidate(title="Naruto", media_type="movie")])
    strategy = FuzzyTitleStrategy(search, threshold=0.7)

    assert await strategy.attempt(MatchDescriptor(title="Cowboy Bebop")) is None


def test_score_ignores_unknown_year() -> None:
    """The year weight only applies when both years are known."""
    descriptor = MatchDescriptor(title="Cowboy Bebop")
    assert score_candidate(descriptor, bebop_candidate(year=None)) == pytest.approx(
        1.0
    )


def test_score_penalizes_distant_year() -> None:
    """A release year more than one year apart loses the year weight."""
    descriptor = MatchDescriptor(title="Cowboy Bebop", year=2010)
    assert score_candidate(descriptor, bebop_candidate()) == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_raising_strategy_falls_through(mapping_store: MappingStore) -> None:
    """A strategy that raises is skipped in favor of the next one."""
    search = FakeSearch([bebop_candidate()])
    matcher = IdentityMatcher(
        [ExplodingStrategy(), FuzzyTitleStrategy(search)],
        mapping_store=mapping_store,
    )

    result = await matcher.match(MatchDescriptor(title="Cowboy Bebop"))

    assert result is not None
    assert result.method == MatchMethod.FUZZY_TITLE


@pytest.mark.asyncio
async def test_no_match_returns_none(mapping_store: MappingStore) -> None:
    """Exhausting the cascade yields None and caches nothing."""
    matcher = IdentityMatcher.create(mapping_store, search_backend=FakeSearch())

    assert await matcher.match(MatchDescriptor(title="Unknown Show")) is None
    assert matcher.cache_stats()["size"] == 0


@pytest.mark.asyncio
async def test_successes_are_cached(mapping_store: MappingStore) -> None:
    """A repeated descriptor is answered from the cache."""
    search = FakeSearch([bebop_candidate()])
    matcher = IdentityMatcher.create(mapping_store, search_backend=search)
    descriptor = MatchDescriptor(title="Cowboy Bebop", year=1998)

    await matcher.match(descriptor)
    await matcher.match(descriptor)

    assert len(search.queries) == 1
    stats = matcher.cache_stats()
    assert stats["size"] == 1
    assert stats["keys"] == ["cowboy bebop|1998||"]

    matcher.clear_cache()
    assert matcher.cache_stats()["size"] == 0


@pytest.mark.asyncio
async def test_resolve_external_ids(mapping_store: MappingStore) -> None:
    """Ids merge from the store and sources, conflicts become anomalies."""
    source = FakeMappingSource(
        "shinkrodb", [ExternalMappingRow(mal_id=1, anidb_id=24, tvdb_id=76885)]
    )
    matcher = IdentityMatcher.create(mapping_store, [source])

    ids = await matcher.resolve_external_ids(1)

    assert ids.anidb_id == 23
    assert ids.tvdb_id == 76885
    assert ids.sources == ["mapping_store", "shinkrodb"]
    assert len(ids.anomalies) == 1
    assert ids.as_columns() == {"anidb_id": 23, "tvdb_id": 76885}
