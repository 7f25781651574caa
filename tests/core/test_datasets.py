"""Tests for dataset loading and external mapping sources."""

import json
from pathlib import Path

import pytest

from anisync.core.datasets import (
    DatasetClient,
    OfflineDatasetMappingSource,
    ShinkroMappingSource,
    _IndexedMappingSource,
    extract_ids,
)
from anisync.exceptions import (
    DatasetFetchError,
    ExternalMappingError,
    InvalidDatasetFormatError,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_extract_ids() -> None:
    """Both ids are pulled out of the source URLs."""
    assert extract_ids(
        ["https://myanimelist.net/anime/1", "https://anidb.net/anime/101"]
    ) == (1, 101)


def test_extract_ids_partial() -> None:
    """Missing sources yield None and unrelated URLs are ignored."""
    assert extract_ids(["https://kitsu.io/anime/5", "https://anidb.net/anime/7"]) == (
        None,
        7,
    )
    assert extract_ids([]) == (None, None)


def test_extract_ids_first_wins() -> None:
    """Only the first URL of each kind is used."""
    assert extract_ids(
        ["https://myanimelist.net/anime/3", "https://myanimelist.net/anime/4"]
    ) == (3, None)


@pytest.mark.asyncio
async def test_dataset_client_reads_local_file(tmp_path: Path) -> None:
    """A filesystem path is read and decoded."""
    path = tmp_path / "dataset.json"
    path.write_text(json.dumps({"data": []}), encoding="utf-8")

    async with DatasetClient(str(path)) as client:
        assert not client.is_url
        assert await client.fetch() == {"data": []}


@pytest.mark.asyncio
async def test_dataset_client_missing_file(tmp_path: Path) -> None:
    """A missing file raises DatasetFetchError."""
    client = DatasetClient(str(tmp_path / "missing.json"))
    with pytest.raises(DatasetFetchError):
        await client.fetch()


@pytest.mark.asyncio
async def test_dataset_client_invalid_json(tmp_path: Path) -> None:
    """Undecodable content raises InvalidDatasetFormatError."""
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(InvalidDatasetFormatError):
        await DatasetClient(str(path)).fetch()


def test_dataset_client_detects_urls() -> None:
    """HTTP(S) sources are treated as URLs."""
    assert DatasetClient("https://example.com/data.json").is_url
    assert not DatasetClient("/var/lib/data.json").is_url


@pytest.mark.asyncio
async def test_shinkro_source_lookups(tmp_path: Path) -> None:
    """Rows are indexed by both ids and zero ids count as missing."""
    path = tmp_path / "shinkro.json"
    path.write_text(
        json.dumps(
            [
                {"malid": 1, "anidbid": 23, "tvdbid": 76885, "tmdbid": 0},
                {"malid": 5, "anidbid": 0},
                "garbage",
            ]
        ),
        encoding="utf-8",
    )
    source = ShinkroMappingSource(DatasetClient(str(path)))

    row = await source.lookup_by_secondary(23)
    assert row is not None
    assert row.mal_id == 1
    assert row.tvdb_id == 76885
    assert row.tmdb_id is None

    other = await source.lookup_by_primary(5)
    assert other is not None
    assert other.anidb_id is None
    assert await source.lookup_by_secondary(0) is None


@pytest.mark.asyncio
async def test_offline_source_lookups(tmp_path: Path) -> None:
    """Only entries with both ids become rows."""
    path = tmp_path / "offline.json"
    path.write_text(
        json.dumps(
            {
                "data": [
                    {
                        "title": "Cowboy Bebop",
                        "sources": [
                            "https://myanimelist.net/anime/1",
                            "https://anidb.net/anime/23",
                        ],
                    },
                    {
                        "title": "Only MAL",
                        "sources": ["https://myanimelist.net/anime/2"],
                    },
                ]
            }
        ),
        encoding="utf-8",
    )
    source = OfflineDatasetMappingSource(DatasetClient(str(path)))

    row = await source.lookup_by_primary(1)
    assert row is not None
    assert row.anidb_id == 23
    assert await source.lookup_by_primary(2) is None


@pytest.mark.asyncio
async def test_failed_source_backs_off(tmp_path: Path) -> None:
    """After a failed load the source fails fast until the retry delay passes."""
    path = tmp_path / "late.json"
    clock = FakeClock()
    source = ShinkroMappingSource(
        DatasetClient(str(path)), retry_after=300, clock=clock
    )

    with pytest.raises(ExternalMappingError):
        await source.lookup_by_primary(1)

    path.write_text(json.dumps([{"malid": 1, "anidbid": 2}]), encoding="utf-8")
    clock.now += 100
    with pytest.raises(ExternalMappingError, match="retrying later"):
        await source.lookup_by_primary(1)

    clock.now += 300
    row = await source.lookup_by_primary(1)
    assert row is not None
    assert row.anidb_id == 2


def test_indexed_source_requires_a_parser() -> None:
    """The in-memory source base cannot be used without a document parser."""
    with pytest.raises(TypeError):
        _IndexedMappingSource(DatasetClient("unused.json"))
