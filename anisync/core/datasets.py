"""Bulk mapping datasets and external id mapping services."""

from __future__ import annotations

import asyncio
import json
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import aiohttp
from pydantic import ValidationError

from anisync import __version__, log
from anisync.exceptions import (
    DatasetFetchError,
    ExternalMappingError,
    InvalidDatasetFormatError,
)
from anisync.models.schemas.datasets import ExternalMappingRow

__all__ = [
    "DatasetClient",
    "OfflineDatasetMappingSource",
    "ShinkroMappingSource",
    "extract_ids",
]

MAL_URL_PATTERN = re.compile(r"myanimelist\.net/anime/(\d+)")
ANIDB_URL_PATTERN = re.compile(r"anidb\.net/anime/(\d+)")


def extract_ids(sources: Iterable[str]) -> tuple[int | None, int | None]:
    """Pull the MyAnimeList and AniDB ids out of a dataset entry's sources.

        >>> extract_ids([
        ...     "https://myanimelist.net/anime/1",
        ...     "https://anidb.net/anime/101",
        ... ])
        (1, 101)

    Returns:
        tuple[int | None, int | None]: `(mal_id, anidb_id)`, either may be None
    """
    mal_id: int | None = None
    anidb_id: int | None = None
    for source in sources:
        if not isinstance(source, str):
            continue
        if mal_id is None and (match := MAL_URL_PATTERN.search(source)):
            mal_id = int(match.group(1))
        elif anidb_id is None and (match := ANIDB_URL_PATTERN.search(source)):
            anidb_id = int(match.group(1))
    return mal_id, anidb_id


class DatasetClient:
    """Loads a JSON document from a URL or a local file."""

    def __init__(self, source: str, *, timeout: float = 15, retries: int = 2) -> None:
        """Initialize the client.

        Args:
            source (str): HTTP(S) URL or filesystem path of the document
            timeout (float): Request timeout in seconds
            retries (int): Extra attempts after a network failure
        """
        self.source = source
        self.timeout = timeout
        self.retries = retries
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Accept": "application/json",
                    "User-Agent": f"AniSync/{__version__}",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> DatasetClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def is_url(self) -> bool:
        parsed = urlparse(self.source)
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    async def fetch(self) -> Any:
        """Download (or read) and decode the document.

        Raises:
            DatasetFetchError: If the document cannot be retrieved
            InvalidDatasetFormatError: If the document is not valid JSON
        """
        if self.is_url:
            raw = await self._fetch_url()
        else:
            path = Path(self.source)
            if not path.is_file():
                raise DatasetFetchError(f"Dataset file '{self.source}' does not exist")
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidDatasetFormatError(
                f"Dataset '{self.source}' is not valid JSON: {e}"
            ) from e

    async def _fetch_url(self, retry_count: int = 0) -> str:
        session = await self._get_session()
        try:
            async with session.get(self.source) as response:
                response.raise_for_status()
                return await response.text()
        except (TimeoutError, aiohttp.ClientError) as e:
            if retry_count < self.retries:
                log.warning(
                    f"Error reaching dataset URL $$'{self.source}'$$, retrying: {e}"
                )
                await asyncio.sleep(1)
                return await self._fetch_url(retry_count + 1)
            raise DatasetFetchError(
                f"Failed to fetch dataset '{self.source}': {e or type(e).__name__}"
            ) from e


class _IndexedMappingSource(ABC):
    """An external mapping source backed by a whole document held in memory.

    The document is fetched on first use and refetched once `ttl` seconds have
    passed. After a failed fetch the source reports errors immediately for
    `retry_after` seconds instead of hitting the network for every lookup.
    """

    name = "indexed"

    def __init__(
        self,
        client: DatasetClient,
        *,
        ttl: float = 86400,
        retry_after: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.ttl = ttl
        self.retry_after = retry_after
        self.clock = clock
        self._by_primary: dict[int, ExternalMappingRow] = {}
        self._by_secondary: dict[int, ExternalMappingRow] = {}
        self._loaded_at: float | None = None
        self._failed_at: float | None = None
        self._lock = asyncio.Lock()

    @abstractmethod
    def _parse(self, document: Any) -> list[ExternalMappingRow]:
        """Turn the fetched document into mapping rows."""

    async def _ensure_loaded(self) -> None:
        async with self._lock:
            now = self.clock()
            if self._loaded_at is not None and now - self._loaded_at < self.ttl:
                return
            if self._failed_at is not None and now - self._failed_at < self.retry_after:
                raise ExternalMappingError(
                    f"{self.name} is unavailable, retrying later"
                )

            try:
                rows = self._parse(await self.client.fetch())
            except (DatasetFetchError, InvalidDatasetFormatError) as e:
                self._failed_at = now
                raise ExternalMappingError(
                    f"{self.name} could not be loaded: {e}"
                ) from e

            by_primary: dict[int, ExternalMappingRow] = {}
            by_secondary: dict[int, ExternalMappingRow] = {}
            for row in rows:
                if row.mal_id is not None:
                    by_primary.setdefault(row.mal_id, row)
                if row.anidb_id is not None:
                    by_secondary.setdefault(row.anidb_id, row)

            self._by_primary, self._by_secondary = by_primary, by_secondary
            self._loaded_at, self._failed_at = now, None
            log.info(
                f"Loaded $$'{len(by_primary)}'$$ rows from external mapping source "
                f"$$'{self.name}'$$"
            )

    async def lookup_by_secondary(self, anidb_id: int) -> ExternalMappingRow | None:
        await self._ensure_loaded()
        return self._by_secondary.get(anidb_id)

    async def lookup_by_primary(self, mal_id: int) -> ExternalMappingRow | None:
        await self._ensure_loaded()
        return self._by_primary.get(mal_id)

    async def close(self) -> None:
        await self.client.close()


class ShinkroMappingSource(_IndexedMappingSource):
    """shinkrodb: rows of MyAnimeList, AniDB, TVDB and TMDB ids."""

    name = "shinkrodb"

    def _parse(self, document: Any) -> list[ExternalMappingRow]:
        if not isinstance(document, list):
            raise InvalidDatasetFormatError("shinkrodb document must be a JSON array")
        rows: list[ExternalMappingRow] = []
        for item in document:
            try:
                rows.append(ExternalMappingRow.model_validate(item))
            except ValidationError:
                continue
        return rows


class OfflineDatasetMappingSource(_IndexedMappingSource):
    """anime-offline-database, read as an id mapping table."""

    name = "anime-offline-database"

    def _parse(self, document: Any) -> list[ExternalMappingRow]:
        entries = document.get("data") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise InvalidDatasetFormatError(
                "anime-offline-database document has no 'data' array"
            )
        rows: list[ExternalMappingRow] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            mal_id, anidb_id = extract_ids(entry.get("sources") or [])
            if mal_id is not None and anidb_id is not None:
                rows.append(ExternalMappingRow(mal_id=mal_id, anidb_id=anidb_id))
        return rows
