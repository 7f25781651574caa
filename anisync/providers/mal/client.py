"""MyAnimeList API v2 Client."""

import asyncio
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import aiohttp
from limiter import Limiter
from pydantic import ValidationError

from anisync import __version__, log
from anisync.core.matching.types import SearchCandidate
from anisync.core.providers.list import ListEntry
from anisync.exceptions import (
    ListSourceNetworkError,
    ListSourceTimeoutError,
    ListSourceUnauthorizedError,
)
from anisync.models.schemas.mal import (
    MalAnime,
    MalListEntry,
    MalListStatus,
    MalPaging,
    MalSearchPage,
)

__all__ = ["MalClient", "to_list_entry"]

mal_limiter = Limiter(rate=60 / 60, capacity=5, jitter=False)

ANIME_FIELDS = (
    "id,title,alternative_titles,start_date,start_season,media_type,status,"
    "num_episodes,genres,studios"
)
LIST_STATUS_FIELDS = (
    "list_status{status,score,num_episodes_watched,is_rewatching,start_date,"
    "finish_date,priority,num_times_rewatched,rewatch_value,tags,comments,"
    "updated_at}"
)

# Field names the update endpoint uses where they differ from the list payload
_UPDATE_FIELD_NAMES = {"num_episodes_watched": "num_watched_episodes"}


def to_list_entry(entry: MalListEntry) -> ListEntry:
    """Convert a list page row into the engine's ListEntry."""
    node = entry.node
    list_status: MalListStatus | None = entry.list_status or node.my_list_status

    status_fields: dict[str, Any] = {}
    updated_on_list: datetime | None = None
    if list_status is not None:
        status_fields = list_status.model_dump(exclude_unset=True)
        updated_on_list = status_fields.pop("updated_at", None)

    return ListEntry(
        mal_id=node.id,
        title=node.title,
        alternative_titles=node.alternate_titles,
        genres=[g.name for g in node.genres],
        studios=[s.name for s in node.studios],
        media_type=node.media_type,
        airing_status=node.status,
        num_episodes=node.num_episodes or None,
        start_year=node.year,
        updated_on_list=updated_on_list,
        status_fields=status_fields,
    )


def _node_id(raw: Any) -> Any:
    if isinstance(raw, dict) and isinstance(raw.get("node"), dict):
        return raw["node"].get("id")
    return None


def to_search_candidate(anime: MalAnime) -> SearchCandidate:
    return SearchCandidate(
        mal_id=anime.id,
        title=anime.title,
        alternative_titles=tuple(anime.alternate_titles),
        year=anime.year,
        media_type=anime.media_type,
        num_episodes=anime.num_episodes,
    )


class MalClient:
    """Client for one user's MyAnimeList account.

    Implements the list source interface: fetching the user's list (optionally
    one status at a time), pushing status updates and searching the catalogue.
    Requests share one aiohttp session, are rate limited and time out after
    `timeout` seconds. Rejected credentials are raised immediately; rate limit
    and gateway errors are retried.
    """

    API_URL = "https://api.myanimelist.net/v2"
    MAX_RETRIES = 3

    def __init__(self, access_token: str, *, timeout: float = 15) -> None:
        """Initialize the MyAnimeList client.

        Args:
            access_token (str): OAuth bearer token of the user
            timeout (float): Total timeout of each request in seconds
        """
        self.access_token = access_token
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            aiohttp.ClientSession: The active session for making HTTP requests.
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self.access_token}",
                    "User-Agent": f"AniSync/{__version__}",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "MalClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch_list(self, status: str | None = None) -> list[ListEntry]:
        """Fetch the user's anime list, following pagination.

        Args:
            status (str | None): Only fetch entries with this list status

        Returns:
            list[ListEntry]: The entries in the order MyAnimeList returned them
        """
        params: dict[str, Any] = {
            "fields": f"{ANIME_FIELDS},{LIST_STATUS_FIELDS}",
            "limit": 1000,
            "nsfw": "true",
        }
        if status:
            params["status"] = status

        entries: list[ListEntry] = []
        url: str | None = f"{self.API_URL}/users/@me/animelist"
        while url:
            data = await self._make_request("GET", url, params=params) or {}
            for raw in data.get("data") or []:
                try:
                    entries.append(to_list_entry(MalListEntry.model_validate(raw)))
                except ValidationError as e:
                    log.warning(
                        f"Skipping malformed MyAnimeList entry "
                        f"$${{id: {_node_id(raw)}}}$$: {e.error_count()} error(s)"
                    )
            paging = MalPaging.model_validate(data.get("paging") or {})
            # The next page URL already carries the query string
            url, params = paging.next, None

        log.debug(
            f"Fetched $$'{len(entries)}'$$ entries from MyAnimeList "
            f"$${{status: {status or 'all'}}}$$"
        )
        return entries

    async def update_entry(
        self, mal_id: int, fields: Mapping[str, Any]
    ) -> dict[str, Any]:
        """Update the user's list status of an anime.

        Args:
            mal_id (int): MyAnimeList anime id
            fields (Mapping[str, Any]): List status fields to change

        Returns:
            dict[str, Any]: The list status stored by MyAnimeList
        """
        form: dict[str, str] = {}
        for key, value in fields.items():
            if value is None:
                continue
            key = _UPDATE_FIELD_NAMES.get(key, key)
            if isinstance(value, bool):
                form[key] = "true" if value else "false"
            elif isinstance(value, list | tuple):
                form[key] = ",".join(str(v) for v in value)
            elif isinstance(value, date):
                form[key] = value.isoformat()
            else:
                form[key] = str(value)

        log.debug(f"Updating MyAnimeList entry $$'{mal_id}'$$ $${form}$$")
        return await self._make_request(
            "PUT", f"{self.API_URL}/anime/{mal_id}/my_list_status", data=form
        )

    async def search(self, query: str) -> list[SearchCandidate]:
        """Search the MyAnimeList catalogue by title.

        MyAnimeList rejects queries shorter than three characters; those return
        no candidates.
        """
        query = query.strip()
        if len(query) < 3:
            return []

        data = await self._make_request(
            "GET",
            f"{self.API_URL}/anime",
            params={"q": query[:64], "limit": 100, "fields": ANIME_FIELDS},
        )
        page = MalSearchPage.model_validate(data)
        return [to_search_candidate(item.node) for item in page.data]

    async def get_anime(self, mal_id: int) -> MalAnime:
        data = await self._make_request(
            "GET", f"{self.API_URL}/anime/{mal_id}", params={"fields": ANIME_FIELDS}
        )
        return MalAnime.model_validate(data)

    @mal_limiter()
    async def _make_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
        retry_count: int = 0,
    ) -> dict[str, Any]:
        """Makes a rate-limited request to the MyAnimeList API.

        Args:
            method (str): HTTP method
            url (str): Absolute request URL
            params (dict[str, Any] | None): Query parameters
            data (dict[str, str] | None): Form body
            retry_count (int): Number of retries attempted

        Returns:
            dict[str, Any]: JSON response from the API

        Raises:
            ListSourceUnauthorizedError: If the token is rejected (401/403)
            ListSourceTimeoutError: If the request keeps timing out
            ListSourceNetworkError: For any other failure
        """
        session = await self._get_session()

        async def retry(reason: str, delay: float) -> dict[str, Any]:
            if retry_count + 1 >= self.MAX_RETRIES:
                raise ListSourceNetworkError(
                    f"MyAnimeList request failed after {self.MAX_RETRIES} tries: "
                    f"{reason}"
                )
            log.warning(f"{reason}, retrying in {delay:g} seconds")
            await asyncio.sleep(delay)
            return await self._make_request(
                method, url, params=params, data=data, retry_count=retry_count + 1
            )

        try:
            async with session.request(
                method, url, params=params, data=data
            ) as response:
                if response.status in (401, 403):
                    raise ListSourceUnauthorizedError(
                        "MyAnimeList rejected the access token "
                        f"(HTTP {response.status})"
                    )
                if response.status == 429:  # Handle rate limit retries
                    retry_after = int(response.headers.get("Retry-After", 60))
                    return await retry("Rate limit exceeded", retry_after + 1)
                if response.status == 502:  # Bad Gateway
                    return await retry("Received 502 Bad Gateway", 1)
                if response.status >= 400:
                    text = await response.text()
                    raise ListSourceNetworkError(
                        f"MyAnimeList returned HTTP {response.status}: {text[:200]}"
                    )
                return await response.json()
        except TimeoutError as e:
            if retry_count + 1 >= self.MAX_RETRIES:
                raise ListSourceTimeoutError(
                    f"MyAnimeList request timed out after {self.timeout} seconds"
                ) from e
            return await retry("MyAnimeList request timed out", 1)
        except aiohttp.ClientError as e:
            return await retry(f"Connection error while contacting MyAnimeList: {e}", 1)
