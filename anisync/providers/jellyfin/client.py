"""Jellyfin Library Client."""

import asyncio
from typing import Any

import aiohttp

from anisync import __version__, log
from anisync.core.providers.library import LibraryEpisode, LibrarySeries
from anisync.exceptions import (
    LibrarySourceError,
    LibrarySourceNetworkError,
    LibrarySourceTimeoutError,
    LibrarySourceUnauthorizedError,
)
from anisync.models.schemas.jellyfin import (
    JellyfinEpisode,
    JellyfinItemsPage,
    JellyfinSeries,
    JellyfinSystemInfo,
    JellyfinUser,
)
from anisync.utils.cache import gattl_cache

__all__ = ["JellyfinClient", "to_library_episode", "to_library_series"]

SERIES_FIELDS = "ProviderIds,Genres,Studios,OriginalTitle,ProductionYear"
EPISODE_FIELDS = "UserData,ParentIndexNumber,IndexNumber,RunTimeTicks,SeriesId"


def to_library_series(item: JellyfinSeries) -> LibrarySeries:
    return LibrarySeries(
        id=item.id,
        name=item.name,
        original_title=item.original_title,
        year=item.production_year,
        genres=list(item.genres),
        studios=[studio.name for studio in item.studios],
        provider_ids=dict(item.provider_ids),
    )


def to_library_episode(item: JellyfinEpisode) -> LibraryEpisode:
    user_data = item.user_data
    return LibraryEpisode(
        id=item.id,
        series_id=item.series_id,
        season=item.parent_index_number,
        index=item.index_number,
        played=user_data.played if user_data else False,
        position_ticks=user_data.playback_position_ticks if user_data else 0,
        runtime_ticks=item.run_time_ticks,
    )


class JellyfinClient:
    """Client for a Jellyfin server, authenticated with an API key.

    Series and episodes are read per user so that play state reflects that
    user's markers. Without a user id the server-wide item views are used and
    play state is unavailable.
    """

    PAGE_SIZE = 500
    MAX_RETRIES = 3

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        user_id: str | None = None,
        timeout: float = 10,
    ) -> None:
        """Initialize the Jellyfin client.

        Args:
            url (str): Base URL of the server
            api_key (str): API key sent with every request
            user_id (str | None): Default user whose library is read
            timeout (float): Total timeout of each request in seconds
        """
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.user_id = user_id
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}:{self.url}>"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={
                    "Accept": "application/json",
                    "X-Emby-Token": self.api_key,
                    "User-Agent": f"AniSync/{__version__}",
                },
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "JellyfinClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _items_path(self, user_id: str | None) -> str:
        user_id = user_id or self.user_id
        return f"/Users/{user_id}/Items" if user_id else "/Items"

    async def _fetch_items(
        self, user_id: str | None, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        """Page through an item query until every item has been read."""
        items: list[dict[str, Any]] = []
        start = 0
        while True:
            data = await self._make_request(
                self._items_path(user_id),
                params={**params, "StartIndex": start, "Limit": self.PAGE_SIZE},
            )
            page_items = data.get("Items") or []
            items.extend(page_items)
            start += len(page_items)
            total = data.get("TotalRecordCount", 0)
            if not page_items or start >= total:
                return items

    async def fetch_series(self, user_id: str | None = None) -> list[LibrarySeries]:
        """List every series visible to the user."""
        raw = await self._fetch_items(
            user_id,
            {
                "IncludeItemTypes": "Series",
                "Recursive": "true",
                "Fields": SERIES_FIELDS,
            },
        )
        page = JellyfinItemsPage[JellyfinSeries].model_validate({"Items": raw})
        series = [to_library_series(item) for item in page.items]
        log.debug(f"Fetched $$'{len(series)}'$$ series from {self}")
        return series

    async def fetch_episodes(self, user_id: str | None = None) -> list[LibraryEpisode]:
        """List every episode visible to the user, with play state."""
        raw = await self._fetch_items(
            user_id,
            {
                "IncludeItemTypes": "Episode",
                "Recursive": "true",
                "Fields": EPISODE_FIELDS,
                "EnableUserData": "true",
            },
        )
        page = JellyfinItemsPage[JellyfinEpisode].model_validate({"Items": raw})
        episodes = [to_library_episode(item) for item in page.items]
        log.debug(f"Fetched $$'{len(episodes)}'$$ episodes from {self}")
        return episodes

    @gattl_cache(ttl=300)
    async def item_detail(
        self, item_id: str, user_id: str | None = None
    ) -> LibrarySeries | None:
        """Fetch one series by id, or None if the server does not know it."""
        raw = await self._fetch_items(
            user_id, {"Ids": item_id, "Fields": SERIES_FIELDS}
        )
        if not raw:
            return None
        return to_library_series(JellyfinSeries.model_validate(raw[0]))

    async def test_connection(self) -> dict[str, str | None]:
        """Query the server's identity.

        Returns:
            dict[str, str | None]: `{serverName, version, id}`
        """
        info = JellyfinSystemInfo.model_validate(
            await self._make_request("/System/Info")
        )
        return {"serverName": info.server_name, "version": info.version, "id": info.id}

    async def get_user_by_name(self, name: str) -> JellyfinUser:
        """Find a server user by name, ignoring case.

        Raises:
            LibrarySourceError: If no user has that name
        """
        users = await self._make_request("/Users")
        for raw in users or []:
            user = JellyfinUser.model_validate(raw)
            if user.name.casefold() == name.casefold():
                return user
        raise LibrarySourceError(f"Jellyfin user '{name}' not found on {self.url}")

    async def _make_request(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Makes a GET request to the Jellyfin API.

        Args:
            path (str): Path relative to the server URL
            params (dict[str, Any] | None): Query parameters
            retry_count (int): Number of retries attempted

        Returns:
            Any: JSON response from the server

        Raises:
            LibrarySourceUnauthorizedError: If the API key is rejected (401/403)
            LibrarySourceTimeoutError: If the request keeps timing out
            LibrarySourceNetworkError: For any other failure
        """
        session = await self._get_session()
        last_try = retry_count + 1 >= self.MAX_RETRIES

        try:
            async with session.get(f"{self.url}{path}", params=params) as response:
                if response.status in (401, 403):
                    raise LibrarySourceUnauthorizedError(
                        f"Jellyfin rejected the API key (HTTP {response.status})"
                    )
                if response.status in (502, 503) and not last_try:
                    log.warning(
                        f"Received {response.status} from Jellyfin, retrying in 1 "
                        "second"
                    )
                    await asyncio.sleep(1)
                    return await self._make_request(
                        path, params=params, retry_count=retry_count + 1
                    )
                if response.status >= 400:
                    text = await response.text()
                    raise LibrarySourceNetworkError(
                        f"Jellyfin returned HTTP {response.status}: {text[:200]}"
                    )
                return await response.json()
        except TimeoutError as e:
            if last_try:
                raise LibrarySourceTimeoutError(
                    f"Jellyfin request timed out after {self.timeout} seconds"
                ) from e
            log.warning("Jellyfin request timed out, retrying in 1 second")
        except aiohttp.ClientError as e:
            if last_try:
                raise LibrarySourceNetworkError(
                    f"Could not reach Jellyfin at {self.url}: {e}"
                ) from e
            log.warning(f"Connection error while contacting Jellyfin: {e}")

        await asyncio.sleep(1)
        return await self._make_request(
            path, params=params, retry_count=retry_count + 1
        )
