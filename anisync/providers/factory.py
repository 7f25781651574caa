"""Per-user list and library client construction."""

from anisync.config.settings import AniSyncConfig, UserConfig
from anisync.exceptions import (
    ListSourceTokenExpiredError,
    MissingCredentialsError,
)
from anisync.providers.jellyfin import HeuristicAnimeClassifier, JellyfinClient
from anisync.providers.mal import MalClient

__all__ = ["build_classifier", "build_library_client", "build_list_client"]


def build_list_client(
    user_id: str, user: UserConfig, config: AniSyncConfig
) -> MalClient:
    """Create a MyAnimeList client for a user.

    Raises:
        MissingCredentialsError: If the user has no access token
        ListSourceTokenExpiredError: If the access token has expired
    """
    if not user.has_list_token or user.mal_access_token is None:
        raise MissingCredentialsError(
            f"User '{user_id}' has no MyAnimeList access token configured"
        )
    if user.is_token_expired():
        raise ListSourceTokenExpiredError(
            f"The MyAnimeList access token of user '{user_id}' expired at "
            f"{user.mal_token_expires_at}"
        )
    return MalClient(
        user.mal_access_token.get_secret_value(), timeout=config.request_timeout
    )


def build_library_client(
    user_id: str, user: UserConfig, config: AniSyncConfig
) -> JellyfinClient:
    """Create a Jellyfin client for a user.

    Raises:
        MissingCredentialsError: If the user has no Jellyfin server configured
    """
    if (
        not user.has_library
        or user.jellyfin_url is None
        or user.jellyfin_api_key is None
    ):
        raise MissingCredentialsError(
            f"User '{user_id}' has no Jellyfin server configured"
        )
    return JellyfinClient(
        user.jellyfin_url,
        user.jellyfin_api_key.get_secret_value(),
        user_id=user.jellyfin_user_id,
        timeout=config.library_request_timeout,
    )


def build_classifier(config: AniSyncConfig) -> HeuristicAnimeClassifier:
    return HeuristicAnimeClassifier(config.anime_studios, config.anime_genres)
