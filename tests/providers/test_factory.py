"""Tests for per-user client construction."""

from datetime import UTC, datetime

import pytest
from pydantic import SecretStr

from anisync.config.settings import AniSyncConfig, UserConfig
from anisync.exceptions import ListSourceTokenExpiredError, MissingCredentialsError
from anisync.providers.factory import (
    build_classifier,
    build_library_client,
    build_list_client,
)
from anisync.providers.jellyfin import JellyfinClient
from anisync.providers.mal import MalClient


@pytest.fixture
def config() -> AniSyncConfig:
    """Provide a configuration with custom timeouts."""
    return AniSyncConfig.model_construct(
        users={}, request_timeout=5, library_request_timeout=3
    )


def test_build_list_client(config: AniSyncConfig) -> None:
    """A user with a valid token gets a MyAnimeList client."""
    client = build_list_client(
        "alice", UserConfig(mal_access_token=SecretStr("abc")), config
    )

    assert isinstance(client, MalClient)
    assert client.access_token == "abc"
    assert client.timeout == 5


def test_build_list_client_without_token(config: AniSyncConfig) -> None:
    """A missing or empty token is a credentials error."""
    with pytest.raises(MissingCredentialsError):
        build_list_client("alice", UserConfig(), config)
    with pytest.raises(MissingCredentialsError):
        build_list_client("alice", UserConfig(mal_access_token=SecretStr("")), config)


def test_build_list_client_expired(config: AniSyncConfig) -> None:
    """An expired token is rejected before any request."""
    user = UserConfig(
        mal_access_token=SecretStr("abc"),
        mal_token_expires_at=datetime(2020, 1, 1, tzinfo=UTC),
    )
    with pytest.raises(ListSourceTokenExpiredError):
        build_list_client("alice", user, config)


def test_build_library_client(config: AniSyncConfig) -> None:
    """A user with a server and key gets a Jellyfin client."""
    client = build_library_client(
        "alice",
        UserConfig(
            jellyfin_url="http://jf:8096",
            jellyfin_api_key=SecretStr("key"),
            jellyfin_user_id="u1",
        ),
        config,
    )

    assert isinstance(client, JellyfinClient)
    assert client.user_id == "u1"
    assert client.timeout == 3


def test_build_library_client_without_server(config: AniSyncConfig) -> None:
    """Without a server URL no library client can be built."""
    with pytest.raises(MissingCredentialsError):
        build_library_client(
            "alice", UserConfig(jellyfin_api_key=SecretStr("key")), config
        )


def test_build_classifier() -> None:
    """The classifier uses the configured studios and genres."""
    config = AniSyncConfig.model_construct(
        users={}, anime_studios=["Bones"], anime_genres=["Anime"]
    )

    classifier = build_classifier(config)

    assert classifier.studios == ["bones"]
    assert classifier.genres == {"anime"}


def test_build_library_client_without_api_key(config: AniSyncConfig) -> None:
    """A server URL alone is not enough to build a library client."""
    with pytest.raises(MissingCredentialsError):
        build_library_client(
            "alice", UserConfig(jellyfin_url="http://jf:8096"), config
        )
