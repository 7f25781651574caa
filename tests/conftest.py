"""Shared pytest configuration and fixtures for the test suite."""

import atexit
import os
import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
import yaml

_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="as-tests-"))
os.environ["AS_DATA_PATH"] = str(_TEST_DATA_DIR)
_TEST_CONFIG_FILE = _TEST_DATA_DIR / "config.yaml"

_TEST_CONFIG_FILE.write_text(
    yaml.safe_dump(
        {
            "log_level": "DEBUG",
            "users": {
                "alice": {
                    "mal_access_token": "mal-token",
                    "jellyfin_url": "http://jellyfin:8096",
                    "jellyfin_api_key": "jellyfin-key",
                    "jellyfin_user_id": "jf-alice",
                },
            },
        },
        sort_keys=False,
    ),
    encoding="utf-8",
)

from anisync.config import settings as settings_module  # noqa: E402
from anisync.config.database import AniSyncDB  # noqa: E402

settings_module.get_config.cache_clear()


@pytest.fixture
def memory_db() -> Iterator[AniSyncDB]:
    """Provide a private in-memory database with the full schema."""
    database = AniSyncDB(url="sqlite://", migrate=False)
    try:
        yield database
    finally:
        database.dispose()


@atexit.register
def _cleanup_test_data_dir() -> None:
    """Remove the temporary test data directory after the test session."""
    shutil.rmtree(_TEST_DATA_DIR, ignore_errors=True)
