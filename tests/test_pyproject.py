"""Checks on the project metadata."""

import re
import tomllib
from pathlib import Path

VERSION_RE = re.compile(r"^\d+\.\d+\.\d+(?:[+-][0-9A-Za-z-.]+)?$")


def load_project() -> dict:
    with Path("pyproject.toml").open("rb") as f:
        return tomllib.load(f)["project"]


def test_name_and_version() -> None:
    """The distribution is AniSync with a semantic version."""
    project = load_project()

    assert project["name"] == "AniSync"
    assert VERSION_RE.fullmatch(project["version"])


def test_runtime_dependencies_are_declared() -> None:
    """Every third-party runtime library is listed."""
    declared = {
        re.split(r"[<>=\[]", dep, maxsplit=1)[0].lower()
        for dep in load_project()["dependencies"]
    }

    assert {"aiohttp", "sqlalchemy", "alembic", "pydantic-settings"} <= declared
