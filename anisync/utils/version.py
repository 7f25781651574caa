"""Build metadata helpers for the startup banner."""

from pathlib import Path

import tomlkit

__all__ = ["get_docker_status", "get_git_hash", "get_pyproject_version"]

ROOT_DIR = Path(__file__).resolve().parent.parent.parent


def get_pyproject_version(root: Path = ROOT_DIR) -> str:
    """Read the project version from pyproject.toml.

    Args:
        root (Path): Directory holding pyproject.toml

    Returns:
        str: The declared version, or "unknown" when it cannot be read
    """
    toml_file = root / "pyproject.toml"
    if not toml_file.is_file():
        return "unknown"

    with toml_file.open(encoding="utf-8") as f:
        toml_data = tomlkit.load(f)

    project = toml_data.get("project", {})
    return str(project.get("version", "unknown"))


def get_git_hash(root: Path = ROOT_DIR) -> str:
    """Resolve the checked out commit without shelling out to git.

    Args:
        root (Path): Repository root

    Returns:
        str: The commit hash, or "unknown" for detached or missing checkouts
    """
    git_dir = root / ".git"
    head_file = git_dir / "HEAD"
    if not head_file.is_file():
        return "unknown"

    head = head_file.read_text(encoding="utf-8").strip()
    if not head.startswith("ref: refs/heads/"):
        return "unknown"

    ref_path = git_dir / head.removeprefix("ref: ")
    if not ref_path.is_file():
        return "unknown"
    return ref_path.read_text(encoding="utf-8").strip()


def get_docker_status() -> bool:
    """Check if AniSync is running inside a Docker container."""
    return Path("/.dockerenv").is_file()
