"""AniSync: anime watch state reconciliation between MyAnimeList and Jellyfin."""

from anisync.config.settings import get_config
from anisync.utils.logging import Logger, get_logger
from anisync.utils.terminal import supports_utf8
from anisync.utils.version import (
    get_docker_status,
    get_git_hash,
    get_pyproject_version,
)

__author__ = "AniSync contributors"
__license__ = "MIT"
__version__ = get_pyproject_version()
__git_hash__ = get_git_hash()

__all__ = ["ANISYNC_HEADER", "__version__", "config", "log"]

_BANNER_ROWS = [
    f"Version: {__version__}",
    f"Git Hash: {__git_hash__}",
    f"Docker: {'Yes' if get_docker_status() else 'No'}",
    f"License: {__license__}",
]


def _render_header(utf8: bool) -> str:
    width = 79
    if utf8:
        top, sep, bottom, side = "╔╗", "╠╣", "╚╝", "║"
        fill = "═"
    else:
        top = sep = bottom = "++"
        side, fill = "|", "-"

    title = "A N I S Y N C".center(width)
    lines = [
        f"{top[0]}{fill * width}{top[1]}",
        f"{side}{title}{side}",
        f"{sep[0]}{fill * width}{sep[1]}",
        f"{side}{' ' * width}{side}",
        *(f"{side}  {row:<{width - 2}}{side}" for row in _BANNER_ROWS),
        f"{side}{' ' * width}{side}",
        f"{bottom[0]}{fill * width}{bottom[1]}",
    ]
    return "\n".join(lines)


ANISYNC_HEADER = _render_header(supports_utf8())

config = get_config()
log: Logger = get_logger()
