"""Heuristic anime detection for library series."""

import re
from collections.abc import Iterable

from anisync.core.providers.library import LibrarySeries

__all__ = ["HeuristicAnimeClassifier"]

# Hiragana, katakana and CJK unified ideographs
_JAPANESE_SCRIPT = re.compile(r"[\u3040-\u30ff\u4e00-\u9fff]")


class HeuristicAnimeClassifier:
    """Treats a series as anime if any of its metadata points that way.

    A series qualifies if one of its studios contains a known anime studio name,
    one of its genres is a known anime genre, it carries an AniDB or
    MyAnimeList provider id, or its title is written in Japanese script.
    """

    def __init__(self, studios: Iterable[str], genres: Iterable[str]) -> None:
        self.studios = [s.casefold() for s in studios if s]
        self.genres = {g.casefold() for g in genres if g}

    def is_anime(self, series: LibrarySeries) -> bool:
        for studio in series.studios:
            name = studio.casefold()
            if any(known in name for known in self.studios):
                return True

        if any(genre.casefold() in self.genres for genre in series.genres):
            return True

        if series.anidb_id is not None or series.mal_id is not None:
            return True

        return any(_JAPANESE_SCRIPT.search(title) for title in series.titles)
