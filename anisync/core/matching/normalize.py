"""Title normalization and similarity scoring."""

import re
from functools import lru_cache

from rapidfuzz.distance import Levenshtein

__all__ = ["normalize_title", "similarity"]

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_QUALIFIERS = (
    re.compile(r"\b(?:season|s)\s*\d+"),
    re.compile(r"\b(?:part|pt)\s*\d+"),
    re.compile(r"\b(?:tv|ova|movie|special)\b"),
)


@lru_cache(maxsize=4096)
def normalize_title(title: str) -> str:
    """Reduce a title to a comparable form.

    Lowercases, strips punctuation, collapses whitespace and removes season,
    part and media type qualifiers:

        >>> normalize_title("Attack on Titan: Season 2")
        'attack on titan'
    """
    value = _PUNCTUATION.sub("", title.lower())
    for pattern in _QUALIFIERS:
        value = pattern.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity of two titles, in [0, 1].

    Both titles are normalized first. The score is
    `(longest - distance) / longest`; titles that normalize to nothing never
    match.
    """
    a, b = normalize_title(a), normalize_title(b)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    longest = max(len(a), len(b))
    return (longest - Levenshtein.distance(a, b)) / longest
