"""Cache Utilities Module."""

from functools import wraps
from typing import Any

import aiocache

__all__ = ["gattl_cache", "generic_hash"]


def gattl_cache(ttl: int = 60):
    """Cache the results of an async function for `ttl` seconds.

    Arguments do not need to be hashable; keys are derived with `generic_hash`.
    `aiocache` is used as the backend so concurrent awaits share the cache.

    Args:
        ttl (int): Time-to-live for cached items in seconds. Defaults to 60.
    """

    def decorator(func):
        cache_alias = f"gattl_{func.__module__}.{func.__qualname__}_{id(func)}"
        aiocache.caches.add(cache_alias, {"cache": aiocache.Cache.MEMORY, "ttl": ttl})

        def key_builder(f, *args, **kwargs):
            return generic_hash(*args, **kwargs)

        @wraps(func)
        @aiocache.cached(alias=cache_alias, key_builder=key_builder)
        async def wrapper(*args, **kwargs):
            return await func(*args, **kwargs)

        return wrapper

    return decorator


def generic_hash(*args, **kwargs) -> int:
    """Hash any combination of objects, including unhashable containers.

    A single positional argument hashes to the hash of that object; otherwise
    positional and keyword arguments are combined. Lists, sets and dicts are
    hashed by content (dicts order-insensitively), objects by their `__dict__`.
    """
    visited: set[int] = set()
    if not kwargs and len(args) == 1:
        return _generic_hash(args[0], visited)
    return hash(
        (
            _generic_hash(args, visited),
            _generic_hash(tuple(sorted(kwargs.items())), visited),
        )
    )


def _generic_hash(obj: Any, visited: set[int]) -> int:
    obj_id = id(obj)
    if obj_id in visited:
        return hash("<cycle>")

    visited.add(obj_id)
    try:
        try:
            return hash(obj)
        except TypeError:
            pass

        if isinstance(obj, list | tuple):
            return hash(tuple(_generic_hash(item, visited) for item in obj))
        if isinstance(obj, set):
            return hash(frozenset(_generic_hash(item, visited) for item in obj))
        if isinstance(obj, dict):
            return hash(
                frozenset(
                    (_generic_hash(k, visited), _generic_hash(v, visited))
                    for k, v in obj.items()
                )
            )
        if hasattr(obj, "__dict__"):
            return _generic_hash(vars(obj), visited)
        return hash(str(obj))
    finally:
        visited.discard(obj_id)
