"""
TTL caching for analysis backend responses.

The commit listing clones and walks the repository server-side, and the
commit history timestamps only change when new commits are pushed, so both
are cached for `settings.cache_ttl_seconds`. Job status, stream and snapshot
calls are never cached.
"""

import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]
from cachetools.keys import hashkey  # type: ignore[import-untyped]

from skilltrace.config import settings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

commits_cache: TTLCache[Any, Any] = TTLCache(maxsize=64, ttl=settings.cache_ttl_seconds)
history_cache: TTLCache[Any, Any] = TTLCache(maxsize=64, ttl=settings.cache_ttl_seconds)

_caches = {"commits": commits_cache, "history": history_cache}


def cached_backend_call(
    cache: TTLCache[Any, Any],
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Cache an async BackendClient method by its arguments.

    The client instance is left out of the key, so every client shares one
    entry per repository. Only successful results are stored.
    """

    def decorator(method: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(method)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            key = hashkey(method.__name__, *args[1:], **kwargs)
            try:
                hit: T = cache[key]
            except KeyError:
                pass
            else:
                logger.debug(f"{method.__name__}{args[1:]} served from cache")
                return hit

            value = await method(*args, **kwargs)
            cache[key] = value
            return value

        return wrapper

    return decorator


def clear_backend_caches() -> None:
    """Drop every cached listing, e.g. after an analysis adds new results."""
    for cache in _caches.values():
        cache.clear()
    logger.debug("Cleared backend caches")


def get_cache_stats() -> dict[str, dict[str, int]]:
    """Current size and capacity of each backend cache."""
    return {name: {"size": len(cache), "maxsize": cache.maxsize} for name, cache in _caches.items()}
