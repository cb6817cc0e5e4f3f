"""In-process TTL cache with stale fallback.

Uses cachetools.TTLCache for zero-infrastructure caching. When the database
is unavailable, reads fall back to stale (TTL-expired) values so the admin
status page keeps rendering.
"""

import asyncio
import functools
import logging
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

from fairqueue.core.errors import StoreError

logger = logging.getLogger(__name__)

# Sentinel object to distinguish "not in cache" from cached None values
_MISSING = object()

F = TypeVar("F", bound=Callable[..., Any])


class AsyncTTLCache:
    """Async-aware TTL cache with a stale fallback store.

    Two tiers:
      1. ``_cache`` (TTLCache): fresh data, governed by *ttl*.
      2. ``_stale`` (OrderedDict, LRU, bounded by *maxsize*): last-known-good
         values that survive TTL expiry. Used **only** when the store is
         unreachable.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: OrderedDict[str, Any] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def get(self, key: str) -> Any:
        """Return fresh value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: str, value: Any) -> None:
        """Write to both fresh cache and stale store."""
        self._cache[key] = value
        self._stale[key] = value
        self._stale.move_to_end(key)
        while len(self._stale) > self._maxsize:
            self._stale.popitem(last=False)

    def forget(self, key: str) -> None:
        """Remove from both tiers (the value is gone, not just outdated)."""
        self._cache.pop(key, None)
        self._stale.pop(key, None)

    def get_stale(self, key: str) -> Any:
        """Return last-known-good value or ``_MISSING``."""
        value = self._stale.get(key, _MISSING)
        if value is not _MISSING:
            self._stale.move_to_end(key)
        return value


def cached(cache: AsyncTTLCache, key_func: Callable[..., str]):
    """Decorator for caching async store reads with a stale fallback.

    On ``StoreError`` the stale tier is consulted; if it holds a value it is
    returned with a warning, otherwise the error propagates.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            cache_key = key_func(*args, **kwargs)

            result = cache.get(cache_key)
            if result is not _MISSING:
                return result

            async with cache._get_lock(cache_key):
                result = cache.get(cache_key)
                if result is not _MISSING:
                    return result

                try:
                    result = await func(*args, **kwargs)
                except StoreError as exc:
                    stale = cache.get_stale(cache_key)
                    if stale is not _MISSING:
                        logger.warning("Returning stale data for %s (%s)", cache_key, exc)
                        return stale
                    raise

                cache.set(cache_key, result)
                return result

        wrapper.cache = cache  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
