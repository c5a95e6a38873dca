"""In-memory TTL cache layer for the backend API."""
from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable
from typing import Any

from cachetools import TTLCache


_DEFAULT_TTL = 60
_DEFAULT_MAXSIZE = 256


class CacheLayer:
    """Thread-safe TTL cache over ``cachetools.TTLCache``.

    Entries with a non-default TTL live in a separate ``TTLCache`` per TTL
    value, so each entry expires on its own schedule.
    """

    def __init__(self, maxsize: int = _DEFAULT_MAXSIZE, default_ttl: int = _DEFAULT_TTL) -> None:
        self._maxsize = maxsize
        self._default_ttl = default_ttl
        self._caches: dict[int, TTLCache[str, Any]] = {
            default_ttl: TTLCache(maxsize=maxsize, ttl=default_ttl)
        }
        self._lock = threading.Lock()
        self._pending: dict[str, asyncio.Future[Any]] = {}

    def _cache_for(self, ttl: int) -> TTLCache[str, Any]:
        cache = self._caches.get(ttl)
        if cache is None:
            cache = self._caches[ttl] = TTLCache(maxsize=self._maxsize, ttl=ttl)
        return cache

    def get(self, key: str) -> Any | None:
        """Return cached value or ``None`` on miss."""
        with self._lock:
            for cache in self._caches.values():
                value = cache.get(key)
                if value is not None:
                    return value
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value under *ttl* seconds, or the default TTL."""
        with self._lock:
            for cache in self._caches.values():
                cache.pop(key, None)
            self._cache_for(ttl or self._default_ttl)[key] = value

    def invalidate(self, key: str) -> None:
        """Remove a specific key from the cache."""
        with self._lock:
            for cache in self._caches.values():
                cache.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        """Remove all keys starting with *prefix*."""
        with self._lock:
            for cache in self._caches.values():
                for k in [k for k in cache if k.startswith(prefix)]:
                    del cache[k]

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> Any:
        """Get from cache or call *fetch_fn*, coalescing concurrent requests for the same key."""
        cached = self.get(key)
        if cached is not None:
            return cached

        if key in self._pending:
            return await self._pending[key]

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            result = await fetch_fn()
            self.set(key, result, ttl)
            future.set_result(result)
            return result
        except Exception as e:
            future.set_exception(e)
            future.exception()  # mark retrieved when nobody is waiting
            raise
        finally:
            self._pending.pop(key, None)
