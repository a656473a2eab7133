"""
Caching of engine-allocated descriptors.

Uses cachetools TTLCache for automatic expiration.
"""
import logging
import threading
from collections.abc import Callable, Hashable
from typing import Any

import cachetools

logger = logging.getLogger(__name__)

LAYOUT_CACHE = 'layouts'


class Cache:
    """Cache manager for the codec.

    Thread-safe singleton that manages all TTL caches.
    """

    _instance = None
    _caches: dict[str, cachetools.TTLCache] = {}
    _lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> 'Cache':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_cache(self, name: str, maxsize: int = 100, ttl: int = 300) -> cachetools.TTLCache:
        """Get or create a TTL cache with the given name.

        Args:
            name: Name of the cache
            maxsize: Maximum cache size
            ttl: Time-to-live in seconds

        Returns
            TTLCache instance
        """
        if name not in self._caches:
            with self._lock:
                if name not in self._caches:
                    self._caches[name] = cachetools.TTLCache(maxsize=maxsize, ttl=ttl)
        return self._caches[name]

    def clear_all(self) -> None:
        """Clear all managed caches."""
        with self._lock:
            for cache in self._caches.values():
                cache.clear()

    def clear_cache(self, name: str) -> None:
        """Clear a specific cache by name."""
        with self._lock:
            if name in self._caches:
                self._caches[name].clear()

    def clear_for_engine(self, engine: Any) -> None:
        """Drop every layout cached for one engine."""
        with self._lock:
            cache = self._caches.get(LAYOUT_CACHE)
            if cache is None:
                return
            for key in [k for k, v in list(cache.items()) if v[0] is engine]:
                cache.pop(key, None)
            logger.debug(f'Cleared cached layouts for engine {id(engine)}')


def cached_layout(engine: Any, key: Hashable, allocate: Callable[[], Any],
                  maxsize: int = 100, ttl: int = 300) -> Any:
    """Return the cached layout for (engine, key), allocating it on a miss.

    Entries hold the engine itself next to its layout, so an id is never
    reused while its entry is alive and a hit is only served to that same
    engine object.
    """
    cache = Cache.get_instance().get_cache(LAYOUT_CACHE, maxsize=maxsize, ttl=ttl)
    cache_key = (id(engine), key)
    with Cache._lock:
        entry = cache.get(cache_key)
        if entry is not None and entry[0] is engine:
            logger.debug(f'Layout cache hit for {len(key)} slots')
            return entry[1]

    logger.debug(f'Layout cache miss for {len(key)} slots')
    result = allocate()
    with Cache._lock:
        cache[cache_key] = (engine, result)
    return result
