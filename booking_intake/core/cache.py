"""
Injectable lookup caches for collaborator results.

The default is NullCache so every lookup re-resolves and zone data is
never stale. TTLCache is opt-in where repeated lookups are expensive.
"""

import time
from typing import Any, Callable, Hashable, Optional

import cachetools


class LookupCache:
    """Interface for caching collaborator lookups."""

    def get(self, key: Hashable) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: Hashable, value: Any) -> None:
        raise NotImplementedError


class NullCache(LookupCache):
    """Stores nothing."""

    def get(self, key: Hashable) -> Optional[Any]:
        return None

    def set(self, key: Hashable, value: Any) -> None:
        return None


class TTLCache(LookupCache):
    """In-memory cache whose entries expire after ttl_seconds."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = 1024,
    ):
        self.ttl_seconds = ttl_seconds
        self._entries = cachetools.TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=clock)

    def get(self, key: Hashable) -> Optional[Any]:
        return self._entries.get(key)

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = value

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)


def build_cache(ttl_seconds: float) -> LookupCache:
    """NullCache unless a positive TTL is configured."""
    if ttl_seconds and ttl_seconds > 0:
        return TTLCache(ttl_seconds)
    return NullCache()
