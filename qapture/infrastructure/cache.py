"""
Explicit in-process caching for derived catalog data.

Building the schema index means parsing every catalog document, so the
application keeps the result for a bounded time. The cache is an object the
caller owns: it is passed in, has a fixed TTL, and is invalidated explicitly
whenever catalogs change, so reports never run on stale catalogs without the
caller knowing.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Hashable
from typing import Generic, TypeVar

from cachetools import TTLCache

from .config import CacheConfig, get_settings
from .logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class ExpiringCache(Generic[V]):
    """
    TTL cache with an injectable clock and explicit invalidation.

    A TTL of 0 (or ``enabled=False``) disables caching: every lookup rebuilds.

    Example:
        >>> cache = ExpiringCache(ttl_seconds=300)
        >>> index = cache.get_or_build("catalogs", build_index)
        >>> cache.invalidate("catalogs")
    """

    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = 64,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled and ttl_seconds > 0
        self._store: TTLCache = TTLCache(maxsize=maxsize, ttl=max(ttl_seconds, 1e-9), timer=clock)
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_config(
        cls, config: CacheConfig | None = None, clock: Callable[[], float] = time.monotonic
    ) -> ExpiringCache:
        config = config or get_settings().cache
        return cls(ttl_seconds=config.catalog_ttl_seconds, clock=clock, enabled=config.enabled)

    def get(self, key: Hashable) -> V | None:
        if not self.enabled:
            return None
        value = self._store.get(key)
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def set(self, key: Hashable, value: V) -> None:
        if self.enabled:
            self._store[key] = value

    def get_or_build(self, key: Hashable, builder: Callable[[], V]) -> V:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = builder()
        self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        if self._store.pop(key, None) is not None:
            logger.debug("Cache entry %r invalidated", key)

    def clear(self) -> None:
        self._store.clear()
        logger.debug("Cache cleared")

    def __contains__(self, key: Hashable) -> bool:
        return self.enabled and key in self._store

    def __len__(self) -> int:
        return len(self._store)
