"""
Query Cache
===========

Explicit read-through cache for hot lookups (playbook guidance by
classification). Callers wrap a loader coroutine instead of decorating
the repository method, so the cached call site is visible and
invalidation is a plain method call on writes.
"""

import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

from alert_triage.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class QueryCache:
    """
    TTL cache keyed by an arbitrary hashable.

    A ttl of 0 disables caching (every call goes to the loader).
    """

    def __init__(self, name: str, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    async def get_or_load(self, key: Hashable, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for ``key`` or await ``loader()`` and store it."""
        cached = self._lookup(key)
        if cached is not None:
            self.hits += 1
            return cached[1]

        self.misses += 1
        value = await loader()
        if self.ttl_seconds > 0:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
        return value

    def _lookup(self, key: Hashable) -> Optional[Tuple[float, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[0] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when no key is given."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)
        logger.debug("Cache invalidated", extra={"cache": self.name, "key": str(key)})
