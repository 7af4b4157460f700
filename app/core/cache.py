"""
TTL memo for subject attribute lookups used during permission resolution.

Each service instance owns its own cache. The clock is injectable so tests can
advance time deterministically.
"""
import time
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Tuple

from app.utils import get_logger


log = get_logger(__name__)

_MISSING = object()


class DecisionCache:
    """
    Per-entry expiring key/value store.

    Usage:
        cache = DecisionCache(ttl_seconds=300)
        is_admin = await cache.get_or_fetch(("admin", user_id), load_admin_flag)
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 10_000,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._max_entries = max_entries
        self._data: Dict[Hashable, Tuple[float, Any]] = {}

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or default if absent or expired."""
        item = self._data.get(key)
        if item is None:
            return default
        expires_at, value = item
        if expires_at <= self._clock():
            self._data.pop(key, None)
            return default
        return value

    def set(self, key: Hashable, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        if len(self._data) >= self._max_entries and key not in self._data:
            self._evict()
        self._data[key] = (self._clock() + ttl, value)

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        """Drop one key, or everything when key is None."""
        if key is None:
            self._data.clear()
        else:
            self._data.pop(key, None)

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> None:
        for key in [k for k in self._data if predicate(k)]:
            self._data.pop(key, None)

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value or await fetch() and cache its result.

        Concurrent misses each fetch; the last writer wins.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = await fetch()
        self.set(key, value)
        return value

    def __len__(self) -> int:
        return len(self._data)

    def _evict(self) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        if len(self._data) >= self._max_entries:
            # Soonest to expire first
            oldest = min(self._data, key=lambda k: self._data[k][0])
            del self._data[oldest]
            log.debug("Decision cache full, evicted %r", oldest)
