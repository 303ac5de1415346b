"""
Short-TTL memoization of idempotent reads.

Collapses bursts of identical GETs, e.g. a manual refresh landing right
after an automatic poll. Entries are keyed "METHOD:URL" and expire after
a fixed TTL; there is no size bound, the key space is the set of
endpoints a session actually visits.
"""
import time
from typing import Any, Callable, Dict, Optional, Tuple

DEFAULT_TTL_SECONDS = 5.0


def cache_key(method: str, url: str) -> str:
    return f"{method.upper()}:{url}"


class RequestCache:
    """
    TTL cache for read responses.

    Usage:
        cache = RequestCache()
        cached = cache.get(key)
        if cached is None:
            cached = await fetch()
            cache.set(key, cached)
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # key -> (stored at, value)
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        """Cached value if younger than the TTL, else None."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, value = entry
        if self._clock() - stored_at < self.ttl_seconds:
            return value

        del self._entries[key]
        return None

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with prefix. Returns how many were dropped."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
