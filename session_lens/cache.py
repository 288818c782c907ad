"""Time-boxed memoization for expensive aggregate operations."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from .config import DEFAULT_CACHE_TTL

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class ResultCache:
    """Thread-safe TTL cache keyed by operation name.

    Entries are replaced wholesale on expiry or cleared all at once; there is
    no per-key invalidation. Concurrent misses on the same key may each run
    ``compute``; the reads it wraps are idempotent.
    """

    def __init__(self, default_ttl: float = DEFAULT_CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def cached_call(self, key: str, compute: Callable[[], T], ttl: Optional[float] = None) -> T:
        """Return the live value for ``key``, computing and storing it on a miss."""
        with self._lock:
            entry = self._data.get(key)
            if entry is not None and self._clock() < entry.expires_at:
                return entry.value

        logger.debug("Cache miss for %s", key)
        value = compute()
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._data[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        return value

    def clear(self):
        """Discard every entry."""
        with self._lock:
            self._data.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._data.get(key)
            return entry is not None and self._clock() < entry.expires_at

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
