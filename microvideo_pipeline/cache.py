"""Thread-safe in-memory cache with TTL expiry and a size bound.

WHY: Load profiles are pure functions of the content analysis and the
learner, and batch runs often repeat the same material for several
learners or re-renders. Memoizing them saves work, but a module-level
dict would be hidden global state shared by every pipeline in the
process. TTLCache is an explicit object that callers create and inject.

HOW: Entries live in an OrderedDict keyed by a string fingerprint, each
stamped with its insertion time. All access goes through a
threading.Lock. Reads past the TTL evict the entry; inserts beyond
max_entries evict the oldest entry first.

RULES:
- get() returns None for missing or expired keys (no exceptions)
- set() refreshes the timestamp and moves the key to the newest slot
- cleanup_expired() removes every stale entry and returns the count
- ttl_seconds <= 0 disables expiry; max_entries must be >= 1
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 3600


class TTLCache(Generic[V]):
    """Bounded key/value cache whose entries expire after ``ttl_seconds``."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1, got {}".format(max_entries))
        self._entries: "OrderedDict[str, Tuple[float, V]]" = OrderedDict()
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self.max_entries = max_entries
        self.hits = 0
        self.misses = 0

    def _expired(self, stored_at: float, now: float) -> bool:
        return self._ttl_seconds > 0 and now - stored_at > self._ttl_seconds

    def get(self, key: str) -> Optional[V]:
        """Return the cached value, or None when missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if self._expired(stored_at, now):
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return value

    def set(self, key: str, value: V) -> None:
        """Store *value*, evicting the oldest entries beyond max_entries."""
        now = self._clock()
        with self._lock:
            self._entries[key] = (now, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s (size bound %d)", evicted, self.max_entries)

    def get_or_compute(self, key: str, compute: Callable[[], V]) -> V:
        """Return the cached value or compute, store, and return it.

        The computation runs outside the lock, so two threads racing on
        the same key may both compute; the later result wins.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute()
        self.set(key, value)
        return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            stale = [k for k, (stored_at, _) in self._entries.items() if self._expired(stored_at, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info("Cleaned up %d expired cache entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        return self.get(key) is not None
