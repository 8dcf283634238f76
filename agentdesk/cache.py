"""
Small thread-safe TTL + LRU cache.

Used by the retriever to keep an agent's document list in memory between
turns of a conversation. Instances are injected, never module-level.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """
    Bounded mapping whose entries expire after ttl_seconds.

    When full, the least recently used entry is evicted first.

    Example:
        cache = TTLCache(max_entries=256, ttl_seconds=60)
        docs = cache.get_or_load(agent_id, lambda: store.get_documents(agent_id))
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _lookup(self, key: Hashable) -> Any:
        entry = self._data.get(key)
        if entry is None:
            return _MISSING
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return _MISSING
        self._data.move_to_end(key)
        return value

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the live value for key, or default."""
        with self._lock:
            value = self._lookup(key)
            if value is _MISSING:
                self._misses += 1
                return default
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._data[key] = (self._clock() + self.ttl_seconds, value)
            self._data.move_to_end(key)
            while len(self._data) > self.max_entries:
                evicted, _ = self._data.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted cache entry {evicted!r}")

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value, calling loader() and caching its result on a miss.

        Loader exceptions propagate and nothing is cached.
        """
        with self._lock:
            value = self._lookup(key)
            if value is not _MISSING:
                self._hits += 1
                return value
            self._misses += 1

        value = loader()
        self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> bool:
        """Drop key. Returns True if it was present."""
        with self._lock:
            return self._data.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for expires_at, _ in self._data.values() if now < expires_at)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return self._lookup(key) is not _MISSING

    def stats(self) -> Dict[str, Optional[float]]:
        """Hit/miss counters and current size."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": self._hits / total if total else None,
            }
