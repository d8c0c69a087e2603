"""
In-process TTL cache for analytics results.

Keys are built from the query name plus every bound parameter, so two calls
that differ in any filter never share an entry.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from gallery_dw.config import ANALYTICS_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

_MISSING = object()


class QueryCache:
    """Thread-safe key/value cache with per-entry expiry."""

    def __init__(self, ttl_seconds: float = ANALYTICS_CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(name: str, **params) -> str:
        return name + ':' + '|'.join(f"{k}={params[k]!r}" for k in sorted(params))

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None):
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def get_or_load(self, key: str, loader: Callable[[], Any], ttl_seconds: Optional[float] = None) -> Any:
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = loader()
        self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def clear(self):
        with self._lock:
            self._entries.clear()
        logger.debug("Analytics cache cleared")

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)
