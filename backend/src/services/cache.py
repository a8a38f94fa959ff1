"""
Round data cache port.

The round service takes a cache object with get/set/invalidate. The cache is
advisory: a miss (or NullRoundCache) only costs a database round-trip.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class RoundCache:
    """Interface for round caches."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def invalidate(self, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        """Drop one key, every key with a prefix, or everything when both are None."""
        raise NotImplementedError


class NullRoundCache(RoundCache):
    """Cache that never stores anything."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        return None

    def invalidate(self, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        return None


class TTLRoundCache(RoundCache):
    """In-process cache with a per-entry time to live (seconds)."""

    def __init__(self, ttl: int = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        now = self._clock()
        expires_at = now + (self.ttl if ttl is None else ttl)
        with self._lock:
            # Sweep expired entries; get() only evicts keys that are read again
            for k in [k for k, (exp, _) in self._entries.items() if now >= exp]:
                del self._entries[k]
            self._entries[key] = (expires_at, value)

    def invalidate(self, key: Optional[str] = None, prefix: Optional[str] = None) -> None:
        with self._lock:
            if key is None and prefix is None:
                self._entries.clear()
                return
            if key is not None:
                self._entries.pop(key, None)
            if prefix is not None:
                for k in [k for k in self._entries if k.startswith(prefix)]:
                    del self._entries[k]

    def __len__(self):
        return len(self._entries)
