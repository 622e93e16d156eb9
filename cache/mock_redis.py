from __future__ import annotations
import time
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from services.errors import CacheError


class MockRedis:
    """In-process key/value store with per-key expiry.

    Mirrors the subset of Redis the cache adapter relies on. Expired keys are
    evicted lazily on access.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = Lock()
        self._open = False

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live_entry(key)
            return entry[0] if entry else None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise CacheError(f"Invalid expiry {ttl_seconds!r} for key {key!r}.")
        with self._lock:
            self._entries[key] = (value, self._deadline(ttl_seconds))

    def set_if_absent(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise CacheError(f"Invalid expiry {ttl_seconds!r} for key {key!r}.")
        with self._lock:
            if self._live_entry(key) is not None:
                return False
            self._entries[key] = (value, self._deadline(ttl_seconds))
            return True

    def exists(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or ``None`` if absent or persistent."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None or entry[1] is None:
                return None
            return entry[1] - self._clock()

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(key for key in list(self._entries) if self._live_entry(key))

    def _deadline(self, ttl_seconds: Optional[int]) -> Optional[float]:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _live_entry(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry[1]
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return entry
