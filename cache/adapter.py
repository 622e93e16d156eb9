"""Best-effort cache used for latest-reading acceleration and alert dedup markers."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Optional, Protocol

from cache.mock_redis import MockRedis
from cache.redis_backend import RedisBackend
from models.records import AlertReason, StoredReading
from services.errors import CacheError
from settings import get_settings

logger = logging.getLogger(__name__)

LATEST_TTL_SECONDS = 24 * 60 * 60


class CacheBackend(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def ping(self) -> bool: ...

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None: ...

    def set_if_absent(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool: ...

    def exists(self, key: str) -> bool: ...


def latest_key(device_id: str) -> str:
    return f"latest:{device_id}"


def alert_key(device_id: str, reason: AlertReason) -> str:
    return f"alert:{device_id}:{AlertReason(reason).value}"


class CacheAdapter:
    """Wraps a backend so no cache failure ever reaches the caller.

    Reads degrade to a miss. Dedup checks fail open: an unreachable backend
    reports "no marker" so the alert is sent rather than silently dropped.
    """

    def __init__(self, backend: CacheBackend, latest_ttl: int = LATEST_TTL_SECONDS) -> None:
        self.backend = backend
        self.latest_ttl = latest_ttl

    def open(self) -> None:
        try:
            self.backend.open()
        except CacheError as exc:
            logger.warning("Cache backend failed to open: %s", exc)

    def close(self) -> None:
        try:
            self.backend.close()
        except CacheError as exc:
            logger.warning("Cache backend failed to close cleanly: %s", exc)

    def is_healthy(self) -> bool:
        try:
            return self.backend.ping()
        except CacheError as exc:
            logger.warning("Cache health check failed: %s", exc)
            return False

    def set_latest(
        self, device_id: str, reading: StoredReading, ttl: Optional[int] = None
    ) -> None:
        key = latest_key(device_id)
        try:
            payload = json.dumps(reading.to_document())
            self.backend.set(key, payload, ttl or self.latest_ttl)
        except (CacheError, TypeError, ValueError) as exc:
            logger.error(
                "Failed to cache latest reading: %s",
                exc,
                extra={"device_id": device_id, "cache_key": key},
            )
            return
        logger.debug("Cached latest reading", extra={"device_id": device_id})

    def get_latest(self, device_id: str) -> Optional[StoredReading]:
        key = latest_key(device_id)
        try:
            raw = self.backend.get(key)
        except CacheError as exc:
            logger.error(
                "Failed to read cached reading: %s",
                exc,
                extra={"device_id": device_id, "cache_key": key},
            )
            return None
        if not raw:
            return None
        try:
            return StoredReading.from_document(json.loads(raw))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Discarding malformed cached reading: %s",
                exc,
                extra={"device_id": device_id, "cache_key": key},
            )
            return None

    def marker_exists(self, device_id: str, reason: AlertReason) -> bool:
        key = alert_key(device_id, reason)
        try:
            return self.backend.exists(key)
        except CacheError as exc:
            logger.error(
                "Dedup check failed, allowing alert: %s",
                exc,
                extra={"device_id": device_id, "cache_key": key},
            )
            return False

    def set_marker(self, device_id: str, reason: AlertReason, ttl: int) -> None:
        key = alert_key(device_id, reason)
        try:
            self.backend.set(key, "1", ttl)
        except CacheError as exc:
            logger.error(
                "Failed to mark alert as sent: %s",
                exc,
                extra={"device_id": device_id, "cache_key": key},
            )

    def claim_marker(self, device_id: str, reason: AlertReason, ttl: int) -> bool:
        """Atomically set the marker if absent; ``True`` means the caller should alert."""
        key = alert_key(device_id, reason)
        try:
            return self.backend.set_if_absent(key, "1", ttl)
        except CacheError as exc:
            logger.error(
                "Atomic dedup claim failed, allowing alert: %s",
                exc,
                extra={"device_id": device_id, "cache_key": key},
            )
            return True


def build_backend(redis_url: Optional[str] = None) -> CacheBackend:
    settings = get_settings()
    url = settings.redis_url if redis_url is None else redis_url
    if not url:
        return MockRedis()
    return RedisBackend(url, socket_timeout=settings.redis_socket_timeout)


@lru_cache
def build_default_cache(redis_url: Optional[str] = None) -> CacheAdapter:
    settings = get_settings()
    return CacheAdapter(build_backend(redis_url), latest_ttl=settings.latest_ttl_seconds)
