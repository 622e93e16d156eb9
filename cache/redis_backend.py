from __future__ import annotations
import logging
from typing import Optional

import redis

from services.errors import CacheError

logger = logging.getLogger(__name__)


class RedisBackend:
    """Thin wrapper over ``redis.Redis`` that reports every failure as ``CacheError``."""

    def __init__(
        self,
        url: str,
        socket_timeout: float = 2.0,
        client: Optional[redis.Redis] = None,
    ) -> None:
        self._url = url
        self._socket_timeout = socket_timeout
        self._client = client

    @property
    def display_url(self) -> str:
        return self._url.split("@")[-1]

    def open(self) -> None:
        if self._client is None:
            self._client = redis.Redis.from_url(
                self._url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
        try:
            self._client.ping()
        except redis.RedisError as exc:
            # The client reconnects on the next command; run degraded meanwhile.
            logger.warning("Redis unreachable at %s: %s", self.display_url, exc)
            return
        logger.info("Redis connected at %s", self.display_url)

    def close(self) -> None:
        if self._client is None:
            return
        try:
            self._client.close()
        except redis.RedisError as exc:
            logger.warning("Error while closing Redis client: %s", exc)
        self._client = None

    def ping(self) -> bool:
        return bool(self._call("ping"))

    def get(self, key: str) -> Optional[str]:
        return self._call("get", key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self._call("set", key, value, ex=ttl_seconds)

    def set_if_absent(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        # SET NX returns None when the key already exists.
        return self._call("set", key, value, nx=True, ex=ttl_seconds) is not None

    def exists(self, key: str) -> bool:
        return self._call("exists", key) == 1

    def _call(self, command: str, *args, **kwargs):
        if self._client is None:
            raise CacheError("Redis client is not open.")
        try:
            return getattr(self._client, command)(*args, **kwargs)
        except redis.RedisError as exc:
            raise CacheError(f"Redis {command.upper()} failed: {exc}") from exc
