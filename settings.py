from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_COLLECTION_NAME_ENV = "TELEMETRY_COLLECTION_NAME"
_COLLECTION_PATH_ENV = "TELEMETRY_PERSISTENCE_PATH"
_REDIS_URL_ENV = "REDIS_URL"
_REDIS_TIMEOUT_ENV = "REDIS_SOCKET_TIMEOUT"
_LATEST_TTL_ENV = "CACHE_LATEST_TTL"
_WEBHOOK_URL_ENV = "ALERT_WEBHOOK_URL"
_DEDUP_WINDOW_ENV = "ALERT_DEDUP_WINDOW"
_DEDUP_ATOMIC_ENV = "ALERT_DEDUP_ATOMIC"
_WORKER_COUNT_ENV = "INGEST_WORKER_COUNT"
_INGEST_TOKEN_ENV = "INGEST_TOKEN"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    collection_name: str
    collection_persistence_path: Optional[str]
    redis_url: Optional[str]
    redis_socket_timeout: float
    latest_ttl_seconds: int
    alert_webhook_url: Optional[str]
    alert_dedup_window: int
    alert_dedup_atomic: bool
    ingest_workers: int
    ingest_token: Optional[str]
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        collection_name=_read_str_env(_COLLECTION_NAME_ENV, "telemetry"),
        collection_persistence_path=_read_optional_env(
            _COLLECTION_PATH_ENV, "./tmp/telemetry.json"
        ),
        redis_url=_read_optional_env(_REDIS_URL_ENV, None),
        redis_socket_timeout=_read_positive_float(_REDIS_TIMEOUT_ENV, 2.0),
        latest_ttl_seconds=_read_positive_int(_LATEST_TTL_ENV, 86400),
        alert_webhook_url=_read_optional_env(_WEBHOOK_URL_ENV, None),
        alert_dedup_window=_read_positive_int(_DEDUP_WINDOW_ENV, 60),
        alert_dedup_atomic=_read_bool(_DEDUP_ATOMIC_ENV, False),
        ingest_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        ingest_token=_read_optional_env(_INGEST_TOKEN_ENV, None),
        log_level=_read_log_level("INFO"),
    )
