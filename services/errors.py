"""Error taxonomy for the telemetry pipeline.

Only ``StorageError`` on the write path and ``NotFoundError`` or
``ServiceUnavailableError`` on the read paths leave ``TelemetryService``.
``CacheError`` and ``DeliveryError`` are absorbed by the component that
raised them.
"""

from __future__ import annotations

from typing import Optional


class TelemetryError(Exception):
    """Base class for telemetry pipeline failures."""


class StorageError(TelemetryError):
    """The durable store rejected a write or failed a read."""


class ServiceUnavailableError(TelemetryError):
    """A read could not be served because the durable store is unavailable."""


class NotFoundError(TelemetryError, LookupError):
    """No data exists for the requested key."""


class CacheError(TelemetryError):
    """A cache backend call failed."""


class DeliveryError(TelemetryError):
    """An alert notification could not be delivered."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
