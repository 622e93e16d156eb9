"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Union

TimestampLike = Union[datetime, str]


def parse_timestamp(value: TimestampLike) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Strings are read as ISO-8601 (a trailing ``Z`` is accepted). Naive values
    are assumed to already be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        candidate = value.strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp format: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render an instant as ISO-8601 UTC with a ``Z`` suffix."""
    utc = parse_timestamp(value)
    return utc.isoformat().replace("+00:00", "Z")


@dataclass(slots=True, frozen=True)
class Reading:
    """A single temperature/humidity sample reported by a device."""

    device_id: str
    site_id: str
    timestamp: datetime
    temperature: float
    humidity: float


@dataclass(slots=True, frozen=True)
class StoredReading:
    """A reading as held by the durable store, with its assigned identity."""

    id: str
    device_id: str
    site_id: str
    timestamp: datetime
    temperature: float
    humidity: float
    created_at: datetime

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "siteId": self.site_id,
            "ts": format_timestamp(self.timestamp),
            "metrics": {
                "temperature": self.temperature,
                "humidity": self.humidity,
            },
            "createdAt": format_timestamp(self.created_at),
        }

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "StoredReading":
        metrics = document["metrics"]
        return cls(
            id=str(document["id"]),
            device_id=str(document["deviceId"]),
            site_id=str(document["siteId"]),
            timestamp=parse_timestamp(document["ts"]),
            temperature=float(metrics["temperature"]),
            humidity=float(metrics["humidity"]),
            created_at=parse_timestamp(document["createdAt"]),
        )


class AlertReason(str, Enum):
    HIGH_TEMPERATURE = "HIGH_TEMPERATURE"
    HIGH_HUMIDITY = "HIGH_HUMIDITY"


@dataclass(slots=True, frozen=True)
class AlertEvent:
    """Threshold crossing handed to the notifier, never persisted."""

    device_id: str
    site_id: str
    ts: datetime
    reason: AlertReason
    value: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "siteId": self.site_id,
            "ts": format_timestamp(self.ts),
            "reason": self.reason.value,
            "value": self.value,
        }


@dataclass(slots=True, frozen=True)
class SiteSummary:
    """Aggregate statistics for one site over a closed time interval."""

    count: int = 0
    avg_temperature: float = 0.0
    max_temperature: float = 0.0
    avg_humidity: float = 0.0
    max_humidity: float = 0.0
    unique_devices: int = 0
