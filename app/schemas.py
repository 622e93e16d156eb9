"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from models.records import Reading, SiteSummary, StoredReading, format_timestamp, parse_timestamp


class MetricsIn(BaseModel):
    """Temperature in degrees Celsius and relative humidity in percent."""

    model_config = ConfigDict(extra="forbid")

    temperature: float = Field(..., ge=-100, le=150)
    humidity: float = Field(..., ge=0, le=100)


class ReadingIn(BaseModel):
    """A single telemetry reading as posted by a device."""

    model_config = ConfigDict(extra="forbid")

    deviceId: str = Field(..., min_length=1)
    siteId: str = Field(..., min_length=1)
    ts: datetime = Field(..., description="ISO-8601 timestamp of the sample.")
    metrics: MetricsIn

    @field_validator("deviceId", "siteId")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    def to_reading(self) -> Reading:
        return Reading(
            device_id=self.deviceId,
            site_id=self.siteId,
            timestamp=parse_timestamp(self.ts),
            temperature=self.metrics.temperature,
            humidity=self.metrics.humidity,
        )


class BulkReadingsIn(BaseModel):
    """Wrapper form ``{"readings": [...]}``."""

    model_config = ConfigDict(extra="forbid")

    readings: List[ReadingIn] = Field(..., min_length=1)


ReadingList = Annotated[List[ReadingIn], Field(min_length=1)]


class TelemetryPayload(RootModel[Union[BulkReadingsIn, ReadingList, ReadingIn]]):
    """Any of the accepted ingestion body shapes."""

    def readings(self) -> List[ReadingIn]:
        body = self.root
        if isinstance(body, BulkReadingsIn):
            return body.readings
        if isinstance(body, list):
            return body
        return [body]


class IngestResponse(BaseModel):
    success: bool = True
    message: str
    count: int = Field(..., ge=0)


class MetricsOut(BaseModel):
    temperature: float
    humidity: float


class LatestReadingOut(BaseModel):
    """Most recent reading for a device."""

    id: str
    deviceId: str
    siteId: str
    ts: str
    metrics: MetricsOut
    createdAt: str

    @classmethod
    def from_record(cls, record: StoredReading) -> "LatestReadingOut":
        return cls.model_validate(record.to_document())


class SiteSummaryOut(BaseModel):
    """Aggregate statistics for a site over a closed time range."""

    count: int = Field(..., ge=0)
    avgTemperature: float
    maxTemperature: float
    avgHumidity: float
    maxHumidity: float
    uniqueDevices: int = Field(..., ge=0)

    @classmethod
    def from_summary(cls, summary: SiteSummary) -> "SiteSummaryOut":
        return cls(
            count=summary.count,
            avgTemperature=summary.avg_temperature,
            maxTemperature=summary.max_temperature,
            avgHumidity=summary.avg_humidity,
            maxHumidity=summary.max_humidity,
            uniqueDevices=summary.unique_devices,
        )


class ServiceStatus(str, Enum):
    up = "up"
    down = "down"


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    services: Dict[str, ServiceStatus]

    @classmethod
    def build(cls, services: Dict[str, bool], now: datetime) -> "HealthResponse":
        return cls(
            status="healthy" if all(services.values()) else "degraded",
            timestamp=format_timestamp(now),
            services={
                name: ServiceStatus.up if ok else ServiceStatus.down
                for name, ok in services.items()
            },
        )
