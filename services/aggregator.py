"""Aggregation logic for site summaries."""

from __future__ import annotations

from typing import Iterable, Set

from models.records import SiteSummary, StoredReading


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def __init__(self, precision: int = 2) -> None:
        self.precision = precision

    def aggregate(self, readings: Iterable[StoredReading]) -> SiteSummary:
        count = 0
        temperature_total = 0.0
        humidity_total = 0.0
        max_temperature: float | None = None
        max_humidity: float | None = None
        devices: Set[str] = set()

        for reading in readings:
            count += 1
            temperature_total += reading.temperature
            humidity_total += reading.humidity
            devices.add(reading.device_id)

            if max_temperature is None or reading.temperature > max_temperature:
                max_temperature = reading.temperature
            if max_humidity is None or reading.humidity > max_humidity:
                max_humidity = reading.humidity

        if not count:
            return SiteSummary()

        return SiteSummary(
            count=count,
            avg_temperature=self._round(temperature_total / count),
            max_temperature=self._round(max_temperature),
            avg_humidity=self._round(humidity_total / count),
            max_humidity=self._round(max_humidity),
            unique_devices=len(devices),
        )

    def _round(self, value: float | None) -> float:
        if value is None:
            return 0.0
        return round(value, self.precision)
