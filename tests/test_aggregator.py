"""Unit tests for the aggregation logic."""

from __future__ import annotations

from datetime import datetime, timezone

from models.records import SiteSummary, StoredReading
from services.aggregator import Aggregator


def _reading(device_id: str, temperature: float, humidity: float) -> StoredReading:
    """Helper to build deterministic stored readings."""

    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return StoredReading(
        id=f"{device_id}-{temperature}-{humidity}",
        device_id=device_id,
        site_id="site-A",
        timestamp=ts,
        temperature=temperature,
        humidity=humidity,
        created_at=ts,
    )


def test_aggregate_empty_iterable_returns_zeroes() -> None:
    summary = Aggregator().aggregate([])

    assert summary == SiteSummary(
        count=0,
        avg_temperature=0,
        max_temperature=0,
        avg_humidity=0,
        max_humidity=0,
        unique_devices=0,
    )


def test_aggregate_computes_statistics_across_devices() -> None:
    summary = Aggregator().aggregate(
        [_reading("device-1", 25.0, 60.0), _reading("device-2", 30.0, 70.0)]
    )

    assert summary.count == 2
    assert summary.avg_temperature == 27.5
    assert summary.max_temperature == 30.0
    assert summary.avg_humidity == 65.0
    assert summary.max_humidity == 70.0
    assert summary.unique_devices == 2


def test_aggregate_counts_distinct_devices_not_readings() -> None:
    summary = Aggregator().aggregate(
        [_reading("device-1", 25.0, 60.0), _reading("device-1", 30.0, 70.0)]
    )

    assert summary.count == 2
    assert summary.unique_devices == 1


def test_aggregate_rounds_to_two_decimals() -> None:
    summary = Aggregator().aggregate(
        [
            _reading("device-1", 20.0, 50.0),
            _reading("device-2", 20.0, 50.0),
            _reading("device-3", 21.0, 51.0),
        ]
    )

    assert summary.avg_temperature == 20.33
    assert summary.avg_humidity == 50.33


def test_aggregate_handles_negative_temperatures() -> None:
    summary = Aggregator().aggregate(
        [_reading("device-1", -40.0, 10.0), _reading("device-1", -20.5, 12.0)]
    )

    assert summary.max_temperature == -20.5
    assert summary.avg_temperature == -30.25
