from __future__ import annotations

from typing import Dict, Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.auth import get_ingest_token
from app.main import create_app
from cache.adapter import CacheAdapter, build_default_cache
from cache.mock_redis import MockRedis
from datastore.mock_mongo import MockTelemetryCollection, build_default_collection
from models.records import AlertEvent
from services.alerts import AlertDispatcher
from services.ingestion import TelemetryService, build_default_service
from settings import get_settings


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[AlertEvent] = []

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def send(self, event: AlertEvent) -> int:
        self.sent.append(event)
        return 200


def _reading(device_id: str = "device-001", ts: str = "2025-10-01T10:00:00.000Z", **metrics) -> dict:
    return {
        "deviceId": device_id,
        "siteId": "site-A",
        "ts": ts,
        "metrics": {"temperature": 25.5, "humidity": 60.0, **metrics},
    }


@pytest.fixture
def services() -> Dict[int, TelemetryService]:
    return {}


@pytest.fixture
def app_and_client(tmp_path, monkeypatch, services) -> Iterator[tuple]:
    def build_test_service(workers: int | None = None) -> TelemetryService:
        worker_count = workers or 1
        service = services.get(worker_count)
        if service is None:
            cache = CacheAdapter(MockRedis())
            service = TelemetryService(
                collection=MockTelemetryCollection(
                    name="test", persistence_path=tmp_path / "telemetry.json"
                ),
                cache=cache,
                dispatcher=AlertDispatcher(cache=cache, notifier=RecordingNotifier()),
                workers=worker_count,
            )
            services[worker_count] = service
        return service

    def cache_clear() -> None:
        while services:
            _, service = services.popitem()
            service.shutdown()

    build_test_service.cache_clear = cache_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)
    monkeypatch.setattr("services.ingestion.build_default_service", build_test_service)

    app = create_app()
    app.dependency_overrides[get_ingest_token] = lambda: None
    with TestClient(app) as client:
        yield app, client, build_test_service

    cache_clear()


@pytest.fixture
def api_client(app_and_client) -> TestClient:
    return app_and_client[1]


@pytest.fixture
def service(app_and_client) -> TelemetryService:
    return app_and_client[2]()


def test_lifespan_shuts_down_service_and_clears_cache(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TELEMETRY_PERSISTENCE_PATH", str(tmp_path / "telemetry.json"))
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.delenv("ALERT_WEBHOOK_URL", raising=False)
    caches = (get_settings, build_default_collection, build_default_cache, build_default_service)
    for cache in caches:
        cache.cache_clear()

    app = create_app()
    try:
        with TestClient(app):
            service_during = build_default_service()
            assert service_during.executor._shutdown is False

        assert service_during.executor._shutdown is True
        service_after = build_default_service()
        try:
            assert service_after is not service_during
            assert service_after.executor._shutdown is False
        finally:
            service_after.shutdown()
    finally:
        for cache in caches:
            cache.cache_clear()


def test_ingest_single_reading(api_client: TestClient, service: TelemetryService) -> None:
    response = api_client.post("/api/v1/telemetry", json=_reading())

    assert response.status_code == 201
    assert response.json() == {
        "success": True,
        "message": "Successfully ingested 1 telemetry reading(s)",
        "count": 1,
    }
    assert service.collection.count() == 1


def test_ingest_list_and_wrapped_batch(api_client: TestClient, service: TelemetryService) -> None:
    listed = api_client.post(
        "/api/v1/telemetry",
        json=[_reading("device-001"), _reading("device-002")],
    )
    wrapped = api_client.post(
        "/api/v1/telemetry",
        json={"readings": [_reading("device-003"), _reading("device-004"), _reading("device-005")]},
    )

    assert listed.status_code == 201
    assert listed.json()["count"] == 2
    assert wrapped.status_code == 201
    assert wrapped.json()["count"] == 3
    assert service.collection.count() == 5


@pytest.mark.parametrize(
    "body",
    [
        [],
        {"readings": []},
        _reading(humidity=150.0),
        _reading(temperature=-101.0),
        {"deviceId": "device-001", "siteId": "site-A", "ts": "2025-10-01T10:00:00Z"},
        _reading(device_id="   "),
        _reading(ts="not-a-timestamp"),
    ],
)
def test_ingest_rejects_invalid_bodies(
    api_client: TestClient, service: TelemetryService, body
) -> None:
    response = api_client.post("/api/v1/telemetry", json=body)

    assert response.status_code == 422
    assert service.collection.count() == 0


def test_ingest_storage_failure_returns_service_unavailable(
    api_client: TestClient, service: TelemetryService, monkeypatch
) -> None:
    def broken(records) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(service.collection, "_persist", broken)

    response = api_client.post("/api/v1/telemetry", json=_reading())

    assert response.status_code == 503
    assert service.collection.count() == 0


def test_ingest_requires_token_when_configured(app_and_client) -> None:
    app, client, _ = app_and_client
    app.dependency_overrides[get_ingest_token] = lambda: "s3cr3t"

    missing = client.post("/api/v1/telemetry", json=_reading())
    wrong = client.post(
        "/api/v1/telemetry", json=_reading(), headers={"Authorization": "Bearer nope"}
    )
    accepted = client.post(
        "/api/v1/telemetry", json=_reading(), headers={"Authorization": "Bearer s3cr3t"}
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert accepted.status_code == 201


def test_latest_reading_round_trip(api_client: TestClient, service: TelemetryService) -> None:
    api_client.post(
        "/api/v1/telemetry",
        json=[
            _reading(ts="2025-10-01T10:00:00Z", temperature=21.0),
            _reading(ts="2025-10-01T10:05:00Z", temperature=23.0),
        ],
    )
    service.wait_for_pending(timeout=5)

    response = api_client.get("/api/v1/devices/device-001/latest")

    assert response.status_code == 200
    body = response.json()
    assert body["deviceId"] == "device-001"
    assert body["siteId"] == "site-A"
    assert body["ts"] == "2025-10-01T10:05:00Z"
    assert body["metrics"] == {"temperature": 23.0, "humidity": 60.0}
    assert body["id"] and body["createdAt"]


def test_latest_unknown_device_returns_not_found(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/devices/ghost/latest")

    assert response.status_code == 404
    assert "ghost" in response.json()["detail"]


def test_site_summary(api_client: TestClient) -> None:
    api_client.post(
        "/api/v1/telemetry",
        json=[
            _reading("device-1", ts="2025-10-01T10:00:00Z", temperature=25.0, humidity=60.0),
            _reading("device-2", ts="2025-10-01T10:30:00Z", temperature=30.0, humidity=70.0),
        ],
    )

    response = api_client.get(
        "/api/v1/sites/site-A/summary",
        params={"from": "2025-10-01T10:00:00Z", "to": "2025-10-01T10:30:00Z"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "count": 2,
        "avgTemperature": 27.5,
        "maxTemperature": 30.0,
        "avgHumidity": 65.0,
        "maxHumidity": 70.0,
        "uniqueDevices": 2,
    }


def test_site_summary_empty_range(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/v1/sites/site-Z/summary",
        params={"from": "2025-10-01T00:00:00Z", "to": "2025-10-02T00:00:00Z"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "count": 0,
        "avgTemperature": 0,
        "maxTemperature": 0,
        "avgHumidity": 0,
        "maxHumidity": 0,
        "uniqueDevices": 0,
    }


def test_site_summary_validates_range(api_client: TestClient) -> None:
    reversed_range = api_client.get(
        "/api/v1/sites/site-A/summary",
        params={"from": "2025-10-02T00:00:00Z", "to": "2025-10-01T00:00:00Z"},
    )
    missing_to = api_client.get(
        "/api/v1/sites/site-A/summary", params={"from": "2025-10-01T00:00:00Z"}
    )

    assert reversed_range.status_code == 400
    assert missing_to.status_code == 422


def test_health_reports_services(api_client: TestClient) -> None:
    response = api_client.get("/api/v1/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["services"] == {"store": "up", "cache": "up"}
    assert body["timestamp"].endswith("Z")


def test_health_degraded_when_cache_down(
    api_client: TestClient, service: TelemetryService, monkeypatch
) -> None:
    monkeypatch.setattr(service.cache, "is_healthy", lambda: False)

    response = api_client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["services"]["cache"] == "down"
