from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List

import httpx
import pytest

from models.records import AlertEvent, AlertReason
from services.errors import DeliveryError
from services.notifier import WebhookNotifier

WEBHOOK_URL = "http://hooks.test/alerts?token=s3cr3t"


def _event() -> AlertEvent:
    return AlertEvent(
        device_id="device-001",
        site_id="site-A",
        ts=datetime(2025, 10, 1, 10, 0, tzinfo=timezone.utc),
        reason=AlertReason.HIGH_TEMPERATURE,
        value=55.0,
    )


def _notifier(handler) -> WebhookNotifier:
    notifier = WebhookNotifier(WEBHOOK_URL, transport=httpx.MockTransport(handler))
    notifier.open()
    return notifier


def test_send_posts_json_payload() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    notifier = _notifier(handler)
    try:
        assert notifier.send(_event()) == 200
    finally:
        notifier.close()

    (request,) = requests
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "deviceId": "device-001",
        "siteId": "site-A",
        "ts": "2025-10-01T10:00:00Z",
        "reason": "HIGH_TEMPERATURE",
        "value": 55.0,
    }


def test_non_success_status_raises_delivery_error() -> None:
    notifier = _notifier(lambda request: httpx.Response(503))

    with pytest.raises(DeliveryError) as excinfo:
        notifier.send(_event())

    assert excinfo.value.status_code == 503
    assert "s3cr3t" not in str(excinfo.value)


def test_timeout_raises_delivery_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    notifier = _notifier(handler)

    with pytest.raises(DeliveryError) as excinfo:
        notifier.send(_event())

    assert "timed out" in str(excinfo.value)
    assert excinfo.value.status_code is None


def test_connection_error_raises_delivery_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    notifier = _notifier(handler)

    with pytest.raises(DeliveryError, match="unreachable"):
        notifier.send(_event())


def test_follows_up_to_two_redirects() -> None:
    hops: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hops.append(request.url.path)
        if len(hops) <= 2:
            return httpx.Response(307, headers={"Location": f"http://hooks.test/hop{len(hops)}"})
        return httpx.Response(202)

    notifier = _notifier(handler)

    assert notifier.send(_event()) == 202
    assert hops == ["/alerts", "/hop1", "/hop2"]


def test_third_redirect_is_not_followed() -> None:
    hops: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        hops.append(request.url.path)
        return httpx.Response(307, headers={"Location": f"http://hooks.test/hop{len(hops)}"})

    notifier = _notifier(handler)

    with pytest.raises(DeliveryError):
        notifier.send(_event())

    assert len(hops) == 3


def test_missing_url_raises_delivery_error() -> None:
    notifier = WebhookNotifier(None)

    with pytest.raises(DeliveryError, match="not configured"):
        notifier.send(_event())


def test_send_after_close_raises_and_does_not_reopen() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    notifier = _notifier(handler)
    notifier.close()

    with pytest.raises(DeliveryError, match="closed"):
        notifier.send(_event())

    assert notifier._client is None
    assert requests == []


def test_send_before_open_raises() -> None:
    notifier = WebhookNotifier(
        WEBHOOK_URL, transport=httpx.MockTransport(lambda request: httpx.Response(204))
    )

    with pytest.raises(DeliveryError, match="closed"):
        notifier.send(_event())

    assert notifier._client is None


def test_invalid_url_raises_delivery_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("Invalid port")

    notifier = _notifier(handler)
    try:
        with pytest.raises(DeliveryError, match="invalid"):
            notifier.send(_event())
    finally:
        notifier.close()
