"""Threshold alerting with time-windowed deduplication."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from cache.adapter import CacheAdapter
from models.records import AlertEvent, AlertReason, parse_timestamp
from services.errors import DeliveryError
from services.notifier import WebhookNotifier

logger = logging.getLogger(__name__)

TEMPERATURE_THRESHOLD = 50.0
HUMIDITY_THRESHOLD = 90.0
DEFAULT_DEDUP_WINDOW = 60


class AlertDispatcher:
    """Evaluates readings against fixed thresholds and delivers deduplicated alerts.

    Each reason is handled on its own: a reading that is both too hot and too
    humid produces two events with separate dedup markers. The marker is set
    before delivery and is kept even when delivery fails, so a failed alert is
    not retried inside the window.

    With ``atomic_dedup`` the marker check and set collapse into a single
    set-if-absent call, which rules out two concurrent crossings both alerting.
    """

    def __init__(
        self,
        cache: CacheAdapter,
        notifier: WebhookNotifier,
        dedup_window: int = DEFAULT_DEDUP_WINDOW,
        atomic_dedup: bool = False,
    ) -> None:
        self.cache = cache
        self.notifier = notifier
        self.dedup_window = dedup_window
        self.atomic_dedup = atomic_dedup

    def open(self) -> None:
        self.notifier.open()

    def close(self) -> None:
        self.notifier.close()

    def check_and_alert(
        self,
        device_id: str,
        site_id: str,
        ts: datetime | str,
        temperature: float,
        humidity: float,
    ) -> List[AlertEvent]:
        """Return the events that were handed to the notifier for this reading."""
        timestamp = parse_timestamp(ts)
        candidates: Tuple[Tuple[AlertReason, float, float], ...] = (
            (AlertReason.HIGH_TEMPERATURE, temperature, TEMPERATURE_THRESHOLD),
            (AlertReason.HIGH_HUMIDITY, humidity, HUMIDITY_THRESHOLD),
        )

        dispatched: List[AlertEvent] = []
        for reason, value, threshold in candidates:
            if not value > threshold:
                continue
            if not self._acquire(device_id, reason):
                logger.debug(
                    "Alert suppressed by dedup window",
                    extra={"device_id": device_id, "reason": reason.value},
                )
                continue
            event = AlertEvent(
                device_id=device_id,
                site_id=site_id,
                ts=timestamp,
                reason=reason,
                value=value,
            )
            self._deliver(event)
            dispatched.append(event)
        return dispatched

    def _acquire(self, device_id: str, reason: AlertReason) -> bool:
        if self.atomic_dedup:
            return self.cache.claim_marker(device_id, reason, self.dedup_window)
        if self.cache.marker_exists(device_id, reason):
            return False
        self.cache.set_marker(device_id, reason, self.dedup_window)
        return True

    def _deliver(self, event: AlertEvent) -> Optional[int]:
        context = {
            "device_id": event.device_id,
            "site_id": event.site_id,
            "reason": event.reason.value,
            "value": event.value,
        }
        logger.info("Alert triggered", extra=context)
        try:
            status = self.notifier.send(event)
        except DeliveryError as exc:
            logger.error(
                "Failed to deliver alert: %s",
                exc,
                extra={**context, "status": exc.status_code},
            )
            return None
        logger.info("Alert delivered", extra={**context, "status": status})
        return status
