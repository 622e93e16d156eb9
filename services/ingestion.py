"""Ingestion orchestration: durable write, then best-effort cache and alert fan-out."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import Lock
from typing import Any, Callable, Optional, Sequence, Set

from cache.adapter import CacheAdapter, build_default_cache
from datastore.mock_mongo import MockTelemetryCollection, build_default_collection
from models.records import Reading, SiteSummary, StoredReading
from services.alerts import AlertDispatcher
from services.errors import NotFoundError, ServiceUnavailableError, StorageError
from services.notifier import WebhookNotifier
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    accepted_count: int


class TelemetryService:
    """Coordinates the durable store, the cache and alert dispatch.

    ``ingest`` returns once the batch is stored. Cache write-through and alert
    evaluation run afterwards on a bounded worker pool; their failures are
    logged and never reach the caller.
    """

    def __init__(
        self,
        collection: MockTelemetryCollection,
        cache: CacheAdapter,
        dispatcher: AlertDispatcher,
        workers: int = 4,
    ) -> None:
        self.collection = collection
        self.cache = cache
        self.dispatcher = dispatcher
        self.executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="telemetry-bg"
        )
        self._pending: Set[Future[Any]] = set()
        self._pending_lock = Lock()

    def ingest(self, readings: Sequence[Reading]) -> IngestResult:
        """Store ``readings`` durably and schedule their side effects.

        Raises ``StorageError`` if the batch cannot be written.
        """
        if not readings:
            raise ValueError("At least one telemetry reading is required.")

        start_time = time.perf_counter()
        logger.info("Ingesting telemetry batch", extra={"batch_size": len(readings)})
        stored = self.collection.insert_batch(readings)

        for record in stored:
            self._submit(
                "cache_latest",
                self.cache.set_latest,
                record.device_id,
                record,
                device_id=record.device_id,
            )
            self._submit(
                "check_alerts",
                self.dispatcher.check_and_alert,
                record.device_id,
                record.site_id,
                record.timestamp,
                record.temperature,
                record.humidity,
                device_id=record.device_id,
            )

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Telemetry batch stored",
            extra={"accepted_count": len(stored), "processing_ms": processing_ms},
        )
        return IngestResult(accepted_count=len(stored))

    def latest(self, device_id: str) -> StoredReading:
        """Return the newest reading for ``device_id``, cache first."""
        cached = self.cache.get_latest(device_id)
        if cached is not None:
            logger.debug("Cache hit for latest reading", extra={"device_id": device_id})
            return cached

        logger.debug("Cache miss for latest reading", extra={"device_id": device_id})
        try:
            record = self.collection.find_latest_by_device(device_id)
        except StorageError as exc:
            raise ServiceUnavailableError(
                "Telemetry store is unavailable; try again later."
            ) from exc

        if record is None:
            raise NotFoundError(f"No telemetry data found for device: {device_id}")

        self._submit(
            "cache_latest", self.cache.set_latest, device_id, record, device_id=device_id
        )
        return record

    def summarize(self, site_id: str, start: datetime, end: datetime) -> SiteSummary:
        """Aggregate readings for ``site_id`` with timestamps in ``[start, end]``."""
        try:
            summary = self.collection.aggregate_by_site_and_range(site_id, start, end)
        except StorageError as exc:
            raise ServiceUnavailableError(
                "Telemetry store is unavailable; try again later."
            ) from exc
        logger.info(
            "Site summary generated over %d reading(s)",
            summary.count,
            extra={"site_id": site_id},
        )
        return summary

    def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """Block until scheduled background work finishes; ``False`` on timeout."""
        with self._pending_lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        """Stop the worker pool, dropping queued best-effort work, and close clients."""
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.dispatcher.close()
        self.cache.close()

    def _submit(self, task: str, func: Callable[..., Any], *args: Any, **context: Any) -> None:
        try:
            future = self.executor.submit(self._run_best_effort, task, func, args, context)
        except RuntimeError:
            logger.warning(
                "Worker pool is shut down; dropping background task",
                extra={"task": task, **context},
            )
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: Future[Any]) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    @staticmethod
    def _run_best_effort(
        task: str, func: Callable[..., Any], args: tuple, context: dict
    ) -> None:
        try:
            func(*args)
        except Exception:
            logger.exception("Background task failed", extra={"task": task, **context})


@lru_cache
def build_default_service(workers: Optional[int] = None) -> TelemetryService:
    """Factory that wires the service from settings and opens its clients."""
    settings = get_settings()
    cache = build_default_cache()
    cache.open()
    if not settings.alert_webhook_url:
        logger.warning("ALERT_WEBHOOK_URL not configured - alerts will not be delivered")
    dispatcher = AlertDispatcher(
        cache=cache,
        notifier=WebhookNotifier(settings.alert_webhook_url),
        dedup_window=settings.alert_dedup_window,
        atomic_dedup=settings.alert_dedup_atomic,
    )
    dispatcher.open()
    return TelemetryService(
        collection=build_default_collection(),
        cache=cache,
        dispatcher=dispatcher,
        workers=workers or settings.ingest_workers,
    )
