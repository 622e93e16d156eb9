from __future__ import annotations

import json
import logging
from bisect import bisect_left, bisect_right, insort
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from models.records import Reading, SiteSummary, StoredReading, parse_timestamp
from services.aggregator import Aggregator
from services.errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)


def _ts_key(reading: StoredReading) -> datetime:
    return reading.timestamp


class MockTelemetryCollection:
    """Append-only telemetry collection with per-device, per-site and time indexes.

    Index lists are kept sorted by timestamp ascending, so the newest entry of
    each is at the end. Equal timestamps keep insertion order.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self.aggregator = aggregator or Aggregator()
        self._records: List[StoredReading] = []
        self._by_device: Dict[str, List[StoredReading]] = {}
        self._by_site: Dict[str, List[StoredReading]] = {}
        self._by_time: List[StoredReading] = []
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert_batch(self, readings: Iterable[Reading]) -> list[StoredReading]:
        """Store every reading or none of them.

        Raises ``StorageError`` when persistence fails; the in-memory indexes
        are only updated after the batch has been written.
        """
        created_at = datetime.now(timezone.utc)
        try:
            stored = [
                StoredReading(
                    id=uuid4().hex,
                    device_id=reading.device_id,
                    site_id=reading.site_id,
                    timestamp=parse_timestamp(reading.timestamp),
                    temperature=float(reading.temperature),
                    humidity=float(reading.humidity),
                    created_at=created_at,
                )
                for reading in readings
            ]
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Cannot map reading to a stored record: {exc}") from exc

        with self._lock:
            try:
                self._persist(self._records + stored)
            except (OSError, TypeError, ValueError) as exc:
                raise StorageError(
                    f"Failed to write {len(stored)} reading(s) to {self.name!r}."
                ) from exc
            for record in stored:
                self._index(record)
        return stored

    def find_latest_by_device(self, device_id: str) -> Optional[StoredReading]:
        with self._lock:
            records = self._by_device.get(device_id)
            if not records:
                return None
            return records[-1]

    def find_by_site_and_range(
        self, site_id: str, start: datetime, end: datetime
    ) -> list[StoredReading]:
        """Return readings for ``site_id`` with ``start <= timestamp <= end``."""
        start = parse_timestamp(start)
        end = parse_timestamp(end)
        with self._lock:
            records = self._by_site.get(site_id, [])
            lo = bisect_left(records, start, key=_ts_key)
            hi = bisect_right(records, end, key=_ts_key)
            return records[lo:hi]

    def aggregate_by_site_and_range(
        self, site_id: str, start: datetime, end: datetime
    ) -> SiteSummary:
        return self.aggregator.aggregate(self.find_by_site_and_range(site_id, start, end))

    def find_by_time_range(self, start: datetime, end: datetime) -> list[StoredReading]:
        start = parse_timestamp(start)
        end = parse_timestamp(end)
        with self._lock:
            lo = bisect_left(self._by_time, start, key=_ts_key)
            hi = bisect_right(self._by_time, end, key=_ts_key)
            return self._by_time[lo:hi]

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def ping(self) -> bool:
        if not self.persistence_path:
            return True
        return self.persistence_path.parent.is_dir()

    def _index(self, record: StoredReading) -> None:
        self._records.append(record)
        insort(self._by_device.setdefault(record.device_id, []), record, key=_ts_key)
        insort(self._by_site.setdefault(record.site_id, []), record, key=_ts_key)
        insort(self._by_time, record, key=_ts_key)

    def _persist(self, records: List[StoredReading]) -> None:
        if not self.persistence_path:
            return
        payload = [record.to_document() for record in records]
        staging = self.persistence_path.with_name(self.persistence_path.name + ".tmp")
        try:
            staging.write_text(json.dumps(payload, indent=2, sort_keys=True))
            staging.replace(self.persistence_path)
        finally:
            staging.unlink(missing_ok=True)

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
        except OSError:
            logger.warning("Ignoring unreadable collection file %s", self.persistence_path)
            return

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            # Moved aside, since the next write replaces the file.
            backup = self.persistence_path.with_name(self.persistence_path.name + ".corrupt")
            logger.warning(
                "Collection file %s is not valid JSON; moved it to %s",
                self.persistence_path,
                backup,
            )
            self.persistence_path.replace(backup)
            return

        for document in data:
            try:
                record = StoredReading.from_document(document)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed document in %s", self.persistence_path)
                continue
            self._index(record)


@lru_cache
def build_default_collection(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockTelemetryCollection:
    settings = get_settings()
    collection_name = settings.collection_name if name is None else name
    collection_path = settings.collection_persistence_path if path is None else path
    persistence = Path(collection_path) if collection_path else None
    return MockTelemetryCollection(name=collection_name, persistence_path=persistence)
