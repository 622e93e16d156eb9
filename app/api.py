"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from app.auth import require_ingest_token
from app.schemas import (
    HealthResponse,
    IngestResponse,
    LatestReadingOut,
    SiteSummaryOut,
    TelemetryPayload,
)
from models.records import parse_timestamp
from services.errors import NotFoundError, ServiceUnavailableError, StorageError
from services.ingestion import TelemetryService, build_default_service

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service() -> TelemetryService:
    return build_default_service()


@router.post(
    "/api/v1/telemetry",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestResponse,
    summary="Ingest a single reading, a list of readings or a {readings: [...]} batch.",
    dependencies=[Depends(require_ingest_token)],
)
def ingest_telemetry(
    payload: TelemetryPayload = Body(...),
    service: TelemetryService = Depends(get_service),
) -> IngestResponse:
    readings = [item.to_reading() for item in payload.readings()]
    try:
        result = service.ingest(readings)
    except StorageError as exc:
        logger.error(
            "Telemetry batch rejected by store: %s",
            exc,
            extra={"batch_size": len(readings)},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Telemetry could not be stored; try again later.",
        ) from exc
    return IngestResponse(
        message=f"Successfully ingested {result.accepted_count} telemetry reading(s)",
        count=result.accepted_count,
    )


@router.get(
    "/api/v1/devices/{device_id}/latest",
    response_model=LatestReadingOut,
    summary="Latest reading for a device, served from cache when available.",
)
def get_latest(
    device_id: str = Path(..., min_length=1),
    service: TelemetryService = Depends(get_service),
) -> LatestReadingOut:
    try:
        record = service.latest(device_id)
    except NotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except ServiceUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return LatestReadingOut.from_record(record)


@router.get(
    "/api/v1/sites/{site_id}/summary",
    response_model=SiteSummaryOut,
    summary="Aggregate statistics for a site within an inclusive time range.",
)
def get_site_summary(
    site_id: str = Path(..., min_length=1),
    start: datetime = Query(..., alias="from", description="Range start (ISO-8601)."),
    end: datetime = Query(..., alias="to", description="Range end (ISO-8601)."),
    service: TelemetryService = Depends(get_service),
) -> SiteSummaryOut:
    start, end = parse_timestamp(start), parse_timestamp(end)
    if start > end:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'from' must not be later than 'to'.",
        )
    try:
        summary = service.summarize(site_id, start, end)
    except ServiceUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return SiteSummaryOut.from_summary(summary)


@router.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health of the telemetry store and cache.",
    status_code=status.HTTP_200_OK,
)
def healthcheck(service: TelemetryService = Depends(get_service)) -> HealthResponse:
    response = HealthResponse.build(
        {
            "store": service.collection.ping(),
            "cache": service.cache.is_healthy(),
        },
        now=datetime.now(timezone.utc),
    )
    if response.status != "healthy":
        logger.warning("Health check degraded: %s", response.services)
    return response


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /api/v1/health for service status."}
