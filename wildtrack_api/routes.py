import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from . import metrics
from .errors import InternalError, ValidationError
from .geo import average_speed, parse_bbox, track_distance_m
from .ingest import ingest_batch, ingest_one
from .models import IsoDatetime, format_timestamp
from .producer import Publisher
from .repository import TelemetryRepository
from .settings import Settings
from .validation import validate_batch, validate_batch_items, validate_query, validate_telemetry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telemetry", tags=["telemetry"])

BBOX_FORMAT_MESSAGE = "bbox must be in format minLng,minLat,maxLng,maxLat with valid numbers."


def envelope(success: bool = True, **fields) -> Dict[str, Any]:
    """Response body with ``None`` valued keys left out."""
    return {"success": success, **{k: v for k, v in fields.items() if v is not None}}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_publisher(request: Request) -> Publisher:
    return request.app.state.publisher


def get_repository(request: Request) -> TelemetryRepository:
    return request.app.state.repository


def _now_iso() -> str:
    return format_timestamp(datetime.now(timezone.utc))


@router.post("", status_code=201)
async def upload_telemetry(
    payload: Any = Body(...),
    publisher: Publisher = Depends(get_publisher),
    settings: Settings = Depends(get_settings),
):
    """Upload a single telemetry data point."""
    try:
        record = validate_telemetry(payload)
    except ValidationError as e:
        metrics.validation_failures.labels(endpoint="single").inc()
        device_id = payload.get("deviceId") if isinstance(payload, dict) else None
        logger.warning(f"Invalid telemetry data received device_id={device_id} errors={e.details}")
        raise

    try:
        data = await ingest_one(record, publisher)
    except Exception as e:
        logger.exception("Error uploading telemetry data")
        raise InternalError("Failed to upload telemetry data", details=[str(e)] if settings.is_development else None)
    return envelope(message="Telemetry data uploaded successfully", data=data)


@router.post("/batch")
async def upload_batch_telemetry(
    payload: Any = Body(...),
    publisher: Publisher = Depends(get_publisher),
    settings: Settings = Depends(get_settings),
):
    """Upload up to 100 telemetry data points for one device."""
    try:
        batch = validate_batch(payload)
    except ValidationError as e:
        metrics.validation_failures.labels(endpoint="batch").inc()
        logger.warning(f"Invalid batch telemetry data received errors={e.details}")
        raise

    try:
        outcome = await ingest_batch(batch, validate_batch_items(batch), publisher)
    except Exception as e:
        logger.exception("Error uploading batch telemetry data")
        raise InternalError("Failed to upload batch telemetry data", details=[str(e)] if settings.is_development else None)
    summary = outcome["summary"]
    return envelope(
        message=f"Batch upload completed. {summary['successful']}/{summary['total']} items processed successfully.",
        summary=summary,
        results=outcome["results"],
        errors=outcome["errors"] or None,
    )


@router.get("/data")
async def get_telemetry_data(
    request: Request,
    repository: TelemetryRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """Telemetry records with filtering and pagination."""
    query = validate_query(request.query_params)
    limit = min(query.limit, settings.max_page_size)
    docs = repository.find(query, limit)
    return envelope(
        data=docs,
        pagination={
            "limit": limit,
            "offset": query.offset,
            "total": len(docs),
            "hasMore": len(docs) == limit,
        },
        filters=query.to_filters(),
    )


@router.get("/wildlife")
async def get_wildlife_summary(
    species: Optional[str] = None,
    start_date: Optional[IsoDatetime] = Query(None, alias="startDate"),
    end_date: Optional[IsoDatetime] = Query(None, alias="endDate"),
    repository: TelemetryRepository = Depends(get_repository),
):
    summary = repository.wildlife_summary(species=species, start=start_date, end=end_date)
    return envelope(data=summary, timestamp=_now_iso())


@router.get("/individual/{individual_id}")
async def get_individual_tracking(
    individual_id: str,
    start_date: Optional[IsoDatetime] = Query(None, alias="startDate"),
    end_date: Optional[IsoDatetime] = Query(None, alias="endDate"),
    limit: int = Query(100, ge=0),
    repository: TelemetryRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    tracking = repository.individual_track(
        individual_id, start=start_date, end=end_date, limit=min(limit, settings.max_track_points)
    )
    return envelope(data={
        "individualId": individual_id,
        "summary": {
            "totalPoints": len(tracking),
            "dateRange": {
                "start": tracking[-1]["timestamp"] if tracking else None,
                "end": tracking[0]["timestamp"] if tracking else None,
            },
            "distance": track_distance_m(tracking),
            "averageSpeed": average_speed(tracking),
        },
        "tracking": tracking,
    })


@router.get("/map")
async def get_map_data(
    bbox: Optional[str] = None,
    species: Optional[str] = None,
    activity: Optional[str] = None,
    limit: int = Query(500, ge=0),
    repository: TelemetryRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
):
    """Points for map visualization, optionally clipped to ``bbox``."""
    logger.info(f"Map data request bbox={bbox} species={species} activity={activity} limit={limit}")
    try:
        box = parse_bbox(bbox)
    except ValueError:
        raise ValidationError([BBOX_FORMAT_MESSAGE], message="Invalid bbox format")

    points = repository.map_points(bbox=box, species=species, activity=activity, limit=min(limit, settings.max_page_size))
    return envelope(
        data=points,
        metadata={
            "totalPoints": len(points),
            "bbox": box.to_dict() if box else None,
            "timestamp": _now_iso(),
        },
    )


@router.get("/stats")
async def get_upload_stats(request: Request, publisher: Publisher = Depends(get_publisher)):
    settings = get_settings(request)
    prefix = settings.api_prefix
    return envelope(data={
        "service": settings.app_name,
        "version": settings.version,
        "uptime": round(time.monotonic() - request.app.state.started_at, 3),
        "timestamp": _now_iso(),
        "kafka": publisher.health(),
        "endpoints": {
            "single": f"{prefix}/telemetry",
            "batch": f"{prefix}/telemetry/batch",
            "retrieve": f"{prefix}/telemetry/data",
            "wildlife": f"{prefix}/telemetry/wildlife",
            "individual": f"{prefix}/telemetry/individual/:id",
            "map": f"{prefix}/telemetry/map",
        },
    })
