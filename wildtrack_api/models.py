import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

Activity = Literal["active", "resting", "feeding", "migrating", "unknown"]
Health = Literal["healthy", "injured", "sick", "unknown"]
Gender = Literal["male", "female", "unknown"]
Priority = Literal["low", "normal", "high", "critical"]

BBOX_PATTERN = r"^-?\d+(\.\d+)?,-?\d+(\.\d+)?,-?\d+(\.\d+)?,-?\d+(\.\d+)?$"
ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def require_iso_datetime(value: Any) -> Any:
    """Only ISO-8601 text (or a datetime) is a timestamp; epoch numbers are not."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not ISO_DATE_PREFIX.match(value):
        raise ValueError("must be in ISO 8601 date format")
    return value


def require_utc_representable(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    try:
        value.astimezone(timezone.utc)
    except OverflowError:
        raise ValueError("is outside the representable UTC range")
    return value


IsoDatetime = Annotated[
    datetime,
    BeforeValidator(require_iso_datetime),
    AfterValidator(require_utc_representable),
]


class WireModel(BaseModel):
    # camelCase on the wire, unknown keys dropped
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
        allow_inf_nan=False,
    )


class Location(WireModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: Optional[float] = None
    accuracy: Optional[float] = Field(None, ge=0)


class Vector3(WireModel):
    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None


class Sensors(WireModel):
    temperature: Optional[float] = Field(None, ge=-273.15, le=1000)
    humidity: Optional[float] = Field(None, ge=0, le=100)
    pressure: Optional[float] = Field(None, ge=0, le=2000)
    light: Optional[float] = Field(None, ge=0)
    sound: Optional[float] = Field(None, ge=0)
    vibration: Optional[float] = Field(None, ge=0)
    acceleration: Optional[Vector3] = None
    gyroscope: Optional[Vector3] = None
    magnetic: Optional[Vector3] = None


class Wildlife(WireModel):
    species: Optional[str] = None
    individual_id: Optional[str] = None
    collar_id: Optional[str] = None
    activity: Optional[Activity] = None
    behavior: Optional[str] = None
    health: Optional[Health] = None
    weight: Optional[float] = Field(None, ge=0)
    age: Optional[float] = Field(None, ge=0)
    gender: Optional[Gender] = None
    habitat: Optional[str] = None
    territory: Optional[str] = None


class DeviceMetadata(WireModel):
    version: Optional[str] = None
    battery: Optional[float] = Field(None, ge=0, le=100)
    signal: Optional[float] = Field(None, ge=0, le=100)
    firmware: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    custom: Optional[Dict[str, Any]] = None


class TelemetryRecord(WireModel):
    device_id: str = Field(..., min_length=1, max_length=100, examples=["wolf-007"])
    timestamp: IsoDatetime = Field(default_factory=utcnow)
    location: Optional[Location] = None
    sensors: Optional[Sensors] = None
    wildlife: Optional[Wildlife] = None
    metadata: Optional[DeviceMetadata] = None
    tags: Optional[List[str]] = None
    priority: Priority = "normal"

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class BatchTelemetry(WireModel):
    """Batch envelope. Items stay raw here and are validated one by one."""

    device_id: str = Field(..., min_length=1, max_length=100)
    batch: List[Dict[str, Any]] = Field(..., min_length=1, max_length=100)


class TelemetryQuery(WireModel):
    device_id: Optional[str] = None
    species: Optional[str] = None
    individual_id: Optional[str] = None
    start_date: Optional[IsoDatetime] = None
    end_date: Optional[IsoDatetime] = None
    limit: int = Field(100, ge=1, le=1000)
    offset: int = Field(0, ge=0)
    sort_by: Literal["timestamp", "deviceId", "species"] = "timestamp"
    sort_order: Literal["asc", "desc"] = "desc"
    activity: Optional[str] = None
    health: Optional[str] = None
    bbox: Optional[str] = Field(None, pattern=BBOX_PATTERN)

    def to_filters(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class PublishResult(BaseModel):
    partition: int
    offset: int
    fallback: bool = False
