from datetime import datetime, timezone
from typing import Optional

from .models import Sensors, TelemetryRecord, Vector3

COORDINATE_DECIMALS = 6  # ~0.11 m
SENSOR_DECIMALS = 3


def canonical_timestamp(value: datetime) -> datetime:
    """UTC, truncated to whole milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _round(value: Optional[float], ndigits: int) -> Optional[float]:
    return None if value is None else round(value, ndigits)


def _round_vector(vector: Optional[Vector3]) -> Optional[Vector3]:
    if vector is None:
        return None
    return vector.model_copy(update={axis: _round(getattr(vector, axis), SENSOR_DECIMALS) for axis in ("x", "y", "z")})


def _round_sensors(sensors: Sensors) -> Sensors:
    update = {}
    for name in Sensors.model_fields:
        value = getattr(sensors, name)
        if isinstance(value, Vector3):
            update[name] = _round_vector(value)
        else:
            update[name] = _round(value, SENSOR_DECIMALS)
    return sensors.model_copy(update=update)


def sanitize_telemetry(record: TelemetryRecord) -> TelemetryRecord:
    """
    Return a normalized copy of ``record`` for transport.

    The input is left untouched and the result is stable under a second pass.
    """
    update = {"timestamp": canonical_timestamp(record.timestamp)}
    if record.location is not None:
        update["location"] = record.location.model_copy(update={
            "latitude": round(record.location.latitude, COORDINATE_DECIMALS),
            "longitude": round(record.location.longitude, COORDINATE_DECIMALS),
        })
    if record.sensors is not None:
        update["sensors"] = _round_sensors(record.sensors)
    return record.model_copy(update=update)
