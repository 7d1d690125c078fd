"""
Request validation.

Every function here is side-effect free: it either returns a validated model or
raises :class:`~wildtrack_api.errors.ValidationError` carrying one message per
violated constraint, never just the first one.
"""
from typing import Any, Dict, List, Mapping, Union

import pydantic

from .errors import ValidationError
from .models import BatchTelemetry, TelemetryQuery, TelemetryRecord

BATCH_PRECHECK_MESSAGE = (
    "Each batch item must have at least a timestamp or a location with latitude and longitude."
)


def _format_loc(loc) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or "value"


def format_errors(exc: pydantic.ValidationError) -> List[str]:
    return [f'"{_format_loc(err["loc"])}" {err["msg"]}' for err in exc.errors()]


def validate_telemetry(payload: Any) -> TelemetryRecord:
    try:
        return TelemetryRecord.model_validate(payload)
    except pydantic.ValidationError as e:
        raise ValidationError(format_errors(e))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _has_timestamp_or_location(item: Any) -> bool:
    if not isinstance(item, Mapping):
        return False
    if item.get("timestamp"):
        return True
    location = item.get("location")
    return (
        isinstance(location, Mapping)
        and _is_number(location.get("latitude"))
        and _is_number(location.get("longitude"))
    )


def precheck_batch(payload: Any) -> Dict[str, Any]:
    """
    Inject the parent deviceId into every item and reject the whole batch if any
    item carries neither a timestamp nor a numeric location.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(['"value" must be an object'])

    device_id = payload.get("deviceId")
    batch = payload.get("batch")
    if not isinstance(batch, list):
        return {"deviceId": device_id, "batch": batch}

    items = []
    for item in batch:
        if not _has_timestamp_or_location(item):
            raise ValidationError([BATCH_PRECHECK_MESSAGE])
        items.append({**item, "deviceId": device_id})
    return {"deviceId": device_id, "batch": items}


def validate_batch(payload: Any) -> BatchTelemetry:
    """Precheck, then validate the envelope (deviceId and 1..100 items)."""
    prepared = precheck_batch(payload)
    try:
        return BatchTelemetry.model_validate(prepared)
    except pydantic.ValidationError as e:
        raise ValidationError(format_errors(e))


def validate_batch_items(batch: BatchTelemetry) -> List[Union[TelemetryRecord, ValidationError]]:
    """Validate each item on its own; failures are returned in place, not raised."""
    outcomes: List[Union[TelemetryRecord, ValidationError]] = []
    for index, item in enumerate(batch.batch):
        try:
            outcomes.append(TelemetryRecord.model_validate(item))
        except pydantic.ValidationError as e:
            outcomes.append(ValidationError([f"batch[{index}]: {msg}" for msg in format_errors(e)]))
    return outcomes


def validate_query(params: Mapping[str, Any]) -> TelemetryQuery:
    try:
        return TelemetryQuery.model_validate(dict(params))
    except pydantic.ValidationError as e:
        raise ValidationError(format_errors(e), message="Invalid query parameters")
