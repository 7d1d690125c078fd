import pytest

from wildtrack_api.errors import ValidationError
from wildtrack_api.models import TelemetryRecord
from wildtrack_api.validation import (
    BATCH_PRECHECK_MESSAGE,
    precheck_batch,
    validate_batch,
    validate_batch_items,
    validate_query,
    validate_telemetry,
)


def test_missing_device_id_is_reported_by_name():
    with pytest.raises(ValidationError) as exc:
        validate_telemetry({"timestamp": "2024-01-15T10:30:00Z"})
    assert exc.value.status_code == 400
    assert any("deviceId" in d for d in exc.value.details)


@pytest.mark.parametrize("location", [
    {"latitude": 200, "longitude": 10},
    {"latitude": -90.5, "longitude": 10},
    {"latitude": 10, "longitude": 180.01},
    {"latitude": 10, "longitude": -181},
])
def test_out_of_range_coordinates_rejected(location):
    with pytest.raises(ValidationError):
        validate_telemetry({"deviceId": "d1", "location": location})


def test_all_violations_are_collected():
    payload = {
        "location": {"latitude": 100, "longitude": 500},
        "wildlife": {"activity": "flying"},
        "metadata": {"battery": 150},
        "priority": "urgent",
    }
    with pytest.raises(ValidationError) as exc:
        validate_telemetry(payload)
    details = " ".join(exc.value.details)
    for field in ("deviceId", "location.latitude", "location.longitude", "wildlife.activity", "metadata.battery", "priority"):
        assert f'"{field}"' in details
    assert len(exc.value.details) == 6


def test_defaults_applied_and_unknown_fields_dropped():
    record = validate_telemetry({"deviceId": "d1", "color": "red", "sensors": {"temperature": 3, "flux": 1}})
    assert record.priority == "normal"
    assert record.timestamp.tzinfo is not None
    doc = record.to_document()
    assert "color" not in doc
    assert doc["sensors"] == {"temperature": 3.0}


def test_device_id_length_bounds():
    with pytest.raises(ValidationError):
        validate_telemetry({"deviceId": "", "timestamp": "2024-01-01T00:00:00Z"})
    with pytest.raises(ValidationError):
        validate_telemetry({"deviceId": "x" * 101, "timestamp": "2024-01-01T00:00:00Z"})


def test_non_object_payload_rejected():
    with pytest.raises(ValidationError):
        validate_telemetry(["not", "an", "object"])


@pytest.mark.parametrize("timestamp", [1700000000, "1700000000", "Jan 15 2024", True])
def test_timestamp_must_be_iso_text(timestamp):
    with pytest.raises(ValidationError) as exc:
        validate_telemetry({"deviceId": "d1", "timestamp": timestamp})
    assert exc.value.details == ['"timestamp" Value error, must be in ISO 8601 date format']


def test_iso_timestamp_variants_accepted():
    for timestamp in ("2024-01-15T10:30:00", "2024-01-15T10:30:00.123+05:30"):
        assert validate_telemetry({"deviceId": "d1", "timestamp": timestamp}).timestamp.year == 2024


def test_precheck_injects_parent_device_id():
    prepared = precheck_batch({"deviceId": "collar-1", "batch": [{"timestamp": "2024-01-01T00:00:00Z", "deviceId": "other"}]})
    assert prepared["batch"][0]["deviceId"] == "collar-1"


def test_precheck_rejects_whole_batch_for_one_bare_item():
    payload = {
        "deviceId": "collar-1",
        "batch": [
            {"timestamp": "2024-01-01T00:00:00Z"},
            {"sensors": {"temperature": 4}},
        ],
    }
    with pytest.raises(ValidationError) as exc:
        validate_batch(payload)
    assert exc.value.details == [BATCH_PRECHECK_MESSAGE]


def test_precheck_accepts_location_without_timestamp():
    batch = validate_batch({"deviceId": "collar-1", "batch": [{"location": {"latitude": 1, "longitude": 2}}]})
    assert len(batch.batch) == 1


def test_precheck_requires_numeric_coordinates():
    with pytest.raises(ValidationError) as exc:
        validate_batch({"deviceId": "collar-1", "batch": [{"location": {"latitude": "1", "longitude": 2}}]})
    assert exc.value.details == [BATCH_PRECHECK_MESSAGE]


def test_batch_size_bounds():
    item = {"timestamp": "2024-01-01T00:00:00Z"}
    with pytest.raises(ValidationError):
        validate_batch({"deviceId": "collar-1", "batch": []})
    with pytest.raises(ValidationError) as exc:
        validate_batch({"deviceId": "collar-1", "batch": [item] * 101})
    assert any('"batch"' in d for d in exc.value.details)


def test_batch_requires_parent_device_id():
    with pytest.raises(ValidationError) as exc:
        validate_batch({"batch": [{"timestamp": "2024-01-01T00:00:00Z"}]})
    assert any("deviceId" in d for d in exc.value.details)


def test_batch_items_validated_individually():
    batch = validate_batch({
        "deviceId": "collar-1",
        "batch": [
            {"timestamp": "2024-01-01T00:00:00Z"},
            {"timestamp": "2024-01-01T00:01:00Z", "wildlife": {"health": "great"}},
        ],
    })
    outcomes = validate_batch_items(batch)
    assert isinstance(outcomes[0], TelemetryRecord)
    assert outcomes[0].device_id == "collar-1"
    assert isinstance(outcomes[1], ValidationError)
    assert outcomes[1].details[0].startswith("batch[1]:")


def test_query_defaults():
    query = validate_query({})
    assert query.limit == 100
    assert query.offset == 0
    assert query.sort_by == "timestamp"
    assert query.sort_order == "desc"


def test_query_errors():
    with pytest.raises(ValidationError) as exc:
        validate_query({"limit": "0", "sortOrder": "sideways", "bbox": "1,2"})
    assert exc.value.message == "Invalid query parameters"
    assert len(exc.value.details) == 3


def test_query_dates_must_be_iso():
    with pytest.raises(ValidationError) as exc:
        validate_query({"startDate": "1700000000", "endDate": "2024-01-02T00:00:00Z"})
    assert exc.value.details == ['"startDate" Value error, must be in ISO 8601 date format']
