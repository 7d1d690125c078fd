"""
Read side of the API.

No backing store ships with the service. ``SyntheticTelemetryRepository``
fabricates placeholder records shaped by the incoming filters (seeded, so the
same query yields the same data), and ``InMemoryTelemetryRepository`` keeps
real documents and applies the filter/sort/paginate rules a database-backed
implementation must follow.
"""
import hashlib
import math
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .geo import BBox, parse_bbox
from .models import TelemetryQuery, TelemetryRecord, format_timestamp
from .sanitize import sanitize_telemetry

SPECIES = ["Gray Wolf", "Mountain Lion", "Elk", "Bear"]
ACTIVITIES = ["active", "resting", "feeding", "migrating"]
LOW_BATTERY_THRESHOLD = 20
ACTIVE_WINDOW = timedelta(hours=24)

# Central British Columbia, around Prince George
MAP_CENTER = (53.9169, -122.7494)
TRACK_CENTER = (37.7749, -122.4194)

Clock = Callable[[], datetime]


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _wildlife(doc: Dict[str, Any]) -> Dict[str, Any]:
    return doc.get("wildlife") or {}


def _sort_key(sort_by: str) -> Callable[[Dict[str, Any]], Any]:
    if sort_by == "deviceId":
        return lambda doc: doc.get("deviceId", "")
    if sort_by == "species":
        return lambda doc: _wildlife(doc).get("species") or ""
    return lambda doc: _parse_ts(doc["timestamp"])


def sort_documents(docs: Iterable[Dict[str, Any]], sort_by: str, sort_order: str) -> List[Dict[str, Any]]:
    return sorted(docs, key=_sort_key(sort_by), reverse=sort_order == "desc")


class TelemetryRepository:
    """Query interface the read endpoints are written against."""

    def find(self, query: TelemetryQuery, limit: int) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def wildlife_summary(self, species: Optional[str] = None, start: Optional[datetime] = None,
                         end: Optional[datetime] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def individual_track(self, individual_id: str, start: Optional[datetime] = None,
                         end: Optional[datetime] = None, limit: int = 100) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def map_points(self, bbox: Optional[BBox] = None, species: Optional[str] = None,
                   activity: Optional[str] = None, limit: int = 200) -> List[Dict[str, Any]]:
        raise NotImplementedError


class SyntheticTelemetryRepository(TelemetryRepository):
    def __init__(self, seed: int = 42, clock: Optional[Clock] = None):
        self.seed = seed
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _rng(self, *parts: Any) -> random.Random:
        key = "|".join(str(p) for p in (self.seed,) + parts)
        return random.Random(int(hashlib.sha256(key.encode("utf-8")).hexdigest()[:16], 16))

    def _window(self, start: Optional[datetime], end: Optional[datetime]):
        end = _utc(end) or self.clock()
        start = _utc(start) or end - timedelta(days=1)
        if start > end:
            start, end = end, start
        return start, end

    def find(self, query: TelemetryQuery, limit: int) -> List[Dict[str, Any]]:
        rng = self._rng("find", *sorted(query.to_filters().items()), limit)
        start, end = self._window(query.start_date, query.end_date)
        span = (end - start).total_seconds()
        bbox = parse_bbox(query.bbox)

        docs = []
        for i in range(limit):
            if bbox is not None:
                lat = rng.uniform(bbox.min_lat, bbox.max_lat)
                lng = rng.uniform(bbox.min_lng, bbox.max_lng)
            else:
                lat = TRACK_CENTER[0] + (rng.random() - 0.5) * 0.1
                lng = TRACK_CENTER[1] + (rng.random() - 0.5) * 0.1
            docs.append({
                "id": f"telemetry-{query.offset + i}",
                "deviceId": query.device_id or f"device-{rng.randint(1, 10)}",
                "timestamp": format_timestamp(start + timedelta(seconds=rng.random() * span)),
                "location": {
                    "latitude": round(lat, 6),
                    "longitude": round(lng, 6),
                    "altitude": round(rng.random() * 1000, 3),
                    "accuracy": round(rng.random() * 10, 3),
                },
                "wildlife": {
                    "species": query.species or rng.choice(SPECIES),
                    "individualId": query.individual_id or f"individual-{rng.randint(1, 100)}",
                    "activity": query.activity or rng.choice(ACTIVITIES),
                    "health": query.health or rng.choice(["healthy", "healthy", "healthy", "injured"]),
                },
                "sensors": {
                    "temperature": round(20 + rng.random() * 20, 3),
                    "humidity": round(40 + rng.random() * 40, 3),
                },
                "metadata": {"battery": round(20 + rng.random() * 80, 1)},
            })
        return sort_documents(docs, query.sort_by, query.sort_order)

    def wildlife_summary(self, species=None, start=None, end=None):
        now = self.clock()
        breakdown = {"Gray Wolf": (12, 10), "Mountain Lion": (8, 7), "Elk": (15, 12), "Bear": (10, 9)}
        if species:
            breakdown = {name: counts for name, counts in breakdown.items() if name == species}
        return {
            "totalIndividuals": sum(count for count, _ in breakdown.values()),
            "activeDevices": sum(active for _, active in breakdown.values()),
            "species": [{"name": name, "count": count, "active": active} for name, (count, active) in breakdown.items()],
            "speciesBreakdown": {name: count for name, (count, _) in breakdown.items()},
            "activityBreakdown": {"active": 25, "resting": 8, "feeding": 3, "migrating": 2},
            "healthStatus": {"healthy": 35, "injured": 2, "sick": 1, "unknown": 7},
            "recentAlerts": [
                {"id": "alert-001", "deviceId": "wolf-007", "type": "low_battery",
                 "timestamp": format_timestamp(now - timedelta(hours=1)), "severity": "medium"},
                {"id": "alert-002", "deviceId": "bear-003", "type": "unusual_activity",
                 "timestamp": format_timestamp(now - timedelta(hours=2)), "severity": "high"},
            ],
        }

    def individual_track(self, individual_id, start=None, end=None, limit=100):
        rng = self._rng("track", individual_id)
        _, newest = self._window(start, end)
        points = []
        for i in range(limit):
            ts = newest - timedelta(hours=i)
            if start is not None and ts < _utc(start):
                break
            points.append({
                "timestamp": format_timestamp(ts),
                "location": {
                    "latitude": round(TRACK_CENTER[0] + math.sin(i * 0.1) * 0.01, 6),
                    "longitude": round(TRACK_CENTER[1] + math.cos(i * 0.1) * 0.01, 6),
                    "altitude": round(100 + rng.random() * 200, 3),
                },
                "activity": rng.choice(["active", "resting", "feeding"]),
                "speed": round(rng.random() * 10, 3),
                "battery": 100 - i * 0.5,
            })
        return points

    def map_points(self, bbox=None, species=None, activity=None, limit=200):
        rng = self._rng("map", bbox, species, activity, limit)
        now = self.clock()
        points = []
        for i in range(limit):
            if bbox is not None:
                lat = rng.uniform(bbox.min_lat, bbox.max_lat)
                lng = rng.uniform(bbox.min_lng, bbox.max_lng)
            else:
                lat = MAP_CENTER[0] + (rng.random() - 0.5) * 0.2
                lng = MAP_CENTER[1] + (rng.random() - 0.5) * 0.2
            points.append({
                "id": f"point-{i}",
                "deviceId": f"device-{rng.randint(1, 20)}",
                "timestamp": format_timestamp(now - timedelta(seconds=rng.random() * 86400)),
                "location": {"latitude": round(lat, 6), "longitude": round(lng, 6)},
                "wildlife": {
                    "species": species or rng.choice(SPECIES),
                    "individualId": f"individual-{rng.randint(1, 50)}",
                    "activity": activity or rng.choice(ACTIVITIES),
                },
                "metadata": {"battery": round(20 + rng.random() * 80, 1), "signal": round(50 + rng.random() * 50, 1)},
            })
        return points


class InMemoryTelemetryRepository(TelemetryRepository):
    def __init__(self, records: Iterable[TelemetryRecord] = (), clock: Optional[Clock] = None):
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._docs: List[Dict[str, Any]] = []
        for record in records:
            self.add(record)

    def add(self, record: TelemetryRecord) -> Dict[str, Any]:
        doc = sanitize_telemetry(record).to_document()
        doc["id"] = f"telemetry-{len(self._docs)}"
        self._docs.append(doc)
        return doc

    def __len__(self):
        return len(self._docs)

    def _in_range(self, doc, start, end) -> bool:
        ts = _parse_ts(doc["timestamp"])
        start, end = _utc(start), _utc(end)
        return (start is None or ts >= start) and (end is None or ts <= end)

    def find(self, query, limit):
        bbox = parse_bbox(query.bbox)
        matches = []
        for doc in self._docs:
            wildlife = _wildlife(doc)
            if query.device_id and doc["deviceId"] != query.device_id:
                continue
            if query.species and wildlife.get("species") != query.species:
                continue
            if query.individual_id and wildlife.get("individualId") != query.individual_id:
                continue
            if query.activity and wildlife.get("activity") != query.activity:
                continue
            if query.health and wildlife.get("health") != query.health:
                continue
            if not self._in_range(doc, query.start_date, query.end_date):
                continue
            if bbox is not None:
                location = doc.get("location")
                if not location or not bbox.contains(location["latitude"], location["longitude"]):
                    continue
            matches.append(doc)
        ordered = sort_documents(matches, query.sort_by, query.sort_order)
        return ordered[query.offset:query.offset + limit]

    def wildlife_summary(self, species=None, start=None, end=None):
        docs = [
            doc for doc in self._docs
            if _wildlife(doc).get("individualId")
            and (not species or _wildlife(doc).get("species") == species)
            and self._in_range(doc, start, end)
        ]
        cutoff = self.clock() - ACTIVE_WINDOW

        # latest observation per individual drives the breakdowns
        latest: Dict[str, Dict[str, Any]] = {}
        for doc in sort_documents(docs, "timestamp", "asc"):
            latest[_wildlife(doc)["individualId"]] = doc

        species_stats: Dict[str, Dict[str, Any]] = {}
        activity: Dict[str, int] = {}
        health: Dict[str, int] = {"healthy": 0, "injured": 0, "sick": 0, "unknown": 0}
        for doc in latest.values():
            wildlife = _wildlife(doc)
            name = wildlife.get("species") or "unknown"
            stats = species_stats.setdefault(name, {"name": name, "count": 0, "active": 0})
            stats["count"] += 1
            if _parse_ts(doc["timestamp"]) >= cutoff:
                stats["active"] += 1
            if wildlife.get("activity"):
                activity[wildlife["activity"]] = activity.get(wildlife["activity"], 0) + 1
            health[wildlife.get("health") or "unknown"] += 1

        active_devices = {doc["deviceId"] for doc in docs if _parse_ts(doc["timestamp"]) >= cutoff}
        return {
            "totalIndividuals": len(latest),
            "activeDevices": len(active_devices),
            "species": list(species_stats.values()),
            "speciesBreakdown": {name: stats["count"] for name, stats in species_stats.items()},
            "activityBreakdown": activity,
            "healthStatus": health,
            "recentAlerts": self._alerts(docs),
        }

    def _alerts(self, docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        alerts = []
        for doc in sort_documents(docs, "timestamp", "desc"):
            battery = (doc.get("metadata") or {}).get("battery")
            health = _wildlife(doc).get("health")
            if battery is not None and battery < LOW_BATTERY_THRESHOLD:
                alerts.append({"type": "low_battery", "severity": "medium", "doc": doc})
            if health in ("injured", "sick"):
                alerts.append({"type": f"health_{health}", "severity": "high", "doc": doc})
        return [
            {
                "id": f"alert-{i + 1:03d}",
                "deviceId": alert["doc"]["deviceId"],
                "type": alert["type"],
                "timestamp": alert["doc"]["timestamp"],
                "severity": alert["severity"],
            }
            for i, alert in enumerate(alerts[:10])
        ]

    def individual_track(self, individual_id, start=None, end=None, limit=100):
        docs = [
            doc for doc in self._docs
            if _wildlife(doc).get("individualId") == individual_id
            and doc.get("location")
            and self._in_range(doc, start, end)
        ]
        points = []
        for doc in sort_documents(docs, "timestamp", "desc")[:limit]:
            location = doc["location"]
            point = {
                "timestamp": doc["timestamp"],
                "location": {key: location[key] for key in ("latitude", "longitude", "altitude") if key in location},
                "activity": _wildlife(doc).get("activity", "unknown"),
            }
            battery = (doc.get("metadata") or {}).get("battery")
            if battery is not None:
                point["battery"] = battery
            points.append(point)
        return points

    def map_points(self, bbox=None, species=None, activity=None, limit=200):
        points = []
        for doc in sort_documents(self._docs, "timestamp", "desc"):
            if len(points) >= limit:
                break
            location = doc.get("location")
            wildlife = _wildlife(doc)
            if not location:
                continue
            if bbox is not None and not bbox.contains(location["latitude"], location["longitude"]):
                continue
            if species and wildlife.get("species") != species:
                continue
            if activity and wildlife.get("activity") != activity:
                continue
            metadata = doc.get("metadata") or {}
            points.append({
                "id": doc["id"],
                "deviceId": doc["deviceId"],
                "timestamp": doc["timestamp"],
                "location": {"latitude": location["latitude"], "longitude": location["longitude"]},
                "wildlife": {key: wildlife[key] for key in ("species", "individualId", "activity") if key in wildlife},
                "metadata": {key: metadata[key] for key in ("battery", "signal") if key in metadata},
            })
        return points


def build_repository(backend: str, seed: int = 42) -> TelemetryRepository:
    if backend == "memory":
        return InMemoryTelemetryRepository()
    if backend == "synthetic":
        return SyntheticTelemetryRepository(seed=seed)
    raise ValueError(f"Unknown repository backend: {backend}")
