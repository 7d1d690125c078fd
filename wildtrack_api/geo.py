import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class BBox:
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    def to_dict(self) -> Dict[str, float]:
        return {"minLng": self.min_lng, "minLat": self.min_lat, "maxLng": self.max_lng, "maxLat": self.max_lat}


def parse_bbox(text: Optional[str]) -> Optional[BBox]:
    """Parse ``minLng,minLat,maxLng,maxLat``; raises ValueError on anything else."""
    if not text:
        return None
    parts = text.split(",")
    if len(parts) != 4:
        raise ValueError(f"expected 4 comma separated numbers, got {len(parts)}")
    values = [float(p) for p in parts]
    if not all(math.isfinite(v) for v in values):
        raise ValueError("bbox coordinates must be finite")
    return BBox(*values)


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


def track_distance_m(points: Sequence[Dict[str, Any]]) -> int:
    """Total path length in metres over consecutive tracking points."""
    total = 0.0
    for prev, curr in zip(points, points[1:]):
        a, b = prev["location"], curr["location"]
        total += haversine_m(a["latitude"], a["longitude"], b["latitude"], b["longitude"])
    return round(total)


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def average_speed(points: Sequence[Dict[str, Any]]) -> int:
    """Average speed in metres per hour; 0 when it cannot be computed."""
    if len(points) < 2:
        return 0
    span_h = abs((_parse_ts(points[0]["timestamp"]) - _parse_ts(points[-1]["timestamp"])).total_seconds()) / 3600
    if span_h == 0:
        return 0
    return round(track_distance_m(points) / span_h)
