"""Distance and timezone helpers (no I/O)."""

from __future__ import annotations

import math
from typing import Sequence

from .models import Coordinate

EARTH_RADIUS_KM = 6371.0

__all__ = [
    "EARTH_RADIUS_KM",
    "haversine_km",
    "total_distance_km",
    "are_points_nearby",
    "timezone_offset_from_longitude",
    "timezone_label",
    "parse_lat_lng",
]


def haversine_km(point1: Coordinate, point2: Coordinate) -> float:
    """Great-circle distance in kilometres between two coordinates."""

    d_lat = math.radians(point2.latitude - point1.latitude)
    d_lon = math.radians(point2.longitude - point1.longitude)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(point1.latitude)) * math.cos(
        math.radians(point2.latitude)
    ) * math.sin(d_lon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def total_distance_km(points: Sequence[Coordinate]) -> float:
    if len(points) < 2:
        return 0.0
    return sum(haversine_km(a, b) for a, b in zip(points, points[1:]))


def are_points_nearby(
    point1: Coordinate, point2: Coordinate, threshold_km: float = 0.1
) -> bool:
    return haversine_km(point1, point2) <= threshold_km


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def timezone_offset_from_longitude(longitude: float) -> int:
    """Approximate UTC offset (hours) from a longitude, 15 degrees per hour."""

    return _round_half_up(longitude / 15.0)


def timezone_label(longitude: float) -> str:
    offset = timezone_offset_from_longitude(longitude)
    sign = "+" if offset >= 0 else ""
    return f"UTC{sign}{offset}"


def parse_lat_lng(value: str) -> Coordinate:
    """Parse the export's ``"<lat>°, <lon>°"`` notation.

    Raises ``ValueError`` when the string is malformed or out of range.
    """

    if not isinstance(value, str):
        raise ValueError(f"coordinate must be a string, got {type(value).__name__}")
    parts = [part.strip() for part in value.replace("°", "").split(",")]
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"malformed coordinate {value!r}")
    try:
        coord = Coordinate(float(parts[0]), float(parts[1]))
    except ValueError as exc:
        raise ValueError(f"malformed coordinate {value!r}") from exc
    if math.isnan(coord.latitude) or math.isnan(coord.longitude):
        raise ValueError(f"malformed coordinate {value!r}")
    if not coord.is_valid():
        raise ValueError(f"coordinate out of range {value!r}")
    return coord
