"""Timeline export parsing: raw semantic segments -> ``ProcessedTrip`` records.

Each segment is interpreted exactly once, in priority order visit, activity,
then raw path. Segments that are intentionally skipped (too short, no
candidate) return ``None``; malformed segments raise ``SegmentParseError``
which the batch parser records and moves past.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import Any, Callable, List, Mapping, Sequence, Tuple

from .config import MIN_PATH_DISTANCE_METERS
from .errors import SegmentParseError, TimelineFormatError
from .geometry import haversine_km, parse_lat_lng
from .models import (
    STAY_ACTIVITY,
    Coordinate,
    ProcessedTrip,
    ProcessingResult,
    TravelStats,
)
from .utils import parse_iso_datetime

LOGGER = logging.getLogger(__name__)

RawSegment = Mapping[str, Any]
ProgressCallback = Callable[[int], None]

PARSE_PROGRESS_BATCH = 100

__all__ = [
    "load_timeline",
    "extract_segments",
    "parse_segment",
    "parse_segments",
    "calculate_basic_stats",
    "parse_timeline_data",
]


def load_timeline(path: str | PathLike[str]) -> List[RawSegment]:
    """Read a timeline JSON export and return its semantic segments.

    Raises ``TimelineFormatError`` when the file is not JSON or lacks the
    ``semanticSegments`` array; ``FileNotFoundError`` propagates.
    """

    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TimelineFormatError(
            f"Invalid JSON in timeline export {file_path}: {exc}"
        ) from exc
    return extract_segments(data)


def extract_segments(data: Any) -> List[RawSegment]:
    """Validate the top-level structure of a decoded export."""

    if not isinstance(data, dict):
        raise TimelineFormatError("Timeline data must be a JSON object")
    segments = data.get("semanticSegments")
    if segments is None:
        raise TimelineFormatError(
            "Invalid timeline format: missing semanticSegments array"
        )
    if not isinstance(segments, list):
        raise TimelineFormatError("semanticSegments must be an array")
    return segments


def _coordinate_from_value(value: Any) -> Coordinate | None:
    """Accept ``"lat°, lon°"`` strings or ``{latitude, longitude}`` mappings."""

    if value is None:
        return None
    if isinstance(value, str):
        return parse_lat_lng(value)
    if isinstance(value, Mapping):
        if "latLng" in value:
            return _coordinate_from_value(value["latLng"])
        try:
            coord = Coordinate(float(value["latitude"]), float(value["longitude"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"malformed location {value!r}") from exc
        if not coord.is_valid():
            raise ValueError(f"location out of range {value!r}")
        return coord
    raise ValueError(f"unsupported location type {type(value).__name__}")


def _candidate_location(candidate: Mapping[str, Any]) -> Coordinate | None:
    for key in ("placeLocation", "location"):
        if candidate.get(key) is not None:
            return _coordinate_from_value(candidate[key])
    return None


def _path_points(segment: RawSegment) -> List[Mapping[str, Any]]:
    path = segment.get("timelinePath")
    if path is None:
        return []
    if not isinstance(path, list):
        raise ValueError("timelinePath must be an array")
    return path


def _path_point(point: Any) -> Coordinate:
    if not isinstance(point, Mapping) or "point" not in point:
        raise ValueError("timelinePath entry without point")
    return parse_lat_lng(point["point"])


def _as_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_visit(
    segment: RawSegment, index: int, start_time: datetime, end_time: datetime
) -> ProcessedTrip | None:
    visit = segment["visit"]
    candidate = visit.get("topCandidate") or {}
    location = _candidate_location(candidate)
    if location is None:
        points = _path_points(segment)
        if not points:
            return None
        location = _path_point(points[0])
    confidence = (
        _as_float(visit.get("probability"))
        or _as_float(candidate.get("placeConfidence"))
        or _as_float(candidate.get("probability"))
        or 0.0
    )
    return ProcessedTrip(
        id=f"visit-{index}",
        start_time=start_time,
        end_time=end_time,
        start_location=location,
        end_location=location,
        place_name=candidate.get("name"),
        address=candidate.get("address"),
        activity_type=STAY_ACTIVITY,
        confidence=min(1.0, max(0.0, confidence)),
    )


def _parse_activity(
    segment: RawSegment, index: int, start_time: datetime, end_time: datetime
) -> ProcessedTrip:
    activity = segment["activity"]
    start_location = _coordinate_from_value(activity["start"])
    end_location = _coordinate_from_value(activity["end"])
    if start_location is None or end_location is None:
        raise ValueError("activity without start/end coordinates")
    distance = _as_float(activity.get("distanceMeters"))
    if not distance:
        distance = haversine_km(start_location, end_location) * 1000.0
    top = activity.get("topCandidate") or {}
    confidence = (
        _as_float(activity.get("probability"))
        or _as_float(top.get("probability"))
        or 0.0
    )
    return ProcessedTrip(
        id=f"activity-{index}",
        start_time=start_time,
        end_time=end_time,
        start_location=start_location,
        end_location=end_location,
        distance_meters=distance,
        activity_type=str(top.get("type") or "UNKNOWN"),
        confidence=min(1.0, max(0.0, confidence)),
    )


def _parse_path(
    segment: RawSegment, index: int, start_time: datetime, end_time: datetime
) -> ProcessedTrip | None:
    points = _path_points(segment)
    if len(points) < 2:
        return None
    start_point = _path_point(points[0])
    end_point = _path_point(points[-1])
    distance = haversine_km(start_point, end_point) * 1000.0
    if distance <= MIN_PATH_DISTANCE_METERS:
        return None
    return ProcessedTrip(
        id=f"path-{index}",
        start_time=start_time,
        end_time=end_time,
        start_location=start_point,
        end_location=end_point,
        distance_meters=distance,
        activity_type="MOVEMENT",
        confidence=0.5,
    )


def parse_segment(segment: Any, index: int) -> ProcessedTrip | None:
    """Interpret one raw segment.

    Returns ``None`` when the segment is intentionally dropped and raises
    ``SegmentParseError`` when it is malformed.
    """

    if not isinstance(segment, Mapping):
        raise SegmentParseError(index, "segment must be an object")
    try:
        start_time = parse_iso_datetime(segment.get("startTime"))
        end_time = parse_iso_datetime(segment.get("endTime"))
    except (TypeError, ValueError) as exc:
        raise SegmentParseError(index, f"invalid timestamp: {exc}") from exc
    if end_time < start_time:
        raise SegmentParseError(index, "endTime precedes startTime")

    visit = segment.get("visit")
    activity = segment.get("activity")
    has_path = segment.get("timelinePath") is not None
    if not visit and not activity and not has_path:
        raise SegmentParseError(index, "no location data (visit, activity or path)")

    try:
        if isinstance(visit, Mapping) and visit.get("topCandidate"):
            return _parse_visit(segment, index, start_time, end_time)
        if (
            isinstance(activity, Mapping)
            and activity.get("start")
            and activity.get("end")
        ):
            return _parse_activity(segment, index, start_time, end_time)
        return _parse_path(segment, index, start_time, end_time)
    except (KeyError, TypeError, ValueError) as exc:
        raise SegmentParseError(index, str(exc)) from exc


def parse_segments(
    segments: Sequence[Any],
    progress: ProgressCallback | None = None,
) -> Tuple[List[ProcessedTrip], int, List[str]]:
    """Parse every segment, collecting trips and non-fatal errors.

    Returns ``(trips, processed_segments, errors)``. ``progress`` receives an
    integer percentage after each block of segments.
    """

    trips: List[ProcessedTrip] = []
    errors: List[str] = []
    total = len(segments)
    processed = 0
    for index, segment in enumerate(segments):
        try:
            trip = parse_segment(segment, index)
        except SegmentParseError as exc:
            errors.append(str(exc))
            LOGGER.debug("Skipping %s", exc)
        else:
            if trip is not None:
                trips.append(trip)
        processed += 1
        if progress is not None and (
            processed % PARSE_PROGRESS_BATCH == 0 or processed == total
        ):
            progress(processed * 100 // total)
    if errors:
        LOGGER.warning(
            "Skipped %d of %d segments due to parse errors", len(errors), total
        )
    LOGGER.info("Parsed %d trips from %d segments", len(trips), total)
    return trips, processed, errors


def calculate_basic_stats(trips: Sequence[ProcessedTrip]) -> TravelStats:
    """Pre-enrichment statistics over parsed segments."""

    if not trips:
        return TravelStats(
            total_distance_km=0.0,
            unique_cities=0,
            unique_countries=0,
            longest_trip_km=0.0,
            most_visited_location="No trips found",
            total_trips=0,
            first_trip_date=None,
            last_trip_date=None,
        )

    movements = [t for t in trips if t.distance_meters and not t.is_stay]
    total_distance = sum(t.distance_meters or 0.0 for t in movements)
    longest = max((t.distance_meters or 0.0 for t in movements), default=0.0)

    # Counter preserves first-seen order, so most_common breaks ties that way.
    place_counts: Counter[str] = Counter(t.place_name for t in trips if t.place_name)
    most_visited = place_counts.most_common(1)[0][0] if place_counts else "Unknown"
    starts = sorted(t.start_time for t in trips)

    return TravelStats(
        total_distance_km=round(total_distance / 1000.0, 2),
        unique_cities=len(place_counts),
        unique_countries=0,
        longest_trip_km=round(longest / 1000.0, 2),
        most_visited_location=most_visited,
        total_trips=len(trips),
        first_trip_date=starts[0],
        last_trip_date=starts[-1],
    )


def parse_timeline_data(
    data: Any, progress: ProgressCallback | None = None
) -> ProcessingResult:
    """Validate a decoded export and build the pre-enrichment view."""

    segments = extract_segments(data)
    trips, processed, errors = parse_segments(segments, progress)
    return ProcessingResult(
        trips=trips,
        stats=calculate_basic_stats(trips),
        total_segments=len(segments),
        processed_segments=processed,
        errors=errors,
    )
