"""Post-enrichment merge of ``STAY`` trips that describe the same place.

The merge deliberately mutates the kept trip in place; all other trips are
passed through untouched.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .config import PROXIMITY_THRESHOLD_KM
from .geometry import are_points_nearby
from .models import EnhancedTrip, TripType, WeatherReading

LOGGER = logging.getLogger(__name__)

__all__ = ["more_extreme_weather", "merge_stay_into", "deduplicate_nearby_places"]


def more_extreme_weather(
    first: WeatherReading | None, second: WeatherReading | None
) -> WeatherReading | None:
    """Return the reading with the larger absolute temperature (first on ties)."""

    if first is None:
        return second
    if second is None:
        return first
    if abs(second.temperature) > abs(first.temperature):
        return second
    return first


def merge_stay_into(kept: EnhancedTrip, other: EnhancedTrip) -> EnhancedTrip:
    """Fold ``other`` into ``kept`` and return ``kept``.

    Segments already owned by ``kept`` (matched by id) are not appended again,
    so repeating a merge never double counts.
    """

    kept.start_time = min(kept.start_time, other.start_time)
    kept.end_time = max(kept.end_time, other.end_time)
    kept.weather = more_extreme_weather(kept.weather, other.weather)
    if other.confidence > kept.confidence:
        kept.location = other.location
        kept.place_name = other.place_name
        kept.address = other.address
        kept.city = other.city
        kept.country = other.country
        kept.country_code = other.country_code
        kept.confidence = other.confidence
    known_ids = {seg.id for seg in kept.segments}
    for segment in other.segments:
        if segment.id not in known_ids:
            kept.segments.append(segment)
            known_ids.add(segment.id)
    kept.refresh_duration()
    return kept


def deduplicate_nearby_places(
    trips: Sequence[EnhancedTrip],
    threshold_km: float = PROXIMITY_THRESHOLD_KM,
) -> List[EnhancedTrip]:
    """Merge ``STAY`` trips within ``threshold_km`` of an already kept stay.

    Journeys pass through unchanged. The result is sorted by start time.
    """

    result: List[EnhancedTrip] = []
    kept_stays: List[EnhancedTrip] = []
    merged = 0
    for trip in trips:
        if trip.type is not TripType.STAY:
            result.append(trip)
            continue
        target = next(
            (
                stay
                for stay in kept_stays
                if stay is not trip
                and are_points_nearby(stay.location, trip.location, threshold_km)
            ),
            None,
        )
        if target is None:
            kept_stays.append(trip)
            result.append(trip)
            continue
        merge_stay_into(target, trip)
        merged += 1
    if merged:
        LOGGER.info("Merged %d nearby stays (threshold %.3f km)", merged, threshold_km)
    result.sort(key=lambda t: t.start_time)
    return result
