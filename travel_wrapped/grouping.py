"""Run-length grouping of parsed segments into candidate trips.

Pure transformation: consecutive stay segments collapse into one ``STAY``
trip, long movements become standalone ``JOURNEY`` trips, and everything
shorter is dropped as noise. No external calls happen here.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from .config import MIN_JOURNEY_DISTANCE_METERS, MIN_STAY_DURATION_MINUTES
from .models import EnhancedTrip, ProcessedTrip, TripType, minutes_between

LOGGER = logging.getLogger(__name__)

__all__ = ["group_trips"]


def _stay_from_run(run: List[ProcessedTrip], trip_index: int) -> EnhancedTrip:
    # max() keeps the first of equally confident members
    best = max(run, key=lambda seg: seg.confidence)
    start = min(seg.start_time for seg in run)
    end = max(seg.end_time for seg in run)
    return EnhancedTrip(
        id=f"stay-{trip_index}",
        type=TripType.STAY,
        start_time=start,
        end_time=end,
        location=best.start_location,
        place_name=best.place_name,
        address=best.address,
        duration_minutes=minutes_between(start, end),
        confidence=best.confidence,
        segments=list(run),
    )


def _journey_from_segment(segment: ProcessedTrip, trip_index: int) -> EnhancedTrip:
    return EnhancedTrip(
        id=f"journey-{trip_index}",
        type=TripType.JOURNEY,
        start_time=segment.start_time,
        end_time=segment.end_time,
        location=segment.start_location,
        end_location=segment.end_location,
        place_name=segment.place_name,
        address=segment.address,
        distance_km=(segment.distance_meters or 0.0) / 1000.0,
        duration_minutes=minutes_between(segment.start_time, segment.end_time),
        confidence=segment.confidence,
        segments=[segment],
    )


def group_trips(
    segments: Sequence[ProcessedTrip],
    *,
    min_stay_minutes: float = MIN_STAY_DURATION_MINUTES,
    min_journey_meters: float = MIN_JOURNEY_DISTANCE_METERS,
) -> List[EnhancedTrip]:
    """Group parsed segments into candidate ``STAY``/``JOURNEY`` trips.

    Args:
        segments: Parsed segments in any order; the input is not modified.
        min_stay_minutes: Accumulated stay time a run needs to be kept.
        min_journey_meters: Movements at or below this distance are dropped.

    Returns:
        New trips ordered by start time.
    """

    ordered = sorted(segments, key=lambda seg: seg.start_time)
    trips: List[EnhancedTrip] = []
    run: List[ProcessedTrip] = []
    dropped_stays = 0
    dropped_moves = 0

    def flush_run() -> None:
        nonlocal dropped_stays
        if not run:
            return
        stay_minutes = sum(seg.duration_minutes for seg in run)
        if stay_minutes >= min_stay_minutes:
            trips.append(_stay_from_run(run, len(trips)))
        else:
            dropped_stays += 1
        run.clear()

    for segment in ordered:
        if segment.is_stay:
            run.append(segment)
            continue
        flush_run()
        if (segment.distance_meters or 0.0) > min_journey_meters:
            trips.append(_journey_from_segment(segment, len(trips)))
        else:
            dropped_moves += 1
    flush_run()

    LOGGER.debug(
        "Grouped %d segments into %d trips (dropped %d short stays, %d micro-movements)",
        len(ordered),
        len(trips),
        dropped_stays,
        dropped_moves,
    )
    return trips
