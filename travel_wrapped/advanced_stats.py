"""Advanced travel analytics: seasonality, streaks, timezones and transport mix.

Pure functions over finished ``EnhancedTrip`` lists. Inputs are never
mutated; every ordering step works on a sorted copy.
"""

from __future__ import annotations

import calendar
from collections import OrderedDict
from datetime import timedelta
from typing import Dict, List, Sequence, Tuple

from .activity_types import transport_mode_for
from .config import STREAK_MAX_GAP_DAYS
from .geometry import timezone_label, timezone_offset_from_longitude
from .models import (
    BusiestMonth,
    BusiestSeason,
    EnhancedTrip,
    TimezoneTransition,
    TransportModeStat,
    TravelStreak,
    TripType,
)
from .utils import iso_date

__all__ = [
    "SEASONS",
    "busiest_month",
    "busiest_season",
    "longest_travel_streak",
    "timezone_crossings",
    "transport_mode_breakdown",
    "calculate_advanced_stats",
]

# Declaration order is the tie-break order.
SEASONS: Dict[str, Tuple[int, ...]] = OrderedDict(
    (
        ("Winter", (12, 1, 2)),
        ("Spring", (3, 4, 5)),
        ("Summer", (6, 7, 8)),
        ("Autumn", (9, 10, 11)),
    )
)
_SEASON_BY_MONTH = {month: name for name, months in SEASONS.items() for month in months}


def _by_start(trips: Sequence[EnhancedTrip]) -> List[EnhancedTrip]:
    return sorted(trips, key=lambda t: t.start_time)


def busiest_month(trips: Sequence[EnhancedTrip]) -> BusiestMonth | None:
    """Calendar month (any year) with the most trip starts; earliest month wins ties."""

    if not trips:
        return None
    counts: Dict[int, int] = {}
    distances: Dict[int, float] = {}
    for trip in trips:
        month = trip.start_time.month
        counts[month] = counts.get(month, 0) + 1
        distances[month] = distances.get(month, 0.0) + (trip.distance_km or 0.0)
    month = min(counts, key=lambda m: (-counts[m], m))
    return BusiestMonth(
        month=calendar.month_name[month],
        month_number=month,
        trips_count=counts[month],
        total_distance=round(distances[month], 2),
    )


def busiest_season(trips: Sequence[EnhancedTrip]) -> BusiestSeason | None:
    if not trips:
        return None
    counts = {name: 0 for name in SEASONS}
    distances = {name: 0.0 for name in SEASONS}
    for trip in trips:
        season = _SEASON_BY_MONTH[trip.start_time.month]
        counts[season] += 1
        distances[season] += trip.distance_km or 0.0
    # max() returns the first maximal key, i.e. the earliest declared season.
    season = max(counts, key=lambda name: counts[name])
    return BusiestSeason(
        season=season,
        trips_count=counts[season],
        total_distance=round(distances[season], 2),
        months=[calendar.month_name[m] for m in SEASONS[season]],
    )


def _streak_summary(run: List[EnhancedTrip]) -> TravelStreak:
    start = run[0].start_time
    end = max(t.end_time for t in run)
    countries: List[str] = []
    for trip in run:
        if trip.country and trip.country not in countries:
            countries.append(trip.country)
    return TravelStreak(
        start_date=iso_date(start),
        end_date=iso_date(end),
        days=(end.date() - start.date()).days + 1,
        trips_count=len(run),
        countries=countries,
        total_distance=round(sum(t.distance_km or 0.0 for t in run), 2),
    )


def longest_travel_streak(
    trips: Sequence[EnhancedTrip], max_gap_days: float = STREAK_MAX_GAP_DAYS
) -> TravelStreak | None:
    """Longest run of trips where each starts within ``max_gap_days`` of the previous end.

    Length is measured in trips; the earliest of equally long runs wins.
    """

    ordered = _by_start(trips)
    if not ordered:
        return None
    max_gap = timedelta(days=max_gap_days)
    best: List[EnhancedTrip] = []
    current: List[EnhancedTrip] = [ordered[0]]
    for previous, trip in zip(ordered, ordered[1:]):
        if trip.start_time - previous.end_time <= max_gap:
            current.append(trip)
            continue
        if len(current) > len(best):
            best = current
        current = [trip]
    if len(current) > len(best):
        best = current
    return _streak_summary(best)


def timezone_crossings(
    trips: Sequence[EnhancedTrip],
) -> Tuple[int, List[TimezoneTransition]]:
    """Count changes of the longitude-derived UTC offset between consecutive trips."""

    transitions: List[TimezoneTransition] = []
    previous_offset: int | None = None
    previous_label = ""
    for trip in _by_start(trips):
        offset = timezone_offset_from_longitude(trip.location.longitude)
        label = timezone_label(trip.location.longitude)
        if previous_offset is not None and offset != previous_offset:
            transitions.append(
                TimezoneTransition(
                    from_timezone=previous_label,
                    to_timezone=label,
                    location=trip.display_location,
                    date=iso_date(trip.start_time),
                )
            )
        previous_offset = offset
        previous_label = label
    return len(transitions), transitions


def _originating_activity(trip: EnhancedTrip) -> str | None:
    return trip.segments[0].activity_type if trip.segments else None


def transport_mode_breakdown(trips: Sequence[EnhancedTrip]) -> List[TransportModeStat]:
    journeys = [
        t for t in trips if t.type is TripType.JOURNEY and t.distance_km is not None
    ]
    if not journeys:
        return []
    distance_by_mode: Dict[str, float] = {}
    count_by_mode: Dict[str, int] = {}
    for trip in journeys:
        mode = transport_mode_for(_originating_activity(trip))
        distance_by_mode[mode] = distance_by_mode.get(mode, 0.0) + (trip.distance_km or 0.0)
        count_by_mode[mode] = count_by_mode.get(mode, 0) + 1
    total = sum(distance_by_mode.values())
    stats = [
        TransportModeStat(
            mode=mode,
            distance_km=round(distance, 2),
            percentage=round(distance / total * 100, 1) if total else 0.0,
            trip_count=count_by_mode[mode],
            average_distance_km=round(distance / count_by_mode[mode], 2),
        )
        for mode, distance in distance_by_mode.items()
    ]
    # Stable sort keeps first-seen order among equal distances.
    stats.sort(key=lambda s: s.distance_km, reverse=True)
    return stats


def calculate_advanced_stats(trips: Sequence[EnhancedTrip]) -> Dict[str, object]:
    """All advanced analytics keyed by their ``EnhancedTravelStats`` field names."""

    if not trips:
        return {}
    crossed, transitions = timezone_crossings(trips)
    return {
        "busiest_travel_period": busiest_month(trips),
        "busiest_season": busiest_season(trips),
        "longest_travel_streak": longest_travel_streak(trips),
        "timezones_crossed": crossed,
        "timezone_transitions": transitions,
        "transport_mode_breakdown": transport_mode_breakdown(trips),
    }
