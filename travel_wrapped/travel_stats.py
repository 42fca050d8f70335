"""Aggregate statistics over enriched trips."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from .advanced_stats import calculate_advanced_stats
from .clients.countries import get_flag_emoji
from .config import TOP_DESTINATIONS_LIMIT
from .models import (
    CountryVisit,
    Destination,
    EnhancedTravelStats,
    EnhancedTrip,
    TripType,
    WeatherHighlight,
    WeatherReading,
)
from .utils import iso_date

FlagLookup = Callable[[Optional[str]], str]

MINUTES_PER_DAY = 24 * 60

__all__ = ["calculate_enhanced_stats", "calculate_travel_stats", "days_for_visit"]


@dataclass
class _DestinationTally:
    city: str
    country: str
    visits: int = 0
    total_days: int = 0
    first_seen: int = 0


def days_for_visit(duration_minutes: int) -> int:
    return max(1, math.ceil(duration_minutes / MINUTES_PER_DAY))


def _weather_highlight(trip: EnhancedTrip, weather: WeatherReading) -> WeatherHighlight:
    return WeatherHighlight(
        location=trip.display_location,
        temperature=weather.temperature,
        date=iso_date(trip.start_time),
    )


def _empty_stats() -> EnhancedTravelStats:
    return EnhancedTravelStats(
        total_distance_km=0.0,
        unique_cities=0,
        unique_countries=0,
        longest_trip_km=0.0,
        most_visited_location="No trips found",
        total_trips=0,
        first_trip_date=None,
        last_trip_date=None,
    )


def calculate_enhanced_stats(
    trips: Sequence[EnhancedTrip], flag_for: FlagLookup = get_flag_emoji
) -> EnhancedTravelStats:
    """Distance, place, country, destination and weather aggregates.

    Ties resolve to the first trip seen in input order. Advanced analytics are
    left at their defaults; see :func:`calculate_travel_stats`.
    """

    if not trips:
        return _empty_stats()

    journeys = [t for t in trips if t.type is TripType.JOURNEY and t.distance_km]
    total_distance = sum(t.distance_km or 0.0 for t in journeys)
    longest = max((t.distance_km or 0.0 for t in journeys), default=0.0)

    cities: set[str] = set()
    country_names: set[str] = set()
    countries: Dict[str, CountryVisit] = {}
    destinations: Dict[str, _DestinationTally] = {}
    place_counts: Dict[str, int] = {}

    for trip in trips:
        if trip.city:
            cities.add(trip.city.lower())
            key = f"{trip.city}-{trip.country or 'unknown'}"
            tally = destinations.get(key)
            if tally is None:
                tally = destinations[key] = _DestinationTally(
                    city=trip.city,
                    country=trip.country or "Unknown",
                    first_seen=len(destinations),
                )
            tally.visits += 1
            tally.total_days += days_for_visit(trip.duration_minutes)
        if trip.country:
            folded = trip.country.lower()
            country_names.add(folded)
            visit = countries.get(folded)
            if visit is None:
                visit = countries[folded] = CountryVisit(
                    name=trip.country,
                    code=trip.country_code or "",
                    flag=flag_for(trip.country_code),
                    visit_count=0,
                )
            visit.visit_count += 1
        place = trip.place_name or trip.city or "Unknown location"
        place_counts[place] = place_counts.get(place, 0) + 1

    # max() keeps the first maximal key, and dicts keep first-seen order.
    most_visited = max(place_counts, key=lambda k: place_counts[k])

    with_weather = [(t, t.weather) for t in trips if t.weather is not None]
    hottest = coldest = None
    if with_weather:
        hottest = _weather_highlight(
            *max(with_weather, key=lambda pair: pair[1].temperature)
        )
        coldest = _weather_highlight(
            *min(with_weather, key=lambda pair: pair[1].temperature)
        )

    ordered = sorted(trips, key=lambda t: t.start_time)
    top = sorted(
        destinations.values(),
        key=lambda d: (-d.visits, -d.total_days, d.first_seen),
    )[:TOP_DESTINATIONS_LIMIT]

    return EnhancedTravelStats(
        total_distance_km=round(total_distance, 2),
        unique_cities=len(cities),
        unique_countries=len(country_names),
        longest_trip_km=round(longest, 2),
        most_visited_location=most_visited,
        total_trips=len(trips),
        first_trip_date=ordered[0].start_time,
        last_trip_date=ordered[-1].end_time,
        hottest_trip=hottest,
        coldest_trip=coldest,
        countries=sorted(countries.values(), key=lambda c: -c.visit_count),
        top_destinations=[
            Destination(
                city=d.city, country=d.country, visits=d.visits, total_days=d.total_days
            )
            for d in top
        ],
    )


def calculate_travel_stats(
    trips: Sequence[EnhancedTrip], flag_for: FlagLookup = get_flag_emoji
) -> EnhancedTravelStats:
    """Basic aggregates merged with the advanced analytics."""

    stats = calculate_enhanced_stats(trips, flag_for)
    for name, value in calculate_advanced_stats(trips).items():
        setattr(stats, name, value)
    return stats
