from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class TripType(str, Enum):
    STAY = "STAY"
    JOURNEY = "JOURNEY"


STAY_ACTIVITY = "STAY"


@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        return (
            -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )

    def label(self, precision: int = 3) -> str:
        return f"{self.latitude:.{precision}f}, {self.longitude:.{precision}f}"


@dataclass
class ProcessedTrip:
    """Normalized movement or stay record produced from one raw segment."""

    id: str
    start_time: datetime
    end_time: datetime
    start_location: Coordinate
    end_location: Coordinate
    activity_type: str
    confidence: float
    place_name: str | None = None
    address: str | None = None
    distance_meters: float | None = None

    @property
    def is_stay(self) -> bool:
        return self.activity_type == STAY_ACTIVITY

    @property
    def duration_minutes(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 60.0


@dataclass
class WeatherReading:
    date: str
    temperature: float
    temperature_max: float
    temperature_min: float
    weather_code: int
    description: str
    icon: str
    precipitation: float | None = None
    wind_speed: float | None = None
    humidity: float | None = None


@dataclass
class WeatherStatistics:
    hottest_temp: float
    coldest_temp: float
    average_temp: float
    most_common_weather: str


@dataclass
class LocationInfo:
    """Reverse/forward geocoding outcome. ``degraded`` marks a fallback value."""

    confidence: float
    city: str | None = None
    country: str | None = None
    country_code: str | None = None
    display_name: str | None = None
    coordinate: Coordinate | None = None
    degraded: bool = False


@dataclass
class CountryInfo:
    name: str
    code: str
    flag: str
    region: str | None = None
    capital: str | None = None
    timezone: str | None = None


@dataclass
class EnhancedTrip:
    id: str
    type: TripType
    start_time: datetime
    end_time: datetime
    location: Coordinate
    duration_minutes: int
    confidence: float
    segments: List[ProcessedTrip]
    end_location: Coordinate | None = None
    place_name: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    country_code: str | None = None
    distance_km: float | None = None
    weather: WeatherReading | None = None

    def refresh_duration(self) -> None:
        self.duration_minutes = minutes_between(self.start_time, self.end_time)

    @property
    def display_location(self) -> str:
        return self.city or self.place_name or "Unknown"


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


# --- Statistics snapshots --------------------------------------------


@dataclass
class TravelStats:
    total_distance_km: float
    unique_cities: int
    unique_countries: int
    longest_trip_km: float
    most_visited_location: str
    total_trips: int
    first_trip_date: datetime | None
    last_trip_date: datetime | None


@dataclass
class WeatherHighlight:
    location: str
    temperature: float
    date: str


@dataclass
class CountryVisit:
    name: str
    code: str
    flag: str
    visit_count: int


@dataclass
class Destination:
    city: str
    country: str
    visits: int
    total_days: int


@dataclass
class BusiestMonth:
    month: str
    month_number: int
    trips_count: int
    total_distance: float


@dataclass
class BusiestSeason:
    season: str
    trips_count: int
    total_distance: float
    months: List[str]


@dataclass
class TravelStreak:
    start_date: str
    end_date: str
    days: int
    trips_count: int
    countries: List[str]
    total_distance: float


@dataclass
class TimezoneTransition:
    from_timezone: str
    to_timezone: str
    location: str
    date: str


@dataclass
class TransportModeStat:
    mode: str
    distance_km: float
    percentage: float
    trip_count: int
    average_distance_km: float


@dataclass
class EnhancedTravelStats(TravelStats):
    hottest_trip: WeatherHighlight | None = None
    coldest_trip: WeatherHighlight | None = None
    countries: List[CountryVisit] = field(default_factory=list)
    top_destinations: List[Destination] = field(default_factory=list)
    busiest_travel_period: BusiestMonth | None = None
    busiest_season: BusiestSeason | None = None
    longest_travel_streak: TravelStreak | None = None
    timezones_crossed: int = 0
    timezone_transitions: List[TimezoneTransition] = field(default_factory=list)
    transport_mode_breakdown: List[TransportModeStat] = field(default_factory=list)


# --- Pipeline results --------------------------------------------------


@dataclass
class ProcessingResult:
    trips: List[ProcessedTrip]
    stats: TravelStats
    total_segments: int
    processed_segments: int
    errors: List[str] = field(default_factory=list)


@dataclass
class EnhancedProcessingResult:
    enhanced_trips: List[EnhancedTrip]
    enhanced_stats: EnhancedTravelStats
    basic_trips: List[ProcessedTrip]
    basic_stats: TravelStats
    total_segments: int
    processed_segments: int
    errors: List[str] = field(default_factory=list)
    enrichment_progress: int = 0

    @property
    def success_rate(self) -> Optional[float]:
        if self.total_segments == 0:
            return None
        parsed_ok = self.processed_segments - len(self.errors)
        return max(0.0, parsed_ok / self.total_segments)
