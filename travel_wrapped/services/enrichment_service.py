"""Trip enrichment service.

Fans grouped trips out to the geocoding, weather and country adapters in
fixed-size batches. Each batch runs on a small thread pool; batches run one
after the other so the adapters' rate limiters are never flooded. Every
adapter already degrades to a fallback on failure, so a trip is always kept.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
import logging
import threading
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from ..clients.cache import JsonFileCacheStore, MemoryCacheStore, TwoTierCache
from ..clients.countries import RestCountriesService
from ..clients.geocoding import NominatimGeocoder
from ..clients.http import JsonHttpClient
from ..clients.rate_limiter import RateLimiter
from ..clients.session import create_default_session
from ..clients.weather import OpenMeteoWeather
from ..config import CACHE_FILE, MAX_CONCURRENT_CALLS, WEATHER_ENDPOINT_DELTA_DEGREES
from ..dedup import more_extreme_weather
from ..models import (
    Coordinate,
    CountryInfo,
    EnhancedTrip,
    LocationInfo,
    TripType,
    WeatherReading,
)
from ..utils import iso_date

ProgressCallback = Callable[[int], None]


class GeocodingAdapter(Protocol):
    def reverse_geocode(self, coord: Coordinate) -> LocationInfo: ...

    def forward_geocode(self, text: str) -> LocationInfo: ...


class WeatherAdapter(Protocol):
    def get_weather_for_date(
        self, coord: Coordinate, iso_date: str
    ) -> WeatherReading | None: ...


class CountryAdapter(Protocol):
    def initialize(self) -> None: ...

    def get_country_by_coordinates(
        self, lat: float, lon: float
    ) -> CountryInfo | None: ...


@dataclass(slots=True)
class EnrichmentServiceConfig:
    geocoder: GeocodingAdapter
    weather: WeatherAdapter
    countries: CountryAdapter
    max_concurrent: int = MAX_CONCURRENT_CALLS
    logger: logging.Logger | None = None


def build_default_config(
    cache_file: Optional[str] = CACHE_FILE,
    *,
    max_concurrent: int = MAX_CONCURRENT_CALLS,
) -> EnrichmentServiceConfig:
    """Wire the real adapters around one shared two-tier cache.

    Nominatim serves both reverse geocoding and the country-by-coordinate
    lookup, so those two clients share a single rate limiter.
    """

    store = JsonFileCacheStore(cache_file) if cache_file else MemoryCacheStore()
    cache = TwoTierCache(store)
    session = create_default_session()
    nominatim_limiter = RateLimiter(name="nominatim")
    nominatim_http = JsonHttpClient(
        "nominatim", session=session, limiter=nominatim_limiter
    )
    geocoder = NominatimGeocoder(cache=cache, http=nominatim_http)
    return EnrichmentServiceConfig(
        geocoder=geocoder,
        weather=OpenMeteoWeather(
            cache=cache, http=JsonHttpClient("open-meteo", session=session)
        ),
        countries=RestCountriesService(
            cache=cache,
            http=JsonHttpClient("restcountries", session=session),
            nominatim_http=nominatim_http,
            nominatim_breaker=geocoder.breaker,
        ),
        max_concurrent=max_concurrent,
    )


def needs_endpoint_weather(trip: EnhancedTrip) -> bool:
    """Journeys that actually go somewhere get weather at both ends."""

    if trip.type is not TripType.JOURNEY or trip.end_location is None:
        return False
    return (
        abs(trip.end_location.latitude - trip.location.latitude)
        > WEATHER_ENDPOINT_DELTA_DEGREES
        or abs(trip.end_location.longitude - trip.location.longitude)
        > WEATHER_ENDPOINT_DELTA_DEGREES
    )


class EnrichmentService:
    def __init__(self, config: EnrichmentServiceConfig):
        self.config = config
        self._log = config.logger or logging.getLogger(self.__class__.__name__)

    def enrich_trip(self, trip: EnhancedTrip) -> EnhancedTrip:
        """Return a copy of ``trip`` with place and weather fields filled in."""

        enriched = replace(trip, segments=list(trip.segments))
        if not enriched.city or not enriched.country:
            self._apply_location(enriched)
        if enriched.type is TripType.STAY or needs_endpoint_weather(enriched):
            self._apply_weather(enriched)
        return enriched

    def _apply_location(self, trip: EnhancedTrip) -> None:
        info = self.config.geocoder.reverse_geocode(trip.location)
        trip.city = trip.city or info.city
        trip.country = trip.country or info.country
        trip.country_code = trip.country_code or info.country_code
        if trip.country:
            return
        country = self.config.countries.get_country_by_coordinates(
            trip.location.latitude, trip.location.longitude
        )
        if country is not None:
            trip.country = country.name
            trip.country_code = trip.country_code or country.code

    def _apply_weather(self, trip: EnhancedTrip) -> None:
        day = iso_date(trip.start_time)
        reading = self.config.weather.get_weather_for_date(trip.location, day)
        if trip.type is TripType.JOURNEY and trip.end_location is not None:
            end_reading = self.config.weather.get_weather_for_date(
                trip.end_location, day
            )
            reading = more_extreme_weather(reading, end_reading)
        if reading is not None:
            trip.weather = reading

    def enrich_trips(
        self,
        trips: Sequence[EnhancedTrip],
        progress: ProgressCallback | None = None,
    ) -> List[EnhancedTrip]:
        """Enrich ``trips`` batch by batch; output order matches input order.

        ``progress`` is called on this thread after every batch with
        ``floor(done / total * 100)``.
        """

        total = len(trips)
        if not total:
            self._report(progress, 100)
            return []

        self.config.countries.initialize()
        batch_size = max(1, min(self.config.max_concurrent, total))
        results: Dict[int, EnhancedTrip] = {}
        failed = 0
        failure_lock = threading.Lock()

        def enrich_one(trip: EnhancedTrip) -> EnhancedTrip:
            nonlocal failed
            try:
                return self.enrich_trip(trip)
            except Exception as exc:
                with failure_lock:
                    failed += 1
                self._log.error(
                    "Enrichment failed for trip=%s: %s", trip.id, exc, exc_info=True
                )
                return replace(trip, segments=list(trip.segments))

        self._log.info(
            "Enriching %d trips in batches of %d", total, batch_size
        )
        for batch_start in range(0, total, batch_size):
            indices = range(batch_start, min(batch_start + batch_size, total))
            with ThreadPoolExecutor(max_workers=len(indices)) as executor:
                future_map = {
                    executor.submit(enrich_one, trips[index]): index
                    for index in indices
                }
                for future in as_completed(future_map):
                    results[future_map[future]] = future.result()
            done = indices[-1] + 1
            self._log.debug(
                "Enriched batch %d (%d/%d trips)",
                batch_start // batch_size + 1,
                done,
                total,
            )
            self._report(progress, done * 100 // total)

        if failed:
            self._log.warning("Kept %d trips without enrichment after errors", failed)
        return [results[index] for index in range(total)]

    def _report(self, progress: ProgressCallback | None, percent: int) -> None:
        if progress is None:
            return
        try:
            progress(percent)
        except Exception as exc:
            self._log.warning("Progress callback failed: %s", exc, exc_info=True)


__all__ = [
    "CountryAdapter",
    "EnrichmentService",
    "EnrichmentServiceConfig",
    "GeocodingAdapter",
    "WeatherAdapter",
    "build_default_config",
    "needs_endpoint_weather",
]
