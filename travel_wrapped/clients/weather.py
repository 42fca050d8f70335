"""Open-Meteo weather adapter: ERA5 archive, with the forecast endpoint for
recent days the archive has not caught up with."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..config import (
    WEATHER_ARCHIVE_LAG_DAYS,
    WEATHER_ARCHIVE_URL,
    WEATHER_CACHE_TTL_HOURS,
    WEATHER_CURRENT_CACHE_TTL_HOURS,
    WEATHER_FORECAST_URL,
    WEATHER_STATS_SAMPLE_SIZE,
)
from ..errors import AdapterUnavailableError, EnrichmentError, ErrorKind
from ..models import Coordinate, EnhancedTrip, WeatherReading, WeatherStatistics
from .cache import TwoTierCache, with_cache
from .circuit_breaker import CircuitBreaker, with_circuit_breaker
from .http import JsonHttpClient

SERVICE = "weather"

DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "temperature_2m_mean",
    "precipitation_sum",
    "weather_code",
    "wind_speed_10m_max",
)

CURRENT_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "precipitation",
    "weather_code",
    "wind_speed_10m",
)

# WMO weather interpretation codes.
WEATHER_DESCRIPTIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Fog",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    56: "Light freezing drizzle",
    57: "Dense freezing drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    66: "Light freezing rain",
    67: "Heavy freezing rain",
    71: "Slight snow fall",
    73: "Moderate snow fall",
    75: "Heavy snow fall",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}

_SUN = "☀️"
_SUN_BEHIND_CLOUD = "🌤️"
_PARTLY_CLOUDY = "⛅"
_CLOUD = "☁️"
_FOG = "🌫️"
_SHOWERS = "🌦️"
_RAIN = "🌧️"
_SNOWFLAKE = "❄️"
_SNOW_CLOUD = "🌨️"
_STORM = "⛈️"

WEATHER_ICONS = {
    0: _SUN,
    1: _SUN_BEHIND_CLOUD,
    2: _PARTLY_CLOUDY,
    3: _CLOUD,
    45: _FOG,
    48: _FOG,
    51: _SHOWERS,
    **{code: _RAIN for code in (53, 55, 56, 57, 61, 63, 65, 66, 67)},
    **{code: _SNOWFLAKE for code in (71, 73, 75, 77)},
    80: _SHOWERS,
    81: _SHOWERS,
    82: _SHOWERS,
    85: _SNOW_CLOUD,
    86: _SNOW_CLOUD,
    95: _STORM,
    96: _STORM,
    99: _STORM,
}

__all__ = [
    "OpenMeteoWeather",
    "weather_description",
    "weather_icon",
    "parse_current_weather",
    "parse_daily_weather",
]


def weather_description(code: int) -> str:
    return WEATHER_DESCRIPTIONS.get(int(code), "Unknown")


def weather_icon(code: int) -> str:
    return WEATHER_ICONS.get(int(code), _SUN_BEHIND_CLOUD)


def _at(values: Sequence[Any] | None, index: int) -> float | None:
    if not values or index >= len(values):
        return None
    return _number(values[index])


def _number(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_daily_weather(payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Flatten Open-Meteo's column-oriented ``daily`` block into one row per day.

    Temperature is the daily mean, falling back to the midpoint of max and min.
    Days with no temperature at all (recent days ERA5 has not filled in) are
    skipped rather than reported as 0 °C.
    """

    daily = payload.get("daily")
    if not isinstance(daily, Mapping):
        raise EnrichmentError(
            SERVICE, ErrorKind.NO_DATA, "No weather data available for this period"
        )
    rows: List[Dict[str, Any]] = []
    for index, day in enumerate(daily.get("time") or []):
        t_max = _at(daily.get("temperature_2m_max"), index)
        t_min = _at(daily.get("temperature_2m_min"), index)
        t_mean = _at(daily.get("temperature_2m_mean"), index)
        if t_mean is None and t_max is not None and t_min is not None:
            t_mean = (t_max + t_min) / 2
        if t_mean is None:
            t_mean = t_max if t_max is not None else t_min
        if t_mean is None:
            continue
        code = int(_at(daily.get("weather_code"), index) or 0)
        rows.append(
            {
                "date": str(day),
                "temperature": t_mean,
                "temperature_max": t_max if t_max is not None else t_mean,
                "temperature_min": t_min if t_min is not None else t_mean,
                "precipitation": _at(daily.get("precipitation_sum"), index) or 0.0,
                "weather_code": code,
                "description": weather_description(code),
                "icon": weather_icon(code),
                "wind_speed": _at(daily.get("wind_speed_10m_max"), index) or 0.0,
            }
        )
    return rows


def parse_current_weather(payload: Mapping[str, Any], today: str) -> Dict[str, Any]:
    """Build a reading for ``today`` from the forecast endpoint's ``current`` block."""

    current = payload.get("current")
    if not isinstance(current, Mapping):
        current = {}
    temperature = _number(current.get("temperature_2m"))
    if temperature is None:
        raise EnrichmentError(
            SERVICE, ErrorKind.NO_DATA, "No current weather in forecast response"
        )
    daily = payload.get("daily")
    if not isinstance(daily, Mapping):
        daily = {}
    t_max = _at(daily.get("temperature_2m_max"), 0)
    t_min = _at(daily.get("temperature_2m_min"), 0)
    code = int(_number(current.get("weather_code")) or 0)
    return {
        "date": today,
        "temperature": temperature,
        "temperature_max": t_max if t_max is not None else temperature,
        "temperature_min": t_min if t_min is not None else temperature,
        "precipitation": _number(current.get("precipitation")) or 0.0,
        "weather_code": code,
        "description": weather_description(code),
        "icon": weather_icon(code),
        "wind_speed": _number(current.get("wind_speed_10m")) or 0.0,
        "humidity": _number(current.get("relative_humidity_2m")),
    }


def _historical_key(coord: Coordinate, start_date: str, end_date: str) -> str:
    return (
        f"weather_historical_{coord.latitude:.2f},{coord.longitude:.2f}"
        f"-{start_date}-{end_date}"
    )


def _current_key(coord: Coordinate, today: str) -> str:
    return f"weather_current_{coord.latitude:.2f},{coord.longitude:.2f}-{today}"


class OpenMeteoWeather:
    """Daily weather for a coordinate and date range.

    Readings come from the ERA5 archive. The archive lags real time by a few
    days, so a date within ``archive_lag_days`` of today that the archive
    cannot answer falls back to the forecast endpoint's current conditions.
    """

    def __init__(
        self,
        *,
        cache: TwoTierCache | None = None,
        http: JsonHttpClient | None = None,
        breaker: CircuitBreaker | None = None,
        base_url: str = WEATHER_ARCHIVE_URL,
        forecast_url: str = WEATHER_FORECAST_URL,
        ttl_hours: float = WEATHER_CACHE_TTL_HOURS,
        current_ttl_hours: float = WEATHER_CURRENT_CACHE_TTL_HOURS,
        archive_lag_days: int = WEATHER_ARCHIVE_LAG_DAYS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.cache = cache or TwoTierCache()
        self.http = http or JsonHttpClient("open-meteo")
        self.breaker = breaker or CircuitBreaker("open-meteo")
        self._base_url = base_url
        self._forecast_url = forecast_url
        self._archive_lag_days = archive_lag_days
        self._today = today
        self._historical = with_cache(
            self.cache, _historical_key, ttl_hours=ttl_hours, service=SERVICE
        )(with_circuit_breaker(self.breaker)(self._fetch_historical))
        self._current = with_cache(
            self.cache, _current_key, ttl_hours=current_ttl_hours, service=SERVICE
        )(with_circuit_breaker(self.breaker)(self._fetch_current))

    def _fetch_historical(
        self, coord: Coordinate, start_date: str, end_date: str
    ) -> List[Dict[str, Any]]:
        data = self.http.get_json(
            self._base_url,
            {
                "latitude": coord.latitude,
                "longitude": coord.longitude,
                "start_date": start_date,
                "end_date": end_date,
                "daily": ",".join(DAILY_FIELDS),
                "timezone": "auto",
            },
        )
        if not isinstance(data, Mapping):
            raise EnrichmentError(
                SERVICE, ErrorKind.INVALID_RESPONSE, "weather payload is not an object"
            )
        rows = parse_daily_weather(data)
        if not rows:
            raise EnrichmentError(
                SERVICE,
                ErrorKind.NO_DATA,
                f"archive has no temperatures for {start_date}..{end_date}",
            )
        return rows

    def _fetch_current(self, coord: Coordinate, today: str) -> Dict[str, Any]:
        data = self.http.get_json(
            self._forecast_url,
            {
                "latitude": coord.latitude,
                "longitude": coord.longitude,
                "current": ",".join(CURRENT_FIELDS),
                "daily": "temperature_2m_max,temperature_2m_min",
                "forecast_days": 1,
                "timezone": "auto",
            },
        )
        if not isinstance(data, Mapping):
            raise EnrichmentError(
                SERVICE, ErrorKind.INVALID_RESPONSE, "forecast payload is not an object"
            )
        return parse_current_weather(data, today)

    def get_historical_weather(
        self, coord: Coordinate, start_date: str, end_date: str
    ) -> List[WeatherReading]:
        """Readings for every day in ``[start_date, end_date]``; empty on failure."""

        try:
            rows = self._historical(coord, start_date, end_date)
        except (EnrichmentError, AdapterUnavailableError) as exc:
            self.logger.warning(
                "Historical weather failed for %s %s..%s: %s",
                coord.label(2),
                start_date,
                end_date,
                exc,
            )
            return []
        return [WeatherReading(**row) for row in rows]

    def get_current_weather(self, coord: Coordinate) -> WeatherReading | None:
        """Current conditions from the forecast endpoint, dated today."""

        try:
            row = self._current(coord, self._today().isoformat())
        except (EnrichmentError, AdapterUnavailableError) as exc:
            self.logger.warning(
                "Current weather failed for %s: %s", coord.label(2), exc
            )
            return None
        return WeatherReading(**row)

    def _is_recent(self, iso_day: str) -> bool:
        try:
            day = date.fromisoformat(iso_day)
        except ValueError:
            return False
        return (self._today() - day).days <= self._archive_lag_days

    def get_weather_for_date(
        self, coord: Coordinate, iso_date: str
    ) -> WeatherReading | None:
        readings = self.get_historical_weather(coord, iso_date, iso_date)
        if readings:
            return readings[0]
        if self._is_recent(iso_date):
            self.logger.info(
                "Archive has no reading for %s yet; using current weather", iso_date
            )
            return self.get_current_weather(coord)
        return None

    def get_weather_statistics(
        self, trips: Sequence[EnhancedTrip]
    ) -> Optional[WeatherStatistics]:
        """Temperature extremes, mean and the most common conditions.

        Samples the first trips only; a trip that already carries a reading
        is not fetched again. ``None`` when no reading is available.
        """

        readings: List[WeatherReading] = []
        for trip in trips[:WEATHER_STATS_SAMPLE_SIZE]:
            reading = trip.weather or self.get_weather_for_date(
                trip.location, trip.start_time.date().isoformat()
            )
            if reading is not None:
                readings.append(reading)
        if not readings:
            return None
        temperatures = [r.temperature for r in readings]
        counts = Counter(r.weather_code for r in readings)
        # Equal counts resolve to the lowest code.
        common = min(counts, key=lambda code: (-counts[code], code))
        return WeatherStatistics(
            hottest_temp=max(temperatures),
            coldest_temp=min(temperatures),
            average_temp=sum(temperatures) / len(temperatures),
            most_common_weather=weather_description(common),
        )

    def cache_stats(self) -> Dict[str, object]:
        return {
            "memory_entries": self.cache.memory_size,
            "requests": self.http.request_count,
            "circuit": self.breaker.state,
        }

    def clear_cache(self) -> int:
        return self.cache.clear(SERVICE)
