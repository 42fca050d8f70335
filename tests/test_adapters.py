import logging
from datetime import date

import pytest

from conftest import FakeResp, FakeSession, make_stay, make_weather
from travel_wrapped.clients import (
    CircuitBreaker,
    JsonHttpClient,
    NominatimGeocoder,
    OpenMeteoWeather,
    RateLimiter,
    RestCountriesService,
    TwoTierCache,
    get_flag_emoji,
)
from travel_wrapped.clients.geocoding import location_from_address, normalize_query
from travel_wrapped.clients.weather import (
    parse_current_weather,
    parse_daily_weather,
    weather_description,
    weather_icon,
)
from travel_wrapped.clients.circuit_breaker import CLOSED, OPEN
from travel_wrapped.errors import EnrichmentError, ErrorKind
from travel_wrapped.models import Coordinate

PARIS = Coordinate(48.8566, 2.3522)

BRUGES_PAYLOAD = {
    "display_name": "Bruges, West Flanders, Belgium",
    "lat": "51.2093",
    "lon": "3.2247",
    "address": {"town": "Bruges", "country": "Belgium", "country_code": "be"},
}

COUNTRIES = [
    {
        "name": {"common": "France", "official": "French Republic"},
        "cca2": "FR",
        "cca3": "FRA",
        "region": "Europe",
        "capital": ["Paris"],
        "timezones": ["UTC-10:00", "UTC+01:00"],
    },
    {
        "name": {"common": "Japan", "official": "Japan"},
        "cca2": "JP",
        "cca3": "JPN",
        "region": "Asia",
        "capital": ["Tokyo"],
        "timezones": ["UTC+09:00"],
    },
]


def _http(service, responses):
    session = FakeSession(responses)
    client = JsonHttpClient(
        service,
        session=session,
        limiter=RateLimiter(0),
        max_retries=1,
        sleep=lambda _: None,
    )
    return client, session


# --- Geocoding ---------------------------------------------------------
def test_location_from_address_confidence_tiers():
    full = location_from_address(BRUGES_PAYLOAD)
    assert full["city"] == "Bruges"
    assert full["country_code"] == "BE"
    assert full["confidence"] == 0.9
    assert full["lat"] == pytest.approx(51.2093)
    assert location_from_address({"address": {"country": "Chad"}})["confidence"] == 0.6
    bare = location_from_address({})
    assert bare["confidence"] == 0.3
    assert bare["lat"] is None


def test_normalize_query():
    assert normalize_query("  Eiffel   TOWER ") == "eiffel tower"


def test_reverse_geocode_parses_and_caches():
    http, session = _http("nominatim", [FakeResp(200, BRUGES_PAYLOAD)])
    geocoder = NominatimGeocoder(cache=TwoTierCache(), http=http, base_url="https://nom.test/")
    info = geocoder.reverse_geocode(Coordinate(51.20931, 3.22471))
    again = geocoder.reverse_geocode(Coordinate(51.20929, 3.22469))

    assert info.city == "Bruges"
    assert info.country == "Belgium"
    assert not info.degraded
    assert again == info
    assert len(session.calls) == 1
    url, params = session.calls[0]
    assert url == "https://nom.test/reverse"
    assert params["zoom"] == 10
    assert params["addressdetails"] == 1


def test_reverse_geocode_degrades_on_failure(caplog):
    http, _ = _http("nominatim", [FakeResp(503, None)])
    geocoder = NominatimGeocoder(cache=TwoTierCache(), http=http)
    with caplog.at_level(logging.WARNING):
        info = geocoder.reverse_geocode(PARIS)
    assert info.degraded
    assert info.confidence == 0.1
    assert info.city == "48.857, 2.352"
    assert info.coordinate == PARIS
    assert "Reverse geocoding failed" in caplog.text


def test_reverse_geocode_no_result_does_not_trip_breaker():
    http, session = _http("nominatim", [FakeResp(200, {"error": "Unable to geocode"})])
    breaker = CircuitBreaker("nominatim", failure_threshold=1)
    geocoder = NominatimGeocoder(cache=TwoTierCache(), http=http, breaker=breaker)
    assert geocoder.reverse_geocode(Coordinate(0.0, -160.0)).degraded
    assert geocoder.reverse_geocode(Coordinate(1.0, -160.0)).degraded
    assert breaker.state == CLOSED
    assert len(session.calls) == 2


def test_open_breaker_stops_network_calls():
    http, session = _http("nominatim", [FakeResp(500, None)])
    breaker = CircuitBreaker("nominatim", failure_threshold=2, recovery_timeout=60)
    geocoder = NominatimGeocoder(cache=TwoTierCache(), http=http, breaker=breaker)
    for lat in (1.0, 2.0, 3.0, 4.0):
        assert geocoder.reverse_geocode(Coordinate(lat, 0.0)).degraded
    assert breaker.state == OPEN
    assert len(session.calls) == 2
    assert geocoder.cache_stats()["circuit"] == OPEN


def test_forward_geocode():
    payload = [{"lat": "41.9", "lon": "12.5", "address": {"city": "Rome", "country": "Italy"}}]
    http, session = _http("nominatim", [FakeResp(200, payload), FakeResp(200, [])])
    geocoder = NominatimGeocoder(cache=TwoTierCache(), http=http)

    rome = geocoder.forward_geocode("Rome,  Italy")
    assert rome.coordinate == Coordinate(41.9, 12.5)
    assert geocoder.forward_geocode("rome, italy") == rome  # normalized cache key

    missing = geocoder.forward_geocode("Atlantis")
    assert missing.degraded
    assert missing.confidence == 0.0
    assert missing.display_name == "Atlantis"
    assert session.calls[0][1]["q"] == "Rome,  Italy"
    assert len(session.calls) == 2


# --- Weather -----------------------------------------------------------
DAILY = {
    "daily": {
        "time": ["2024-06-01", "2024-06-02"],
        "temperature_2m_max": [24.0, 10.0],
        "temperature_2m_min": [14.0, 2.0],
        "temperature_2m_mean": [19.5, None],
        "precipitation_sum": [0.0, 3.2],
        "weather_code": [1, 63],
        "wind_speed_10m_max": [12.0, 30.5],
    }
}


def test_parse_daily_weather_rows():
    rows = parse_daily_weather(DAILY)
    assert [r["date"] for r in rows] == ["2024-06-01", "2024-06-02"]
    assert rows[0]["temperature"] == 19.5
    assert rows[1]["temperature"] == 6.0  # midpoint when mean missing
    assert rows[1]["description"] == "Moderate rain"
    assert rows[1]["precipitation"] == 3.2


def test_parse_daily_weather_without_daily_block():
    with pytest.raises(EnrichmentError) as excinfo:
        parse_daily_weather({"reason": "out of range"})
    assert excinfo.value.kind is ErrorKind.NO_DATA


def test_weather_code_tables():
    assert weather_description(0) == "Clear sky"
    assert weather_description(42) == "Unknown"
    assert weather_icon(95) == "⛈️"
    assert weather_icon(42) == "🌤️"


def test_weather_for_date_uses_archive_and_cache():
    http, session = _http("open-meteo", [FakeResp(200, DAILY)])
    weather = OpenMeteoWeather(cache=TwoTierCache(), http=http, base_url="https://meteo.test/archive")
    reading = weather.get_weather_for_date(PARIS, "2024-06-01")
    # coordinates rounding to the same 2 decimals share a cache entry
    again = weather.get_weather_for_date(Coordinate(48.8561, 2.3518), "2024-06-01")

    assert reading.temperature == 19.5
    assert reading.weather_code == 1
    assert reading.icon == "🌤️"
    assert again == reading
    assert len(session.calls) == 1
    url, params = session.calls[0]
    assert url == "https://meteo.test/archive"
    assert params["start_date"] == params["end_date"] == "2024-06-01"
    assert "temperature_2m_mean" in params["daily"]


def test_weather_failure_returns_none():
    http, _ = _http("open-meteo", [FakeResp(400, {"reason": "bad date"})])
    weather = OpenMeteoWeather(cache=TwoTierCache(), http=http)
    assert weather.get_weather_for_date(PARIS, "1900-01-01") is None
    assert weather.get_historical_weather(PARIS, "1900-01-01", "1900-01-02") == []


PENDING_DAY = {
    "daily": {
        "time": ["2024-06-02"],
        "temperature_2m_max": [None],
        "temperature_2m_min": [None],
        "temperature_2m_mean": [None],
        "precipitation_sum": [None],
        "weather_code": [None],
        "wind_speed_10m_max": [None],
    }
}

FORECAST = {
    "current": {
        "temperature_2m": 17.2,
        "relative_humidity_2m": 64,
        "precipitation": 0.4,
        "weather_code": 61,
        "wind_speed_10m": 9.0,
    },
    "daily": {"temperature_2m_max": [20.1], "temperature_2m_min": [11.3]},
}


def _weather(responses, today=date(2024, 6, 3)):
    http, session = _http("open-meteo", responses)
    weather = OpenMeteoWeather(
        cache=TwoTierCache(),
        http=http,
        base_url="https://meteo.test/archive",
        forecast_url="https://meteo.test/forecast",
        today=lambda: today,
    )
    return weather, session


def test_parse_daily_weather_skips_days_without_temperature():
    assert parse_daily_weather(PENDING_DAY) == []


def test_parse_current_weather_range_defaults_to_current():
    row = parse_current_weather({"current": {"temperature_2m": 5}}, "2024-06-03")
    assert row["date"] == "2024-06-03"
    assert row["temperature_min"] == row["temperature_max"] == 5.0
    assert row["humidity"] is None
    with pytest.raises(EnrichmentError) as excinfo:
        parse_current_weather({"current": {}}, "2024-06-03")
    assert excinfo.value.kind is ErrorKind.NO_DATA


def test_recent_day_missing_from_archive_uses_current_weather():
    weather, session = _weather([FakeResp(200, PENDING_DAY), FakeResp(200, FORECAST)])
    reading = weather.get_weather_for_date(PARIS, "2024-06-02")

    assert reading.date == "2024-06-03"
    assert reading.temperature == 17.2
    assert reading.temperature_max == 20.1
    assert reading.temperature_min == 11.3
    assert reading.humidity == 64
    assert reading.description == "Slight rain"
    assert [url for url, _ in session.calls] == [
        "https://meteo.test/archive",
        "https://meteo.test/forecast",
    ]
    params = session.calls[1][1]
    assert "temperature_2m" in params["current"].split(",")
    assert params["forecast_days"] == 1
    assert weather.breaker.state == CLOSED


def test_old_day_missing_from_archive_returns_none():
    weather, session = _weather([FakeResp(200, PENDING_DAY)])
    assert weather.get_weather_for_date(PARIS, "2024-01-10") is None
    assert len(session.calls) == 1


def test_empty_archive_day_is_not_cached():
    weather, session = _weather([FakeResp(200, PENDING_DAY), FakeResp(200, DAILY)])
    assert weather.get_historical_weather(PARIS, "2024-01-10", "2024-01-10") == []
    readings = weather.get_historical_weather(PARIS, "2024-01-10", "2024-01-10")
    assert readings[0].temperature == 19.5
    assert len(session.calls) == 2


def test_current_weather_cached_and_failure_returns_none():
    weather, session = _weather([FakeResp(200, FORECAST)])
    first = weather.get_current_weather(PARIS)
    assert weather.get_current_weather(PARIS) == first
    assert len(session.calls) == 1

    broken, _ = _weather([FakeResp(200, {"daily": {}})])
    assert broken.get_current_weather(PARIS) is None


def test_weather_statistics_uses_known_and_fetched_readings():
    weather, session = _weather([FakeResp(200, DAILY)])
    trips = [
        make_stay(0, weather=make_weather(30.0, code=3)),
        make_stay(1, weather=make_weather(-4.0, code=3)),
        make_stay(2),
    ]
    stats = weather.get_weather_statistics(trips)

    assert stats.hottest_temp == 30.0
    assert stats.coldest_temp == -4.0
    assert stats.average_temp == pytest.approx((30.0 - 4.0 + 19.5) / 3)
    assert stats.most_common_weather == "Overcast"
    assert len(session.calls) == 1


def test_weather_statistics_samples_first_trips_and_breaks_ties_by_code():
    weather, _ = _weather([FakeResp(400, {"reason": "bad date"})])
    trips = [make_stay(i, weather=make_weather(10.0 + i, code=61)) for i in range(5)]
    trips += [make_stay(5 + i, weather=make_weather(0.0, code=2)) for i in range(5)]
    trips.append(make_stay(10, weather=make_weather(99.0, code=95)))

    stats = weather.get_weather_statistics(trips)
    assert stats.hottest_temp == 14.0
    assert stats.most_common_weather == "Partly cloudy"


def test_weather_statistics_without_readings():
    weather, _ = _weather([FakeResp(400, {"reason": "bad date"})])
    assert weather.get_weather_statistics([]) is None
    assert weather.get_weather_statistics([make_stay(0)]) is None


# --- Countries ---------------------------------------------------------
def _countries(responses=None, nominatim=None):
    http, session = _http("restcountries", responses or [FakeResp(200, COUNTRIES)])
    nom_http, nom_session = _http("nominatim", nominatim or [FakeResp(200, {})])
    service = RestCountriesService(
        cache=TwoTierCache(),
        http=http,
        nominatim_http=nom_http,
        base_url="https://countries.test/v3.1",
    )
    return service, session, nom_session


def test_countries_initialize_once():
    service, session, _ = _countries()
    service.initialize()
    service.initialize()
    assert service.initialized
    assert len(session.calls) == 1
    url, params = session.calls[0]
    assert url == "https://countries.test/v3.1/all"
    assert "cca2" in params["fields"]


@pytest.mark.parametrize("identifier", ["FR", "fra", "France", "french republic", "french"])
def test_country_info_lookup(identifier):
    service, _, _ = _countries()
    info = service.get_country_info(identifier)
    assert info.name == "France"
    assert info.code == "FR"
    assert info.flag == "🇫🇷"
    assert info.capital == "Paris"
    assert info.timezone == "UTC-10:00"


def test_country_info_unknown_and_blank():
    service, _, _ = _countries()
    assert service.get_country_info("Atlantis") is None
    assert service.get_country_info("") is None
    assert [c.code for c in service.get_countries_by_codes(["JP", "XX", "fr"])] == ["JP", "FR"]


def test_country_by_coordinates():
    service, _, nom_session = _countries(
        nominatim=[FakeResp(200, {"address": {"country": "Japan"}})]
    )
    info = service.get_country_by_coordinates(35.68, 139.69)
    assert info.code == "JP"
    assert service.get_country_by_coordinates(35.681, 139.691).code == "JP"
    assert len(nom_session.calls) == 1
    assert nom_session.calls[0][1]["zoom"] == 3


def test_country_by_coordinates_in_the_ocean():
    service, _, _ = _countries(nominatim=[FakeResp(200, {"error": "Unable to geocode"})])
    assert service.get_country_by_coordinates(0.0, -30.0) is None


def test_countries_failed_initialize_is_retried(caplog):
    service, session, _ = _countries(
        responses=[FakeResp(500, None), FakeResp(200, COUNTRIES)]
    )
    with caplog.at_level(logging.WARNING):
        service.initialize()
    assert not service.initialized
    assert "Failed to initialize countries service" in caplog.text
    assert service.get_country_info("JP").name == "Japan"
    assert len(session.calls) == 2


def test_countries_clear_cache_forces_reload():
    service, session, _ = _countries()
    service.initialize()
    service.clear_cache()
    assert not service.initialized
    service.initialize()
    assert len(session.calls) == 2


@pytest.mark.parametrize(
    "code, flag",
    [("gb", "🇬🇧"), ("US", "🇺🇸"), (None, "🌍"), ("", "🌍"), ("GBR", "🌍"), ("G1", "🇬🇦")],
)
def test_flag_emoji(code, flag):
    assert get_flag_emoji(code) == flag
    assert RestCountriesService.get_flag_emoji(code) == flag
