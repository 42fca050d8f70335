"""Global pytest fixtures & helpers.

Adds project root to path and provides reusable factories for raw segments,
parsed segments and trips, plus fake adapters and HTTP responses so the
pipeline can be exercised without network access.
"""
from __future__ import annotations

import os
import sys
import threading
from datetime import datetime, timedelta, timezone
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from travel_wrapped.models import (
    Coordinate,
    CountryInfo,
    EnhancedTrip,
    LocationInfo,
    ProcessedTrip,
    TripType,
    WeatherReading,
    minutes_between,
)

BASE_TIME = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


# --- Raw export segments ---------------------------------------------
def iso(dt):
    return dt.isoformat().replace("+00:00", "Z")


def visit_segment(lat, lon, start, minutes=60, name="Cafe", probability=0.8):
    return {
        "startTime": iso(start),
        "endTime": iso(start + timedelta(minutes=minutes)),
        "visit": {
            "probability": probability,
            "topCandidate": {
                "name": name,
                "placeLocation": {"latLng": f"{lat}°, {lon}°"},
            },
        },
    }


def activity_segment(start_pt, end_pt, start, minutes=30, kind="IN_PASSENGER_VEHICLE", distance=None):
    activity = {
        "start": {"latLng": f"{start_pt[0]}°, {start_pt[1]}°"},
        "end": {"latLng": f"{end_pt[0]}°, {end_pt[1]}°"},
        "topCandidate": {"type": kind, "probability": 0.9},
    }
    if distance is not None:
        activity["distanceMeters"] = distance
    return {
        "startTime": iso(start),
        "endTime": iso(start + timedelta(minutes=minutes)),
        "activity": activity,
    }


# --- Parsed segments and trips ----------------------------------------
def make_processed(
    idx=0,
    *,
    lat=51.5,
    lon=-0.12,
    start=None,
    minutes=60,
    activity_type="STAY",
    confidence=0.8,
    place_name="Home",
    distance_meters=None,
    end=None,
):
    start = start or BASE_TIME + timedelta(hours=idx * 3)
    coord = Coordinate(lat, lon)
    return ProcessedTrip(
        id=f"seg-{idx}",
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        start_location=coord,
        end_location=end or coord,
        activity_type=activity_type,
        confidence=confidence,
        place_name=place_name,
        distance_meters=distance_meters,
    )


def make_stay(
    idx=0,
    *,
    lat=51.5,
    lon=-0.12,
    start=None,
    minutes=120,
    city="London",
    country="United Kingdom",
    country_code="GB",
    confidence=0.8,
    place_name=None,
    weather=None,
):
    segment = make_processed(
        idx, lat=lat, lon=lon, start=start, minutes=minutes, confidence=confidence,
        place_name=place_name,
    )
    return EnhancedTrip(
        id=f"stay-{idx}",
        type=TripType.STAY,
        start_time=segment.start_time,
        end_time=segment.end_time,
        location=segment.start_location,
        duration_minutes=minutes_between(segment.start_time, segment.end_time),
        confidence=confidence,
        segments=[segment],
        place_name=place_name,
        city=city,
        country=country,
        country_code=country_code,
        weather=weather,
    )


def make_journey(
    idx=0,
    *,
    distance_km=100.0,
    start=None,
    minutes=90,
    lat=51.5,
    lon=-0.12,
    end=(52.2, 0.12),
    activity_type="IN_PASSENGER_VEHICLE",
    city=None,
    country=None,
    country_code=None,
):
    segment = make_processed(
        idx, lat=lat, lon=lon, start=start, minutes=minutes, activity_type=activity_type,
        place_name=None, distance_meters=distance_km * 1000, end=Coordinate(*end),
    )
    return EnhancedTrip(
        id=f"journey-{idx}",
        type=TripType.JOURNEY,
        start_time=segment.start_time,
        end_time=segment.end_time,
        location=segment.start_location,
        end_location=segment.end_location,
        duration_minutes=minutes_between(segment.start_time, segment.end_time),
        confidence=0.9,
        segments=[segment],
        distance_km=distance_km,
        city=city,
        country=country,
        country_code=country_code,
    )


def make_weather(temperature, date="2024-06-01", code=0):
    return WeatherReading(
        date=date,
        temperature=temperature,
        temperature_max=temperature + 3,
        temperature_min=temperature - 3,
        weather_code=code,
        description="Clear sky",
        icon="☀️",
    )


# --- Fake HTTP and adapters -------------------------------------------
class FakeResp:
    def __init__(self, status_code=200, payload=None, text="", headers=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.headers = headers or {"Content-Type": "application/json"}

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload


class FakeSession:
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, dict(params or {})))
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakeGeocoder:
    def __init__(self, city="Paris", country="France", country_code="FR"):
        self.city = city
        self.country = country
        self.country_code = country_code
        self.calls = []
        self._lock = threading.Lock()

    def reverse_geocode(self, coord):
        with self._lock:
            self.calls.append(coord)
        return LocationInfo(
            confidence=0.9, city=self.city, country=self.country,
            country_code=self.country_code, coordinate=coord,
        )

    def forward_geocode(self, text):
        return LocationInfo(confidence=0.9, city=text)


class FakeWeather:
    def __init__(self, temperature=21.0, by_latitude=None):
        self.temperature = temperature
        self.by_latitude = by_latitude or {}
        self.calls = []
        self._lock = threading.Lock()

    def get_weather_for_date(self, coord, iso_date):
        with self._lock:
            self.calls.append((coord, iso_date))
        temp = self.by_latitude.get(round(coord.latitude, 1), self.temperature)
        return make_weather(temp, date=iso_date)


class FakeCountries:
    def __init__(self, info=None):
        self.info = info
        self.initialized = 0
        self.lookups = []

    def initialize(self):
        self.initialized += 1

    def get_country_by_coordinates(self, lat, lon):
        self.lookups.append((lat, lon))
        return self.info


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def sample_export():
    start = BASE_TIME
    return {
        "semanticSegments": [
            visit_segment(48.8566, 2.3522, start, minutes=90, name="Louvre"),
            activity_segment((48.8566, 2.3522), (50.8503, 4.3517), start + timedelta(hours=2), minutes=120, kind="IN_TRAIN", distance=264000),
            visit_segment(50.8503, 4.3517, start + timedelta(hours=5), minutes=180, name="Grand Place"),
            {"startTime": iso(start + timedelta(hours=9)), "endTime": iso(start + timedelta(hours=10))},
        ]
    }


@pytest.fixture
def fake_countries():
    return FakeCountries(CountryInfo(name="France", code="FR", flag="🇫🇷"))
