"""Nominatim geocoding adapter."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from ..config import GEOCODING_CACHE_TTL_HOURS, NOMINATIM_BASE_URL
from ..errors import AdapterUnavailableError, EnrichmentError, ErrorKind
from ..models import Coordinate, LocationInfo
from .cache import TwoTierCache, with_cache
from .circuit_breaker import CircuitBreaker, with_circuit_breaker
from .http import JsonHttpClient

SERVICE = "geocoding"

_CITY_KEYS = ("city", "town", "village", "municipality", "state")

__all__ = ["NominatimGeocoder", "location_from_address", "normalize_query"]


def normalize_query(text: str) -> str:
    return " ".join(str(text).lower().split())


def _reverse_key(coord: Coordinate) -> str:
    return f"geocode_reverse_{coord.latitude:.4f},{coord.longitude:.4f}"


def _forward_key(text: str) -> str:
    return f"geocode_forward_{normalize_query(text)}"


def location_from_address(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Reduce a Nominatim result to the JSON record kept in the cache."""

    address = payload.get("address") or {}
    city = next((address[k] for k in _CITY_KEYS if address.get(k)), None)
    country = address.get("country") or None
    country_code = address.get("country_code")
    if city:
        confidence = 0.9
    elif country:
        confidence = 0.6
    else:
        confidence = 0.3
    record: Dict[str, Any] = {
        "city": city,
        "country": country,
        "country_code": str(country_code).upper() if country_code else None,
        "display_name": payload.get("display_name"),
        "confidence": confidence,
    }
    try:
        record["lat"] = float(payload["lat"])
        record["lon"] = float(payload["lon"])
    except (KeyError, TypeError, ValueError):
        record["lat"] = record["lon"] = None
    return record


def _info_from_record(record: Mapping[str, Any]) -> LocationInfo:
    coordinate = None
    if record.get("lat") is not None and record.get("lon") is not None:
        coordinate = Coordinate(float(record["lat"]), float(record["lon"]))
    return LocationInfo(
        confidence=float(record.get("confidence", 0.0)),
        city=record.get("city"),
        country=record.get("country"),
        country_code=record.get("country_code"),
        display_name=record.get("display_name"),
        coordinate=coordinate,
    )


class NominatimGeocoder:
    """Reverse and forward geocoding against a Nominatim instance.

    Calls are cached, guarded by a circuit breaker and rate limited. Failures
    never propagate: callers get a degraded :class:`LocationInfo` instead.
    """

    def __init__(
        self,
        *,
        cache: TwoTierCache | None = None,
        http: JsonHttpClient | None = None,
        breaker: CircuitBreaker | None = None,
        base_url: str = NOMINATIM_BASE_URL,
        ttl_hours: float = GEOCODING_CACHE_TTL_HOURS,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.cache = cache or TwoTierCache()
        self.http = http or JsonHttpClient("nominatim")
        self.breaker = breaker or CircuitBreaker("nominatim")
        self._base_url = base_url.rstrip("/")
        guard = with_circuit_breaker(self.breaker)
        self._reverse = with_cache(
            self.cache, _reverse_key, ttl_hours=ttl_hours, service=SERVICE
        )(guard(self._fetch_reverse))
        self._forward = with_cache(
            self.cache, _forward_key, ttl_hours=ttl_hours, service=SERVICE
        )(guard(self._fetch_forward))

    def _fetch_reverse(self, coord: Coordinate) -> Dict[str, Any]:
        data = self.http.get_json(
            f"{self._base_url}/reverse",
            {
                "format": "json",
                "lat": coord.latitude,
                "lon": coord.longitude,
                "addressdetails": 1,
                "zoom": 10,
            },
        )
        if not isinstance(data, Mapping):
            raise EnrichmentError(
                SERVICE, ErrorKind.INVALID_RESPONSE, "reverse result is not an object"
            )
        if data.get("error"):
            raise EnrichmentError(SERVICE, ErrorKind.NO_DATA, str(data["error"]))
        return location_from_address(data)

    def _fetch_forward(self, text: str) -> Dict[str, Any]:
        data = self.http.get_json(
            f"{self._base_url}/search",
            {"format": "json", "q": text, "addressdetails": 1, "limit": 1},
        )
        if not isinstance(data, list):
            raise EnrichmentError(
                SERVICE, ErrorKind.INVALID_RESPONSE, "search result is not an array"
            )
        if not data:
            raise EnrichmentError(SERVICE, ErrorKind.NO_DATA, f"no match for {text!r}")
        return location_from_address(data[0])

    def reverse_geocode(self, coord: Coordinate) -> LocationInfo:
        """Describe ``coord``; degraded to a coordinate label on failure."""

        try:
            return _info_from_record(self._reverse(coord))
        except (EnrichmentError, AdapterUnavailableError) as exc:
            self.logger.warning("Reverse geocoding failed for %s: %s", coord.label(), exc)
        return LocationInfo(
            confidence=0.1,
            city=coord.label(3),
            coordinate=coord,
            degraded=True,
        )

    def forward_geocode(self, text: str) -> LocationInfo:
        """Resolve a free-text place; the result carries its coordinate."""

        try:
            return _info_from_record(self._forward(text))
        except (EnrichmentError, AdapterUnavailableError) as exc:
            self.logger.warning("Forward geocoding failed for %r: %s", text, exc)
        return LocationInfo(confidence=0.0, display_name=text, degraded=True)

    def cache_stats(self) -> Dict[str, Optional[object]]:
        return {
            "memory_entries": self.cache.memory_size,
            "requests": self.http.request_count,
            "circuit": self.breaker.state,
        }

    def clear_cache(self) -> int:
        return self.cache.clear(SERVICE)
