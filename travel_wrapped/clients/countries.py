"""REST Countries adapter with a Nominatim country-by-coordinate lookup."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..config import COUNTRIES_BASE_URL, COUNTRIES_CACHE_TTL_HOURS, NOMINATIM_BASE_URL
from ..errors import AdapterUnavailableError, EnrichmentError, ErrorKind
from ..models import CountryInfo
from .cache import TwoTierCache, with_cache
from .circuit_breaker import CircuitBreaker, with_circuit_breaker
from .http import JsonHttpClient

SERVICE = "countries"

COUNTRY_FIELDS = "name,cca2,cca3,region,subregion,capital,flags,timezones"

GLOBE = "🌍"
_REGIONAL_INDICATOR_A = 0x1F1E6

__all__ = ["RestCountriesService", "get_flag_emoji"]


def get_flag_emoji(country_code: Optional[str]) -> str:
    """Two-letter code -> flag made of regional indicator symbols."""

    if not country_code or len(country_code) != 2:
        return GLOBE
    points = []
    for char in country_code.upper():
        if "A" <= char <= "Z":
            points.append(_REGIONAL_INDICATOR_A + ord(char) - ord("A"))
        else:
            points.append(_REGIONAL_INDICATOR_A)
    return "".join(chr(p) for p in points)


def _format_country(country: Mapping[str, Any]) -> CountryInfo:
    names = country.get("name") or {}
    capital = country.get("capital") or []
    timezones = country.get("timezones") or []
    code = str(country.get("cca2") or "")
    return CountryInfo(
        name=str(names.get("common") or code),
        code=code,
        flag=get_flag_emoji(code),
        region=country.get("region"),
        capital=capital[0] if capital else None,
        timezone=timezones[0] if timezones else None,
    )


def _coords_key(lat: float, lon: float) -> str:
    return f"country_coords_{lat:.2f},{lon:.2f}"


class RestCountriesService:
    """Country metadata lookups backed by a one-off table download.

    ``initialize`` loads the full table once; a failed load is logged and
    leaves lookups returning ``None`` until the next attempt.
    """

    def __init__(
        self,
        *,
        cache: TwoTierCache | None = None,
        http: JsonHttpClient | None = None,
        nominatim_http: JsonHttpClient | None = None,
        breaker: CircuitBreaker | None = None,
        nominatim_breaker: CircuitBreaker | None = None,
        base_url: str = COUNTRIES_BASE_URL,
        nominatim_url: str = NOMINATIM_BASE_URL,
        ttl_hours: float = COUNTRIES_CACHE_TTL_HOURS,
    ) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.cache = cache or TwoTierCache()
        self.http = http or JsonHttpClient("restcountries")
        self.nominatim_http = nominatim_http or JsonHttpClient("nominatim")
        self.breaker = breaker or CircuitBreaker("restcountries")
        self.nominatim_breaker = nominatim_breaker or CircuitBreaker("nominatim")
        self._base_url = base_url.rstrip("/")
        self._nominatim_url = nominatim_url.rstrip("/")
        self._lock = threading.Lock()
        self._by_code: Dict[str, Mapping[str, Any]] = {}
        self._by_name: Dict[str, Mapping[str, Any]] = {}
        self._initialized = False
        self._all_countries = with_cache(
            self.cache, lambda: "countries_all", ttl_hours=ttl_hours, service=SERVICE
        )(with_circuit_breaker(self.breaker)(self._fetch_all))
        self._country_name_at = with_cache(
            self.cache, _coords_key, ttl_hours=ttl_hours, service=SERVICE
        )(with_circuit_breaker(self.nominatim_breaker)(self._fetch_country_name))

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _fetch_all(self) -> List[Dict[str, Any]]:
        data = self.http.get_json(f"{self._base_url}/all", {"fields": COUNTRY_FIELDS})
        if not isinstance(data, list):
            raise EnrichmentError(
                SERVICE,
                ErrorKind.INVALID_RESPONSE,
                "Invalid response format from countries API",
            )
        return data

    def _fetch_country_name(self, lat: float, lon: float) -> str:
        data = self.nominatim_http.get_json(
            f"{self._nominatim_url}/reverse",
            {"format": "json", "lat": lat, "lon": lon, "zoom": 3, "addressdetails": 1},
        )
        address = data.get("address") if isinstance(data, Mapping) else None
        country = (address or {}).get("country")
        if not country:
            raise EnrichmentError(
                SERVICE, ErrorKind.NO_DATA, f"no country at {lat:.2f},{lon:.2f}"
            )
        return str(country)

    def initialize(self) -> None:
        """Load the country table; repeated calls after success are no-ops."""

        with self._lock:
            if self._initialized:
                return
            try:
                countries = self._all_countries()
            except (EnrichmentError, AdapterUnavailableError) as exc:
                self.logger.warning("Failed to initialize countries service: %s", exc)
                return
            for country in countries:
                if not isinstance(country, Mapping):
                    continue
                for key in ("cca2", "cca3"):
                    if country.get(key):
                        self._by_code[str(country[key]).lower()] = country
                names = country.get("name") or {}
                for key in ("common", "official"):
                    if names.get(key):
                        self._by_name[str(names[key]).lower()] = country
            self._initialized = True
            self.logger.info("Loaded %d countries", len(countries))

    def get_country_info(self, identifier: str) -> CountryInfo | None:
        """Look up by cca2/cca3 code, common/official name, then partial name."""

        self.initialize()
        needle = str(identifier or "").strip().lower()
        if not needle:
            return None
        country = self._by_code.get(needle) or self._by_name.get(needle)
        if country is None:
            country = next(
                (c for name, c in self._by_name.items() if needle in name or name in needle),
                None,
            )
        return _format_country(country) if country is not None else None

    def get_country_by_coordinates(self, lat: float, lon: float) -> CountryInfo | None:
        try:
            name = self._country_name_at(lat, lon)
        except (EnrichmentError, AdapterUnavailableError) as exc:
            self.logger.warning(
                "Country lookup failed for %.3f,%.3f: %s", lat, lon, exc
            )
            return None
        return self.get_country_info(name)

    def get_countries_by_codes(self, codes: Iterable[str]) -> List[CountryInfo]:
        results: List[CountryInfo] = []
        for code in codes:
            info = self.get_country_info(code)
            if info is not None:
                results.append(info)
        return results

    @staticmethod
    def get_flag_emoji(country_code: Optional[str]) -> str:
        return get_flag_emoji(country_code)

    def cache_stats(self) -> Dict[str, object]:
        return {
            "countries": len(self._by_code),
            "initialized": self._initialized,
            "requests": self.http.request_count + self.nominatim_http.request_count,
            "circuit": self.breaker.state,
        }

    def clear_cache(self) -> int:
        with self._lock:
            self._by_code.clear()
            self._by_name.clear()
            self._initialized = False
        return self.cache.clear(SERVICE)
