"""External service adapters and the resilience helpers they share."""

from .cache import JsonFileCacheStore, MemoryCacheStore, TwoTierCache, with_cache
from .circuit_breaker import CircuitBreaker, with_circuit_breaker
from .countries import RestCountriesService, get_flag_emoji
from .geocoding import NominatimGeocoder
from .http import JsonHttpClient
from .rate_limiter import RateLimiter, with_rate_limit
from .session import create_default_session
from .weather import OpenMeteoWeather

__all__ = [
    "CircuitBreaker",
    "JsonFileCacheStore",
    "JsonHttpClient",
    "MemoryCacheStore",
    "NominatimGeocoder",
    "OpenMeteoWeather",
    "RateLimiter",
    "RestCountriesService",
    "TwoTierCache",
    "create_default_session",
    "get_flag_emoji",
    "with_cache",
    "with_circuit_breaker",
    "with_rate_limit",
]
