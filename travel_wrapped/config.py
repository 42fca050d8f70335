"""Central configuration for the Travel Wrapped timeline engine.

All values are constants imported by the rest of the package. Most can be
overridden through environment variables (optionally via a local `.env`).
"""

from __future__ import annotations

import importlib
import os


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


# Load .env variables when python-dotenv is available.
_load_dotenv = None
try:
    _dotenv_mod = importlib.import_module("dotenv")
    _load_dotenv = getattr(_dotenv_mod, "load_dotenv", None)
except Exception:
    _load_dotenv = None

if callable(_load_dotenv):
    # Load .env from the current directory or any parent folder.
    _load_dotenv()


# ---------------------------------------------------------------------------
# Input/Output
# ---------------------------------------------------------------------------
# Default output path for the JSON result bundle written by the CLI.
OUTPUT_FILE = os.getenv("TRAVEL_OUTPUT_FILE", "travel_wrapped_results.json")

# Persistent cache file (JSON). Empty string keeps the cache in memory only.
CACHE_FILE = os.getenv("TRAVEL_CACHE_FILE", "travel_wrapped_cache.json")


# ---------------------------------------------------------------------------
# External services
# ---------------------------------------------------------------------------
NOMINATIM_BASE_URL = os.getenv(
    "TRAVEL_NOMINATIM_URL", "https://nominatim.openstreetmap.org"
)
WEATHER_ARCHIVE_URL = os.getenv(
    "TRAVEL_WEATHER_URL", "https://archive-api.open-meteo.com/v1/era5"
)
# Forecast endpoint, used for recent days the ERA5 archive has not filled in yet.
WEATHER_FORECAST_URL = os.getenv(
    "TRAVEL_WEATHER_FORECAST_URL", "https://api.open-meteo.com/v1/forecast"
)
COUNTRIES_BASE_URL = os.getenv(
    "TRAVEL_COUNTRIES_URL", "https://restcountries.com/v3.1"
)

# Nominatim's usage policy requires an identifying User-Agent.
USER_AGENT = os.getenv("TRAVEL_USER_AGENT", "Travel-Wrapped/1.0 (Educational Project)")


# ---------------------------------------------------------------------------
# HTTP / resilience tuning
# ---------------------------------------------------------------------------
# HTTP session pool sizes for concurrent requests.
HTTP_POOL_CONNECTIONS = 10
HTTP_POOL_MAXSIZE = 10

# Request timeout in seconds.
REQUEST_TIMEOUT = _env_float("TRAVEL_REQUEST_TIMEOUT", 15.0)

# HTTP_MAX_RETRIES counts total attempts for transient failures (network, 5xx).
HTTP_MAX_RETRIES = _env_int("TRAVEL_HTTP_MAX_RETRIES", 3)
# First backoff delay; doubled on every retry and capped at HTTP_BACKOFF_MAX_SECONDS.
HTTP_BACKOFF_BASE_SECONDS = _env_float("TRAVEL_HTTP_BACKOFF_BASE_SECONDS", 1.0)
HTTP_BACKOFF_MAX_SECONDS = _env_float("TRAVEL_HTTP_BACKOFF_MAX_SECONDS", 8.0)

# Minimum interval (seconds) between two calls to the same external service.
RATE_LIMIT_MIN_INTERVAL_SECONDS = _env_float("TRAVEL_RATE_LIMIT_INTERVAL", 1.0)

# Consecutive failures before an adapter's circuit opens, and how long it stays open.
CIRCUIT_FAILURE_THRESHOLD = _env_int("TRAVEL_CIRCUIT_FAILURE_THRESHOLD", 3)
CIRCUIT_RECOVERY_SECONDS = _env_float("TRAVEL_CIRCUIT_RECOVERY_SECONDS", 30.0)


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------
# In-memory tier: short-session protection.
MEMORY_CACHE_TTL_SECONDS = _env_int("TRAVEL_MEMORY_CACHE_TTL_SECONDS", 3600)
MEMORY_CACHE_MAX_ENTRIES = _env_int("TRAVEL_MEMORY_CACHE_MAX_ENTRIES", 2048)

# Persistent tier. Historical weather for a fixed date never changes.
GEOCODING_CACHE_TTL_HOURS = _env_float("TRAVEL_GEOCODING_CACHE_TTL_HOURS", 24.0)
WEATHER_CACHE_TTL_HOURS = _env_float("TRAVEL_WEATHER_CACHE_TTL_HOURS", 24.0)
# Current conditions go stale quickly.
WEATHER_CURRENT_CACHE_TTL_HOURS = _env_float("TRAVEL_WEATHER_CURRENT_CACHE_TTL_HOURS", 1.0)
COUNTRIES_CACHE_TTL_HOURS = _env_float("TRAVEL_COUNTRIES_CACHE_TTL_HOURS", 24.0 * 7)


# ---------------------------------------------------------------------------
# Pipeline tuning
# ---------------------------------------------------------------------------
# Trips enriched concurrently per batch (also the worker count).
MAX_CONCURRENT_CALLS = _env_int("TRAVEL_MAX_CONCURRENT_CALLS", 5)

# Skip all external calls and keep grouped trips as-is.
ENRICHMENT_ENABLED = _env_bool("TRAVEL_ENRICHMENT_ENABLED", True)

# Path-only segments shorter than this are treated as GPS noise.
MIN_PATH_DISTANCE_METERS = 100.0

# Accumulated STAY time required for a run of visits to count as a stay.
MIN_STAY_DURATION_MINUTES = _env_float("TRAVEL_MIN_STAY_MINUTES", 10.0)

# Movements at or below this distance are discarded as micro-movements.
MIN_JOURNEY_DISTANCE_METERS = _env_float("TRAVEL_MIN_JOURNEY_METERS", 1000.0)

# STAY trips closer than this are merged by the deduplicator.
PROXIMITY_THRESHOLD_KM = _env_float("TRAVEL_PROXIMITY_THRESHOLD_KM", 0.1)

# Journeys whose endpoints differ by more than this (degrees, either axis)
# get weather at both ends.
WEATHER_ENDPOINT_DELTA_DEGREES = 0.1

# ERA5 lags real time by a few days; dates this recent fall back to the
# forecast endpoint when the archive has no temperatures yet.
WEATHER_ARCHIVE_LAG_DAYS = _env_int("TRAVEL_WEATHER_ARCHIVE_LAG_DAYS", 7)

# Trips sampled by the weather summary.
WEATHER_STATS_SAMPLE_SIZE = 10

# Gap (days) allowed between consecutive trips inside a travel streak.
STREAK_MAX_GAP_DAYS = 7

# Number of destinations listed in the statistics bundle.
TOP_DESTINATIONS_LIMIT = 10


# ---------------------------------------------------------------------------
# Excel report formatting
# ---------------------------------------------------------------------------
# Automatically size columns after writing each sheet (openpyxl only).
EXCEL_AUTOSIZE_COLUMNS = True
EXCEL_AUTOSIZE_MAX_WIDTH = 50  # characters
EXCEL_AUTOSIZE_MIN_WIDTH = 6  # characters
EXCEL_AUTOSIZE_PADDING = 2  # extra characters added to the detected max
EXCEL_AUTOSIZE_MAX_ROWS = 5000  # skip autosize for very large sheets
