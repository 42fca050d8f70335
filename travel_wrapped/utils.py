"""General utility helpers shared across modules."""

from __future__ import annotations

import dataclasses
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into aware UTC.

    Raises ``ValueError`` for empty or malformed input.
    """

    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"invalid timestamp {value!r}")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return to_utc_aware(datetime.fromisoformat(text))


def to_utc_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iso_date(value: datetime) -> str:
    """Return the ``YYYY-MM-DD`` calendar date of ``value``."""

    return value.date().isoformat()


def format_duration(minutes: int) -> str:
    """Format minutes into a ``Xd Yh Zm`` string."""

    days, rem = divmod(int(minutes), 24 * 60)
    hours, mins = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {mins}m"
    if hours:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def _normalise_value(value: Any) -> Any:
    """Convert objects to JSON-friendly representations."""

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _normalise_value(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    if isinstance(value, set):
        return sorted(_normalise_value(item) for item in value)
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def to_jsonable(value: Any) -> Any:
    """Return ``value`` (dataclasses included) as plain JSON-compatible data."""

    return _normalise_value(value)


def json_dumps_sorted(value: Any) -> str:
    """Return canonical JSON for hashing / comparisons."""

    normalised = _normalise_value(value)
    return json.dumps(normalised, sort_keys=True, separators=(",", ":"))
