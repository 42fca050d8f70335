"""Utilities for classifying timeline activity types into transport modes."""

from __future__ import annotations

from typing import Any

__all__ = [
    "TRANSPORT_MODES",
    "OTHER_MODE",
    "normalize_activity_type",
    "transport_mode_for",
]

OTHER_MODE = "Other"

TRANSPORT_MODES = (
    "Flying",
    "Train",
    "Bus",
    "Car",
    "Motorcycle",
    "Bicycle",
    "Walking",
    "Running",
    OTHER_MODE,
)

_MODE_BY_ACTIVITY = {
    "flying": "Flying",
    "in_airplane": "Flying",
    "in_train": "Train",
    "in_subway": "Train",
    "in_tram": "Train",
    "in_bus": "Bus",
    "in_passenger_vehicle": "Car",
    "in_vehicle": "Car",
    "in_car": "Car",
    "in_taxi": "Car",
    "driving": "Car",
    "motorcycling": "Motorcycle",
    "cycling": "Bicycle",
    "on_bicycle": "Bicycle",
    "walking": "Walking",
    "on_foot": "Walking",
    "hiking": "Walking",
    "running": "Running",
}


def normalize_activity_type(value: Any) -> str | None:
    """Return a lowercase activity type string or ``None`` when missing.

    Exports mix ``IN_PASSENGER_VEHICLE`` style labels with occasional
    lowercase or space-separated variants. Normalising once keeps downstream
    comparisons cheap and deterministic.
    """

    if value is None:
        return None
    normalized = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    return normalized or None


def transport_mode_for(activity_type: Any) -> str:
    """Map a raw activity label to one of :data:`TRANSPORT_MODES`.

    Unknown, missing and path-only (``MOVEMENT``) labels fall into ``Other``.
    """

    normalized = normalize_activity_type(activity_type)
    if normalized is None:
        return OTHER_MODE
    return _MODE_BY_ACTIVITY.get(normalized, OTHER_MODE)
