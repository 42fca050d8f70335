"""Excel workbook summarising one processed timeline."""

from __future__ import annotations

import logging
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from .config import (
    EXCEL_AUTOSIZE_COLUMNS,
    EXCEL_AUTOSIZE_MAX_ROWS,
    EXCEL_AUTOSIZE_MAX_WIDTH,
    EXCEL_AUTOSIZE_MIN_WIDTH,
    EXCEL_AUTOSIZE_PADDING,
)
from .models import EnhancedProcessingResult, EnhancedTravelStats, EnhancedTrip
from .utils import format_duration, to_utc_aware

SUMMARY_SHEET = "Summary"
TRIPS_SHEET = "Trips"
COUNTRIES_SHEET = "Countries"
DESTINATIONS_SHEET = "Top Destinations"
TRANSPORT_SHEET = "Transport Modes"
EXCEL_DATETIME_FORMAT = "yyyy-mm-dd hh:mm:ss"

__all__ = ["write_report", "build_report_frames"]

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(patternType="solid", fgColor="FFFF40FF")
HEADER_BORDER = Border(
    left=Side(style="thin", color="000000"),
    right=Side(style="thin", color="000000"),
    top=Side(style="thin", color="000000"),
    bottom=Side(style="thin", color="000000"),
)

LOGGER = logging.getLogger(__name__)

PathInput = str | Path | PathLike[str]


def _excel_datetime(value: datetime | None) -> datetime | None:
    # openpyxl rejects timezone-aware datetimes.
    if value is None:
        return None
    return to_utc_aware(value).replace(tzinfo=None)


def _summary_rows(
    result: EnhancedProcessingResult, stats: EnhancedTravelStats
) -> List[Dict[str, Any]]:
    rows: List[Tuple[str, Any]] = [
        ("Total trips", stats.total_trips),
        ("Total distance (km)", stats.total_distance_km),
        ("Longest journey (km)", stats.longest_trip_km),
        ("Unique cities", stats.unique_cities),
        ("Unique countries", stats.unique_countries),
        ("Most visited", stats.most_visited_location),
        ("First trip", _excel_datetime(stats.first_trip_date)),
        ("Last trip", _excel_datetime(stats.last_trip_date)),
        ("Timezones crossed", stats.timezones_crossed),
    ]
    if stats.hottest_trip is not None:
        rows.append(
            (
                "Hottest trip",
                f"{stats.hottest_trip.location} {stats.hottest_trip.temperature:.1f}°C"
                f" ({stats.hottest_trip.date})",
            )
        )
    if stats.coldest_trip is not None:
        rows.append(
            (
                "Coldest trip",
                f"{stats.coldest_trip.location} {stats.coldest_trip.temperature:.1f}°C"
                f" ({stats.coldest_trip.date})",
            )
        )
    if stats.busiest_travel_period is not None:
        rows.append(
            (
                "Busiest month",
                f"{stats.busiest_travel_period.month}"
                f" ({stats.busiest_travel_period.trips_count} trips)",
            )
        )
    if stats.busiest_season is not None:
        rows.append(
            (
                "Busiest season",
                f"{stats.busiest_season.season} ({stats.busiest_season.trips_count} trips)",
            )
        )
    if stats.longest_travel_streak is not None:
        streak = stats.longest_travel_streak
        rows.append(
            (
                "Longest streak",
                f"{streak.trips_count} trips over {streak.days} days"
                f" ({streak.start_date} to {streak.end_date})",
            )
        )
    rows.extend(
        [
            ("Segments", result.total_segments),
            ("Segments processed", result.processed_segments),
            ("Parse errors", len(result.errors)),
        ]
    )
    return [{"Metric": k, "Value": v} for k, v in rows]


def _trip_row(trip: EnhancedTrip) -> Dict[str, Any]:
    weather = trip.weather
    return {
        "ID": trip.id,
        "Type": trip.type.value,
        "Start": _excel_datetime(trip.start_time),
        "End": _excel_datetime(trip.end_time),
        "Duration": format_duration(trip.duration_minutes),
        "Place": trip.place_name,
        "City": trip.city,
        "Country": trip.country,
        "Distance (km)": round(trip.distance_km, 2) if trip.distance_km else None,
        "Temperature (°C)": weather.temperature if weather else None,
        "Weather": f"{weather.icon} {weather.description}" if weather else None,
        "Latitude": trip.location.latitude,
        "Longitude": trip.location.longitude,
        "Segments": len(trip.segments),
    }


def build_report_frames(result: EnhancedProcessingResult) -> List[Tuple[str, pd.DataFrame]]:
    """Return ``(sheet name, frame)`` pairs in workbook order."""

    stats = result.enhanced_stats
    return [
        (SUMMARY_SHEET, pd.DataFrame(_summary_rows(result, stats))),
        (TRIPS_SHEET, pd.DataFrame([_trip_row(t) for t in result.enhanced_trips])),
        (
            COUNTRIES_SHEET,
            pd.DataFrame(
                [
                    {
                        "Flag": c.flag,
                        "Country": c.name,
                        "Code": c.code,
                        "Visits": c.visit_count,
                    }
                    for c in stats.countries
                ]
            ),
        ),
        (
            DESTINATIONS_SHEET,
            pd.DataFrame(
                [
                    {
                        "City": d.city,
                        "Country": d.country,
                        "Visits": d.visits,
                        "Days": d.total_days,
                    }
                    for d in stats.top_destinations
                ]
            ),
        ),
        (
            TRANSPORT_SHEET,
            pd.DataFrame(
                [
                    {
                        "Mode": m.mode,
                        "Distance (km)": m.distance_km,
                        "Share (%)": m.percentage,
                        "Trips": m.trip_count,
                        "Average (km)": m.average_distance_km,
                    }
                    for m in stats.transport_mode_breakdown
                ]
            ),
        ),
    ]


def _autosize(ws: Worksheet) -> None:
    if not EXCEL_AUTOSIZE_COLUMNS:
        return
    if ws.max_row > EXCEL_AUTOSIZE_MAX_ROWS:
        return
    for col_cells in ws.columns:
        max_len = 0
        col_letter = getattr(col_cells[0], "column_letter", None)
        for cell in col_cells:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        width = min(
            EXCEL_AUTOSIZE_MAX_WIDTH,
            max(EXCEL_AUTOSIZE_MIN_WIDTH, max_len + EXCEL_AUTOSIZE_PADDING),
        )
        if col_letter:
            ws.column_dimensions[col_letter].width = width


def _style_header_row(ws: Worksheet, max_col: int) -> None:
    for col_idx in range(1, max_col + 1):
        cell = ws.cell(row=1, column=col_idx)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER


def write_report(filepath: PathInput, result: EnhancedProcessingResult) -> None:
    """Write the summary workbook; empty tables get a one-line message."""

    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(
        path, engine="openpyxl", datetime_format=EXCEL_DATETIME_FORMAT
    ) as writer:
        for sheet_name, frame in build_report_frames(result):
            if frame.empty:
                frame = pd.DataFrame({"Message": ["No data to display."]})
            frame.to_excel(writer, sheet_name=sheet_name, index=False)
            ws = writer.sheets[sheet_name]
            _style_header_row(ws, len(frame.columns))
            _autosize(ws)
            LOGGER.debug("Wrote sheet %s rows=%d", sheet_name, len(frame))
    LOGGER.info("Wrote Excel report to %s", path)
