"""Timeline processing service.

Runs the full pipeline for one export: parse, group, enrich, deduplicate and
compute statistics. Progress is reported as an overall percentage plus a stage
name: parsing covers 0-40, enrichment 40-90 and statistics 90-100.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from os import PathLike
from typing import Any, Callable, List, Optional, Sequence

from ..config import (
    ENRICHMENT_ENABLED,
    MIN_JOURNEY_DISTANCE_METERS,
    MIN_STAY_DURATION_MINUTES,
    PROXIMITY_THRESHOLD_KM,
)
from ..dedup import deduplicate_nearby_places
from ..grouping import group_trips
from ..models import (
    EnhancedProcessingResult,
    EnhancedTravelStats,
    EnhancedTrip,
    ProcessingResult,
)
from ..timeline_parser import load_timeline, parse_timeline_data
from ..travel_stats import calculate_travel_stats
from .enrichment_service import EnrichmentService, build_default_config

ProgressSink = Callable[[int, Optional[str]], None]

PARSE_SHARE = 40
ENRICH_SHARE = 50


@dataclass(slots=True)
class TimelineProcessorConfig:
    enrichment: EnrichmentService | None = None
    enrich: bool = ENRICHMENT_ENABLED
    min_stay_minutes: float = MIN_STAY_DURATION_MINUTES
    min_journey_meters: float = MIN_JOURNEY_DISTANCE_METERS
    proximity_threshold_km: float = PROXIMITY_THRESHOLD_KM
    logger: logging.Logger | None = None


def _basic_as_enhanced(basic: ProcessingResult) -> EnhancedTravelStats:
    stats = basic.stats
    return EnhancedTravelStats(
        total_distance_km=stats.total_distance_km,
        unique_cities=stats.unique_cities,
        unique_countries=stats.unique_countries,
        longest_trip_km=stats.longest_trip_km,
        most_visited_location=stats.most_visited_location,
        total_trips=stats.total_trips,
        first_trip_date=stats.first_trip_date,
        last_trip_date=stats.last_trip_date,
    )


class TimelineProcessor:
    def __init__(self, config: TimelineProcessorConfig | None = None):
        self.config = config or TimelineProcessorConfig()
        self._log = self.config.logger or logging.getLogger(self.__class__.__name__)
        self._last_percent = 0

    def process_file(
        self, path: str | PathLike[str], progress: ProgressSink | None = None
    ) -> EnhancedProcessingResult:
        """Load an export from disk and process it.

        ``TimelineFormatError`` and ``FileNotFoundError`` propagate.
        """

        segments = load_timeline(path)
        self._log.info("Loaded %d segments from %s", len(segments), path)
        return self.process_data({"semanticSegments": segments}, progress)

    def process_data(
        self, data: Any, progress: ProgressSink | None = None
    ) -> EnhancedProcessingResult:
        self._last_percent = 0
        basic = parse_timeline_data(
            data, lambda pct: self._emit(progress, pct * PARSE_SHARE // 100, "parsing")
        )
        self._emit(progress, PARSE_SHARE, "parsing")

        errors = list(basic.errors)
        enrichment_progress = 0
        try:
            candidates = group_trips(
                basic.trips,
                min_stay_minutes=self.config.min_stay_minutes,
                min_journey_meters=self.config.min_journey_meters,
            )
            enhanced, enrichment_progress = self._enrich(candidates, progress)
            trips = deduplicate_nearby_places(
                enhanced, self.config.proximity_threshold_km
            )
            self._emit(progress, PARSE_SHARE + ENRICH_SHARE, "statistics")
            stats = calculate_travel_stats(trips)
        except Exception as exc:
            self._log.error(
                "Trip enrichment failed; returning basic results: %s",
                exc,
                exc_info=True,
            )
            errors.append(f"Enrichment failed: {exc}")
            self._emit(progress, 100, "complete")
            return EnhancedProcessingResult(
                enhanced_trips=[],
                enhanced_stats=_basic_as_enhanced(basic),
                basic_trips=basic.trips,
                basic_stats=basic.stats,
                total_segments=basic.total_segments,
                processed_segments=basic.processed_segments,
                errors=errors,
                enrichment_progress=enrichment_progress,
            )

        self._emit(progress, 100, "complete")
        self._log.info(
            "Processed %d/%d segments into %d trips (%d errors)",
            basic.processed_segments,
            basic.total_segments,
            len(trips),
            len(errors),
        )
        return EnhancedProcessingResult(
            enhanced_trips=trips,
            enhanced_stats=stats,
            basic_trips=basic.trips,
            basic_stats=basic.stats,
            total_segments=basic.total_segments,
            processed_segments=basic.processed_segments,
            errors=errors,
            enrichment_progress=enrichment_progress,
        )

    def _enrich(
        self, trips: Sequence[EnhancedTrip], progress: ProgressSink | None
    ) -> tuple[List[EnhancedTrip], int]:
        if not self.config.enrich:
            self._log.info("Enrichment disabled; keeping %d grouped trips", len(trips))
            return list(trips), 0
        service = self.config.enrichment
        if service is None:
            self._log.info("No enrichment service given; using the default adapters")
            service = self.config.enrichment = EnrichmentService(build_default_config())

        last = 0

        def on_batch(percent: int) -> None:
            nonlocal last
            last = percent
            self._emit(
                progress, PARSE_SHARE + percent * ENRICH_SHARE // 100, "enriching"
            )

        enriched = service.enrich_trips(trips, on_batch)
        return enriched, last

    def _emit(self, progress: ProgressSink | None, percent: int, stage: str) -> None:
        # Never report a smaller value than one already sent.
        percent = max(self._last_percent, min(100, percent))
        self._last_percent = percent
        if progress is None:
            return
        try:
            progress(percent, stage)
        except Exception as exc:
            self._log.warning("Progress callback failed: %s", exc, exc_info=True)


__all__ = ["ProgressSink", "TimelineProcessor", "TimelineProcessorConfig"]
