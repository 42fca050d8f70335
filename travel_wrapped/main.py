"""Command-line entry point: process one timeline export."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Optional

from .config import CACHE_FILE, ENRICHMENT_ENABLED, MAX_CONCURRENT_CALLS, OUTPUT_FILE
from .errors import TimelineFormatError
from .excel_writer import write_report
from .models import EnhancedProcessingResult
from .services import (
    EnrichmentService,
    TimelineProcessor,
    TimelineProcessorConfig,
    build_default_config,
)
from .utils import to_jsonable

EXIT_OK = 0
EXIT_BAD_INPUT = 2


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Turn a timeline location-history export into an enriched travel summary"
    )
    parser.add_argument("input", help="Timeline JSON export (semanticSegments)")
    parser.add_argument(
        "--output",
        default=OUTPUT_FILE,
        help=f"JSON result bundle path (default: {OUTPUT_FILE})",
    )
    parser.add_argument("--excel", help="Optional Excel summary workbook path")
    parser.add_argument(
        "--cache-file",
        default=CACHE_FILE,
        help="Persistent lookup cache (empty string keeps it in memory)",
    )
    parser.add_argument(
        "--no-enrich",
        action="store_true",
        default=not ENRICHMENT_ENABLED,
        help="Skip geocoding, weather and country lookups",
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=MAX_CONCURRENT_CALLS,
        help="Trips enriched concurrently per batch",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_processor(
    *, enrich: bool, cache_file: Optional[str], max_concurrent: int
) -> TimelineProcessor:
    enrichment = None
    if enrich:
        enrichment = EnrichmentService(
            build_default_config(cache_file or None, max_concurrent=max_concurrent)
        )
    return TimelineProcessor(
        TimelineProcessorConfig(enrichment=enrichment, enrich=enrich)
    )


def _log_progress(percent: int, stage: Optional[str]) -> None:
    logging.info("Progress %3d%% (%s)", percent, stage or "-")


def write_json(path: str | Path, result: EnhancedProcessingResult) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = to_jsonable(result)
    payload["success_rate"] = result.success_rate
    target.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8"
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    _setup_logging(args.verbose)
    processor = build_processor(
        enrich=not args.no_enrich,
        cache_file=args.cache_file,
        max_concurrent=max(1, args.max_concurrent),
    )

    try:
        result = processor.process_file(args.input, progress=_log_progress)
    except (TimelineFormatError, FileNotFoundError) as exc:
        logging.error("Failed to load timeline export '%s': %s", args.input, exc)
        return EXIT_BAD_INPUT

    write_json(args.output, result)
    logging.info(
        "Results saved to %s (trips=%d, errors=%d)",
        args.output,
        len(result.enhanced_trips),
        len(result.errors),
    )
    if args.excel:
        write_report(args.excel, result)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
