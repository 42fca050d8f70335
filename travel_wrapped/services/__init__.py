from .enrichment_service import (
    EnrichmentService,
    EnrichmentServiceConfig,
    build_default_config,
)
from .timeline_service import TimelineProcessor, TimelineProcessorConfig

__all__ = [
    "EnrichmentService",
    "EnrichmentServiceConfig",
    "TimelineProcessor",
    "TimelineProcessorConfig",
    "build_default_config",
]
