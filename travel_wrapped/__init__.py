"""Travel Wrapped timeline engine package."""

from .main import main
from .models import EnhancedProcessingResult, EnhancedTravelStats, EnhancedTrip
from .errors import TimelineFormatError, TravelWrappedError
from .services import TimelineProcessor, TimelineProcessorConfig

__all__ = [
    "main",
    "EnhancedProcessingResult",
    "EnhancedTravelStats",
    "EnhancedTrip",
    "TimelineFormatError",
    "TravelWrappedError",
    "TimelineProcessor",
    "TimelineProcessorConfig",
]
