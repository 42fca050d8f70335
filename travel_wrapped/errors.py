"""Central error types used across the application."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure category attached where an external call fails."""

    NETWORK = "network"
    HTTP_CLIENT = "http_client"
    HTTP_SERVER = "http_server"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    NO_DATA = "no_data"

    @property
    def retryable(self) -> bool:
        return self not in (ErrorKind.HTTP_CLIENT, ErrorKind.NO_DATA)


class TravelWrappedError(RuntimeError):
    """Base error for the timeline engine."""


class TimelineFormatError(TravelWrappedError):
    """Raised when the export's top-level structure is invalid (fatal)."""


class SegmentParseError(TravelWrappedError):
    """Raised when a single semantic segment cannot be interpreted."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(message)
        self.index = index
        self.message = message

    def __str__(self) -> str:
        return f"Segment {self.index}: {self.message}"


class EnrichmentError(TravelWrappedError):
    """Raised when one external lookup fails after retries."""

    def __init__(
        self,
        service: str,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class AdapterUnavailableError(TravelWrappedError):
    """Raised when a call is rejected because the adapter's circuit is open."""

    def __init__(self, service: str, resets_in: float) -> None:
        super().__init__(
            f"Circuit breaker open for {service} (resets in {resets_in:.0f}s)"
        )
        self.service = service
        self.resets_in = resets_in


__all__ = [
    "ErrorKind",
    "TravelWrappedError",
    "TimelineFormatError",
    "SegmentParseError",
    "EnrichmentError",
    "AdapterUnavailableError",
]
