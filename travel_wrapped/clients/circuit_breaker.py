"""Thread-safe circuit breaker for external service adapters.

Tracks consecutive failures per adapter and short-circuits calls while the
breaker is open, so a service that is down is not hammered once per trip.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from typing import Any, Callable, TypeVar

from ..config import CIRCUIT_FAILURE_THRESHOLD, CIRCUIT_RECOVERY_SECONDS
from ..errors import AdapterUnavailableError, EnrichmentError, ErrorKind

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"

__all__ = [
    "CircuitBreaker",
    "with_circuit_breaker",
    "counts_as_failure",
    "CLOSED",
    "OPEN",
    "HALF_OPEN",
]


def counts_as_failure(exc: BaseException) -> bool:
    """An empty answer is not an outage; everything else is."""

    return not (isinstance(exc, EnrichmentError) and exc.kind is ErrorKind.NO_DATA)


class CircuitBreaker:
    """Three-state circuit breaker: closed -> open -> half-open -> closed.

    While half-open exactly one probe call is let through; concurrent callers
    are rejected until the probe settles the state.
    """

    def __init__(
        self,
        service: str,
        *,
        failure_threshold: int = CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout: float = CIRCUIT_RECOVERY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.service = service
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: float | None = None
        self._state = CLOSED
        self._probe_in_flight = False

    def _current_state(self) -> str:
        # Caller holds the lock.
        if self._state == OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.recovery_timeout:
                self._state = HALF_OPEN
                self._probe_in_flight = False
        return self._state

    @property
    def state(self) -> str:
        with self._lock:
            return self._current_state()

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def check(self) -> None:
        """Raise :class:`AdapterUnavailableError` if the call must not proceed."""

        with self._lock:
            state = self._current_state()
            if state == CLOSED:
                return
            if state == HALF_OPEN and not self._probe_in_flight:
                self._probe_in_flight = True
                LOGGER.info("Circuit breaker HALF-OPEN for %s; probing", self.service)
                return
            resets_in = 0.0
            if self._opened_at is not None:
                resets_in = max(
                    0.0, self.recovery_timeout - (self._clock() - self._opened_at)
                )
        raise AdapterUnavailableError(self.service, resets_in)

    def record_success(self) -> None:
        with self._lock:
            previous = self._state
            self._failures = 0
            self._opened_at = None
            self._state = CLOSED
            self._probe_in_flight = False
        if previous != CLOSED:
            LOGGER.info("Circuit breaker CLOSED for %s", self.service)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state == HALF_OPEN:
                self._state = OPEN
                self._opened_at = self._clock()
                self._probe_in_flight = False
                LOGGER.warning(
                    "Circuit breaker re-OPEN for %s (half-open probe failed)",
                    self.service,
                )
            elif self._state == CLOSED and self._failures >= self.failure_threshold:
                self._state = OPEN
                self._opened_at = self._clock()
                LOGGER.warning(
                    "Circuit breaker OPEN for %s after %d failures",
                    self.service,
                    self._failures,
                )

    def reset(self) -> None:
        self.record_success()


def with_circuit_breaker(breaker: CircuitBreaker) -> Callable[[F], F]:
    """Decorator that wraps a call with circuit breaker protection."""

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            breaker.check()
            try:
                result = fn(*args, **kwargs)
            except AdapterUnavailableError:
                raise
            except Exception as exc:
                if counts_as_failure(exc):
                    breaker.record_failure()
                else:
                    breaker.record_success()
                raise
            breaker.record_success()
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
