"""Per-adapter rate limiting for external lookups."""

from __future__ import annotations

import functools
import logging
import threading
import time
from typing import Any, Callable, TypeVar

from ..config import RATE_LIMIT_MIN_INTERVAL_SECONDS

F = TypeVar("F", bound=Callable[..., Any])

__all__ = ["RateLimiter", "with_rate_limit"]


class RateLimiter:
    """Enforce a minimum interval between request starts across threads.

    Each caller reserves the next free slot under the lock and sleeps outside
    it, so concurrent workers queue up one interval apart instead of bursting.
    """

    def __init__(
        self,
        min_interval: float = RATE_LIMIT_MIN_INTERVAL_SECONDS,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.name = name
        self._lock = threading.Lock()
        self._min_interval = min_interval
        self._next_slot: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._waits = 0

    def before_request(self) -> float:
        """Block until this caller may start a request; returns the wait applied."""

        with self._lock:
            now = self._clock()
            start_at = now if self._next_slot is None else max(now, self._next_slot)
            self._next_slot = start_at + self._min_interval
            wait_for = start_at - now
            if wait_for > 0:
                self._waits += 1
        if wait_for > 0:
            logging.debug("RateLimiter[%s] waiting %.2fs", self.name, wait_for)
            self._sleep(wait_for)
        return wait_for

    def snapshot(self) -> dict[str, float | int | None]:
        """Return current limiter stats (used by tests and diagnostics)."""

        with self._lock:
            return {
                "min_interval": self._min_interval,
                "next_slot": self._next_slot,
                "waits": self._waits,
            }


def with_rate_limit(limiter: RateLimiter) -> Callable[[F], F]:
    """Decorator that spaces calls to ``fn`` through ``limiter``."""

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            limiter.before_request()
            return fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
