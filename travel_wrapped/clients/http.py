"""JSON GET helper with retry/backoff shared by every external adapter."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import requests

from ..config import (
    HTTP_BACKOFF_BASE_SECONDS,
    HTTP_BACKOFF_MAX_SECONDS,
    HTTP_MAX_RETRIES,
    REQUEST_TIMEOUT,
)
from ..errors import EnrichmentError, ErrorKind
from .rate_limiter import RateLimiter, with_rate_limit
from .session import create_default_session

LOGGER = logging.getLogger(__name__)

__all__ = ["JsonHttpClient", "classify_response_status", "extract_error"]


def classify_response_status(
    service: str, response: requests.Response
) -> Tuple[str, Optional[EnrichmentError]]:
    """Return action for a response: ok, retry, or raise."""

    status = response.status_code
    if status < 400:
        return "ok", None
    detail = extract_error(response)
    message = f"request failed (status {status})"
    if detail:
        message = f"{message} | {detail}"
    if status == 429:
        return "retry", EnrichmentError(
            service, ErrorKind.RATE_LIMITED, message, status_code=status
        )
    if 500 <= status < 600:
        return "retry", EnrichmentError(
            service, ErrorKind.HTTP_SERVER, message, status_code=status
        )
    return "raise", EnrichmentError(
        service, ErrorKind.HTTP_CLIENT, message, status_code=status
    )


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Best-effort compact error text from a failed response."""

    if resp is None:
        return None
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("reason", "error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    return (trimmed[:197] + "...") if len(trimmed) > 200 else trimmed


class JsonHttpClient:
    """GET JSON documents from one external service.

    Transient failures (network errors, 5xx, 429, undecodable bodies) are
    retried with exponential backoff; 4xx responses are raised immediately.
    Every attempt, retries included, goes through the adapter's rate limiter.
    """

    def __init__(
        self,
        service: str,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = HTTP_MAX_RETRIES,
        backoff_base: float = HTTP_BACKOFF_BASE_SECONDS,
        backoff_max: float = HTTP_BACKOFF_MAX_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.service = service
        self._session = session or create_default_session()
        self.limiter = limiter or RateLimiter(name=service)
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._sleep = sleep
        self._send = with_rate_limit(self.limiter)(self._session_get)
        self.request_count = 0

    def _session_get(
        self, url: str, params: Mapping[str, Any] | None
    ) -> requests.Response:
        self.request_count += 1
        return self._session.get(url, params=params, timeout=self._timeout)

    def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET ``url`` and return the decoded JSON body.

        Raises ``EnrichmentError`` tagged with the failure kind once retries
        are exhausted or the failure is not retryable.
        """

        backoff = self._backoff_base
        attempts = 0
        while True:
            attempts += 1
            try:
                resp = self._send(url, params)
            except requests.RequestException as exc:
                error = EnrichmentError(
                    self.service, ErrorKind.NETWORK, f"{exc.__class__.__name__}: {exc}"
                )
            else:
                action, status_error = classify_response_status(self.service, resp)
                if status_error is None:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        error = EnrichmentError(
                            self.service,
                            ErrorKind.INVALID_RESPONSE,
                            f"non-JSON response: {exc}",
                            status_code=resp.status_code,
                        )
                else:
                    error = status_error
                    if action == "raise":
                        LOGGER.info("%s %s: %s", self.service, url, error)
                        raise error

            if attempts >= self._max_retries:
                LOGGER.warning(
                    "%s giving up after %s attempts: %s", self.service, attempts, error
                )
                raise error
            LOGGER.warning(
                "%s attempt=%s err=%s; backoff %.1fs",
                self.service,
                attempts,
                error.kind.value,
                backoff,
            )
            self._sleep(backoff)
            backoff = min(backoff * 2, self._backoff_max)

    def stats(self) -> Dict[str, Any]:
        return {"service": self.service, "requests": self.request_count}
