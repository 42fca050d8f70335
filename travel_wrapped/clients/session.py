"""HTTP session factory for the enrichment adapters."""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter

from ..config import HTTP_POOL_CONNECTIONS, HTTP_POOL_MAXSIZE, USER_AGENT

__all__ = ["create_default_session"]


def create_default_session(user_agent: str = USER_AGENT) -> Session:
    """Pooled JSON session.

    Retries are handled by :class:`~travel_wrapped.clients.http.JsonHttpClient`
    so the rate limiter sees every attempt; the transport adapter never retries.
    """

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=0,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "Accept-Encoding": "gzip, deflate",
            "Accept": "application/json",
            "User-Agent": user_agent,
        }
    )
    return session
