"""Two-tier cache for external lookups.

The persistent tier is any :class:`CacheStore` (a JSON file by default); the
memory tier is a ``cachetools.TTLCache`` that shields a single session from
repeated persistent reads. Lookups check the persistent store first, then
memory, and only then let the caller hit the network.
"""

from __future__ import annotations

import functools
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from os import PathLike
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Optional, Protocol, TypeVar

from cachetools import TTLCache

from ..config import MEMORY_CACHE_MAX_ENTRIES, MEMORY_CACHE_TTL_SECONDS

LOGGER = logging.getLogger(__name__)

ServiceName = Literal["weather", "countries", "geocoding"]
Clock = Callable[[], datetime]
F = TypeVar("F", bound=Callable[..., Any])

__all__ = [
    "CacheEntry",
    "CacheStore",
    "MemoryCacheStore",
    "JsonFileCacheStore",
    "TwoTierCache",
    "with_cache",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CacheEntry:
    key: str
    data: Any
    created_at: datetime
    expires_at: datetime
    service: str

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_record(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "data": self.data,
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "service": self.service,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=record["key"],
            data=record.get("data"),
            created_at=datetime.fromisoformat(record["createdAt"]),
            expires_at=datetime.fromisoformat(record["expiresAt"]),
            service=record.get("service", "geocoding"),
        )


class CacheStore(Protocol):
    """Persistent key/value store with per-entry expiry."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, data: Any, ttl_hours: float, service: ServiceName) -> None: ...


class MemoryCacheStore:
    """In-process :class:`CacheStore` with the same expiry semantics as the file store."""

    def __init__(self, clock: Clock = _utcnow) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.data

    def put(self, key: str, data: Any, ttl_hours: float, service: ServiceName) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                data=data,
                created_at=now,
                expires_at=now + timedelta(hours=ttl_hours),
                service=service,
            )

    def clear_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self, service: Optional[str] = None) -> int:
        with self._lock:
            doomed = [
                k
                for k, e in self._entries.items()
                if service is None or e.service == service
            ]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class JsonFileCacheStore:
    """File-backed :class:`CacheStore`.

    Entries are loaded lazily on first access and the whole file is rewritten
    (temp file + replace) on every put so a crash never leaves a torn file.
    """

    def __init__(self, path: str | PathLike[str], clock: Clock = _utcnow) -> None:
        self._path = Path(path)
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._loaded = False
        self.session_hits = 0
        self.session_misses = 0

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (json.JSONDecodeError, OSError) as exc:
            LOGGER.warning(
                "Could not load cache file %s, starting fresh: %s", self._path, exc
            )
            return
        for record in raw.get("entries", {}).values():
            try:
                entry = CacheEntry.from_record(record)
            except (KeyError, TypeError, ValueError):
                LOGGER.debug("Dropping malformed cache record %r", record)
                continue
            self._entries[entry.key] = entry
        LOGGER.debug("Loaded %d cache entries from %s", len(self._entries), self._path)

    def _save(self) -> None:
        payload = {
            "version": 1,
            "entries": {key: e.to_record() for key, e in self._entries.items()},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self._path)

    def get(self, key: str) -> Any | None:
        with self._lock:
            self._load()
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                LOGGER.debug("Evicting expired cache entry %s", key)
                del self._entries[key]
                entry = None
            if entry is None:
                self.session_misses += 1
                return None
            self.session_hits += 1
            return entry.data

    def put(self, key: str, data: Any, ttl_hours: float, service: ServiceName) -> None:
        now = self._clock()
        with self._lock:
            self._load()
            self._entries[key] = CacheEntry(
                key=key,
                data=data,
                created_at=now,
                expires_at=now + timedelta(hours=ttl_hours),
                service=service,
            )
            self._save()

    def clear_expired(self) -> int:
        """Remove expired entries; returns the number removed."""

        now = self._clock()
        with self._lock:
            self._load()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            if expired:
                self._save()
                LOGGER.info("Cleaned %d expired cache entries", len(expired))
        return len(expired)

    def clear(self, service: Optional[str] = None) -> int:
        """Remove all entries, or only those of ``service``."""

        with self._lock:
            self._load()
            doomed = [
                k
                for k, e in self._entries.items()
                if service is None or e.service == service
            ]
            for key in doomed:
                del self._entries[key]
            self._save()
        LOGGER.info("Cleared %d cache entries", len(doomed))
        return len(doomed)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            self._load()
            by_service: Dict[str, int] = {}
            for entry in self._entries.values():
                by_service[entry.service] = by_service.get(entry.service, 0) + 1
            total = self.session_hits + self.session_misses
            return {
                "total_entries": len(self._entries),
                "by_service": by_service,
                "session_hits": self.session_hits,
                "session_misses": self.session_misses,
                "hit_ratio_percent": round(self.session_hits / total * 100, 1)
                if total
                else 0.0,
            }


class TwoTierCache:
    """Persistent store plus a bounded in-memory TTL map."""

    def __init__(
        self,
        store: CacheStore | None = None,
        *,
        memory_ttl_seconds: float = MEMORY_CACHE_TTL_SECONDS,
        memory_max_entries: int = MEMORY_CACHE_MAX_ENTRIES,
        timer: Callable[[], float] | None = None,
    ) -> None:
        self.store: CacheStore = store if store is not None else MemoryCacheStore()
        kwargs: Dict[str, Any] = {}
        if timer is not None:
            kwargs["timer"] = timer
        self._memory: TTLCache[str, Any] = TTLCache(
            maxsize=max(1, memory_max_entries), ttl=memory_ttl_seconds, **kwargs
        )
        self._memory_lock = threading.RLock()

    def get(self, key: str) -> Any | None:
        cached = self.store.get(key)
        if cached is not None:
            return cached
        with self._memory_lock:
            return self._memory.get(key)

    def put(self, key: str, data: Any, ttl_hours: float, service: ServiceName) -> None:
        with self._memory_lock:
            self._memory[key] = data
        try:
            self.store.put(key, data, ttl_hours, service)
        except OSError as exc:
            LOGGER.warning("Persistent cache write failed for %s: %s", key, exc)

    def clear_memory(self) -> None:
        with self._memory_lock:
            self._memory.clear()

    def clear(self, service: Optional[str] = None) -> int:
        """Drop the memory tier and the persistent entries of ``service``."""

        self.clear_memory()
        clear_store = getattr(self.store, "clear", None)
        if callable(clear_store):
            return int(clear_store(service))
        return 0

    @property
    def memory_size(self) -> int:
        with self._memory_lock:
            return len(self._memory)


def with_cache(
    cache: TwoTierCache,
    key_fn: Callable[..., str],
    *,
    ttl_hours: float,
    service: ServiceName,
) -> Callable[[F], F]:
    """Decorator serving ``fn`` results from ``cache``.

    Only values returned normally are stored; ``None`` and raised errors are
    never cached, so a failed lookup is retried on the next call.
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = key_fn(*args, **kwargs)
            cached = cache.get(key)
            if cached is not None:
                LOGGER.debug("Cache hit %s", key)
                return cached
            result = fn(*args, **kwargs)
            if result is not None:
                cache.put(key, result, ttl_hours, service)
            return result

        return wrapper  # type: ignore[return-value]

    return decorator
