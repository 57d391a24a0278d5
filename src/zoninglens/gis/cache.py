"""In-memory TTL caches for lookup results plus a request-scoped dedup map."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from zoninglens.core.config import CacheConfig

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    inserted_at: float


class CacheStats(BaseModel):
    name: str
    size: int
    max_size: int
    ttl_minutes: float
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class TTLCache(Generic[T]):
    """Fixed-capacity store whose entries expire ``ttl_seconds`` after insertion.

    Expired entries are evicted lazily on read or by :meth:`cleanup`. When
    full, inserting a new key first evicts the oldest inserted entry.
    """

    def __init__(
        self,
        name: str,
        max_size: int = 100,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.name = name
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.inserted_at > self.ttl_seconds

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                self._evictions += 1
            self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def cleanup(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._expired(e, now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> CacheStats:
        return CacheStats(
            name=self.name,
            size=len(self._entries),
            max_size=self.max_size,
            ttl_minutes=self.ttl_seconds / 60,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )


class LookupCaches:
    """The five per-category caches, sized and timed from ``CacheConfig``.

    Jurisdiction boundaries change least often, overlays most often.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        cfg = config or CacheConfig()
        size = cfg.max_entries
        self.parcel: TTLCache[Any] = TTLCache("parcel", size, cfg.parcel_ttl_minutes * 60, clock)
        self.jurisdiction: TTLCache[Any] = TTLCache(
            "jurisdiction", size, cfg.jurisdiction_ttl_minutes * 60, clock
        )
        self.zoning: TTLCache[Any] = TTLCache("zoning", size, cfg.zoning_ttl_minutes * 60, clock)
        self.overlay: TTLCache[Any] = TTLCache("overlay", size, cfg.overlay_ttl_minutes * 60, clock)
        self.assessor: TTLCache[Any] = TTLCache(
            "assessor", size, cfg.assessor_ttl_minutes * 60, clock
        )

    def all(self) -> list[TTLCache[Any]]:
        return [self.parcel, self.jurisdiction, self.zoning, self.overlay, self.assessor]

    def stats(self) -> dict[str, CacheStats]:
        return {cache.name: cache.stats() for cache in self.all()}

    def totals(self) -> tuple[int, int]:
        """Aggregate (hits, misses) across all caches."""
        stats = [cache.stats() for cache in self.all()]
        return sum(s.hits for s in stats), sum(s.misses for s in stats)

    def clear(self) -> None:
        for cache in self.all():
            cache.clear()

    def cleanup(self) -> int:
        return sum(cache.cleanup() for cache in self.all())


class RequestCache:
    """Plain key -> value map living for one logical request.

    Concurrent callers asking for the same key share a single in-flight
    fetch; the outcome (value or exception) is reused for the rest of the
    request.
    """

    def __init__(self) -> None:
        self._entries: dict[str, asyncio.Future[Any]] = {}

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        future = self._entries.get(key)
        if future is None:
            future = asyncio.ensure_future(fetcher())
            self._entries[key] = future
        return await asyncio.shield(future)

    def peek(self, key: str) -> Any:
        """Settled value for ``key``, or ``None`` if absent, pending or failed."""
        future = self._entries.get(key)
        if future is None or not future.done() or future.cancelled():
            return None
        if future.exception() is not None:
            return None
        return future.result()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Forget every entry, cancelling fetches still in flight."""
        for future in self._entries.values():
            if not future.done():
                future.cancel()
        self._entries.clear()
