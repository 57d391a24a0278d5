"""Request-scoped logging with sequence numbers and elapsed time.

Concurrent lookups inside one request interleave their log lines, so every
line carries a per-request sequence number and the milliseconds elapsed
since the request started:

    [0001] +0ms [a1b2c3d4] [PARCEL] Parcel query started
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable, MutableMapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from zoninglens.core.types import LogCategory

_metrics_logger = logging.getLogger("zoninglens.metrics")


def configure_logging(level: str = "INFO") -> None:
    """Install a basic stream handler for the ``zoninglens`` logger tree."""
    root = logging.getLogger("zoninglens")
    root.setLevel(level.upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)


class RequestLogger(logging.LoggerAdapter):
    """Logger adapter scoped to a single logical request.

    Pass ``category=LogCategory.X`` to any logging call to tag the line.
    """

    def __init__(
        self,
        logger: logging.Logger,
        request_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(logger, {})
        self.request_id = request_id or uuid.uuid4().hex[:8]
        self._clock = clock
        self._start = clock()
        self._sequence = 0
        self._benchmarks: dict[str, int] = {}

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        category = kwargs.pop("category", None)
        self._sequence += 1
        prefix = f"[{self._sequence:04d}] +{self.elapsed_ms()}ms [{self.request_id}]"
        if category:
            prefix = f"{prefix} [{category}]"
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("request_id", self.request_id)
        kwargs["extra"] = extra
        return f"{prefix} {msg}", kwargs

    @property
    def sequence(self) -> int:
        return self._sequence

    def elapsed_ms(self) -> int:
        return int((self._clock() - self._start) * 1000)

    def benchmark(self, label: str) -> None:
        """Record the elapsed time at which ``label`` completed."""
        self._benchmarks[label] = self.elapsed_ms()

    @property
    def benchmarks(self) -> dict[str, int]:
        return dict(self._benchmarks)

    @asynccontextmanager
    async def timed(self, label: str) -> AsyncIterator[None]:
        """Log how long the wrapped block took, and whether it failed."""
        started = self._clock()
        try:
            yield
        except Exception as exc:
            ms = int((self._clock() - started) * 1000)
            self.error("%s failed after %dms: %s", label, ms, exc, category=LogCategory.PERF)
            raise
        ms = int((self._clock() - started) * 1000)
        self.info("%s completed in %dms", label, ms, category=LogCategory.PERF)
        self.benchmark(label)


class RequestMetrics(BaseModel):
    """Summary of one full property lookup, emitted as a single JSON line."""

    request_id: str
    identifier: str
    jurisdiction: str | None = None
    total_ms: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    overlay_count: int | None = None
    benchmarks: dict[str, int] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def log_request_metrics(metrics: RequestMetrics) -> str:
    """Emit ``metrics`` as a structured log line and return the JSON."""
    payload = {"type": "REQUEST_METRICS", **metrics.model_dump(mode="json")}
    line = json.dumps(payload, sort_keys=True)
    _metrics_logger.info(line)
    return line
