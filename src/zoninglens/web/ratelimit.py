"""Fixed-window, in-memory request rate limiting."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, Response

from zoninglens.core.config import RateLimitConfig
from zoninglens.core.types import LogCategory

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 100


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: float


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_in: float
    limit: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_in)),
        }


class RateLimiter:
    """Counts requests per key in fixed windows.

    Expired windows are swept every ``CLEANUP_INTERVAL`` checks.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._checks = 0

    def check(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            self._checks += 1
            if self._checks >= CLEANUP_INTERVAL:
                self._checks = 0
                self._cleanup(now)

            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                self._windows[key] = _Window(count=1, reset_at=now + rule.window_seconds)
                return RateLimitResult(
                    True, rule.max_requests - 1, rule.window_seconds, rule.max_requests
                )

            reset_in = window.reset_at - now
            if window.count >= rule.max_requests:
                return RateLimitResult(False, 0, reset_in, rule.max_requests)

            window.count += 1
            return RateLimitResult(
                True, rule.max_requests - window.count, reset_in, rule.max_requests
            )

    def _cleanup(self, now: float) -> int:
        expired = [k for k, w in self._windows.items() if now > w.reset_at]
        for key in expired:
            del self._windows[key]
        return len(expired)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "active_entries": len(self._windows),
                "total_requests": sum(w.count for w in self._windows.values()),
            }

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()
            self._checks = 0


def client_identifier(request: Request) -> str:
    """Best guess at the caller's address, honouring common proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def rate_limited():
    """FastAPI dependency applying the burst and tool presets to a route."""

    def dependency(request: Request, response: Response) -> None:
        limiter: RateLimiter | None = getattr(request.app.state, "rate_limiter", None)
        config: RateLimitConfig | None = getattr(request.app.state, "rate_limit_config", None)
        if limiter is None or config is None or not config.enabled:
            return

        client = client_identifier(request)
        burst = limiter.check(
            f"burst:{client}",
            RateLimitRule(config.burst_max_requests, config.burst_window_seconds),
        )
        tools = limiter.check(
            f"tools:{client}",
            RateLimitRule(config.tools_max_requests, config.tools_window_seconds),
        )
        refused = next((r for r in (burst, tools) if not r.allowed), None)
        if refused is not None:
            logger.warning("[%s] Refused %s %s", LogCategory.RATELIMIT, client, request.url.path)
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {math.ceil(refused.reset_in)}s",
                headers=refused.headers(),
            )
        response.headers.update(tools.headers())

    return Depends(dependency)
