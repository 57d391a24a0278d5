"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from zoninglens.web.ratelimit import (
    CLEANUP_INTERVAL,
    RateLimiter,
    RateLimitRule,
    client_identifier,
)

RULE = RateLimitRule(max_requests=3, window_seconds=60)


@pytest.fixture
def limiter(clock):
    return RateLimiter(clock=clock)


class TestRateLimiter:
    def test_counts_down_then_refuses(self, limiter):
        results = [limiter.check("tools:a", RULE) for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_window_resets(self, limiter, clock):
        for _ in range(3):
            limiter.check("tools:a", RULE)
        clock.advance(60.5)
        result = limiter.check("tools:a", RULE)
        assert result.allowed
        assert result.remaining == 2

    def test_keys_are_independent(self, limiter):
        for _ in range(3):
            limiter.check("tools:a", RULE)
        assert limiter.check("tools:b", RULE).allowed

    def test_reset_in_counts_down(self, limiter, clock):
        limiter.check("tools:a", RULE)
        clock.advance(20)
        result = limiter.check("tools:a", RULE)
        assert result.reset_in == pytest.approx(40)
        assert result.headers() == {
            "X-RateLimit-Limit": "3",
            "X-RateLimit-Remaining": "1",
            "X-RateLimit-Reset": "40",
        }

    def test_periodic_cleanup(self, limiter, clock):
        limiter.check("old", RateLimitRule(1, 1))
        clock.advance(2)
        for i in range(CLEANUP_INTERVAL - 1):
            limiter.check(f"k{i % 3}", RULE)
        assert limiter.stats()["active_entries"] == 3

    def test_stats_and_clear(self, limiter):
        limiter.check("a", RULE)
        limiter.check("a", RULE)
        limiter.check("b", RULE)
        assert limiter.stats() == {"active_entries": 2, "total_requests": 3}
        limiter.clear()
        assert limiter.stats() == {"active_entries": 0, "total_requests": 0}


def _request(headers: dict[str, str], host: str | None = "10.0.0.9") -> MagicMock:
    request = MagicMock()
    request.headers = headers
    request.client = MagicMock(host=host) if host else None
    return request


class TestClientIdentifier:
    def test_forwarded_for_first_hop(self):
        request = _request({"x-forwarded-for": "203.0.113.5, 10.0.0.1"})
        assert client_identifier(request) == "203.0.113.5"

    def test_real_ip_then_cloudflare(self):
        assert client_identifier(_request({"x-real-ip": "198.51.100.2"})) == "198.51.100.2"
        assert client_identifier(_request({"cf-connecting-ip": "198.51.100.3"})) == "198.51.100.3"

    def test_socket_address(self):
        assert client_identifier(_request({})) == "10.0.0.9"

    def test_unknown(self):
        assert client_identifier(_request({}, host=None)) == "unknown"
