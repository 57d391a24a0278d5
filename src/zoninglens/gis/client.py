"""Resilient async client for ArcGIS-style feature ``/query`` endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any
from urllib.parse import urlencode

import httpx

from zoninglens.core.config import ArcGISConfig
from zoninglens.gis.errors import (
    EndpointNotConfiguredError,
    RetriesExhaustedError,
    ServiceError,
)

logger = logging.getLogger(__name__)


def query_url(endpoint: str) -> str:
    """Append ``/query`` to a layer URL unless it is already there."""
    base = endpoint.strip().rstrip("/")
    if base.endswith("/query"):
        return base
    return f"{base}/query"


def encode_params(params: Mapping[str, Any]) -> dict[str, str]:
    """Flatten query parameters to strings and force a JSON response."""
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        elif isinstance(value, (dict, list, tuple)):
            encoded[key] = json.dumps(value, separators=(",", ":"))
        else:
            encoded[key] = str(value)
    encoded["f"] = "json"
    return encoded


class SpatialQueryClient:
    """Sends feature queries with per-attempt timeouts and bounded retries.

    Requests carrying a ``geometry`` parameter, or whose encoded form is
    longer than ``post_threshold_chars``, are sent as form-encoded POSTs;
    everything else is a plain GET.
    """

    def __init__(
        self,
        config: ArcGISConfig | None = None,
        http: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config or ArcGISConfig()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            headers={
                "Accept": "application/json",
                "User-Agent": self.config.user_agent,
            },
            follow_redirects=True,
        )
        self._sleep = sleep

    async def __aenter__(self) -> SpatialQueryClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def uses_post(self, params: Mapping[str, str]) -> bool:
        if "geometry" in params:
            return True
        return len(urlencode(params)) > self.config.post_threshold_chars

    async def query(self, endpoint: str, params: Mapping[str, Any]) -> dict[str, Any]:
        """Run one feature query and return the decoded JSON object.

        Raises:
            EndpointNotConfiguredError: ``endpoint`` is empty. Not retried.
            RetriesExhaustedError: every attempt failed.
        """
        if not endpoint or not endpoint.strip():
            raise EndpointNotConfiguredError("Feature layer URL is not configured", endpoint)

        url = query_url(endpoint)
        payload = encode_params(params)
        use_post = self.uses_post(payload)
        attempts = self.config.max_retries + 1
        last_exc: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(
                    self._send(url, payload, use_post),
                    timeout=self.config.timeout_seconds,
                )
            except Exception as exc:
                last_exc = exc
                logger.warning(
                    "Feature query attempt %d/%d to %s failed: %s",
                    attempt,
                    attempts,
                    url,
                    str(exc) or type(exc).__name__,
                )
                if attempt < attempts:
                    await self._sleep(self.config.backoff_seconds * attempt)

        logger.error("Feature query to %s exhausted %d attempts", url, attempts)
        raise RetriesExhaustedError(url, attempts) from last_exc

    async def features(self, endpoint: str, params: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Like :meth:`query` but returns only the well-formed features."""
        data = await self.query(endpoint, params)
        features = data.get("features") or []
        if not isinstance(features, list):
            return []
        return [f for f in features if isinstance(f, dict)]

    async def _send(self, url: str, payload: dict[str, str], use_post: bool) -> dict[str, Any]:
        if use_post:
            resp = await self._http.post(url, data=payload)
        else:
            resp = await self._http.get(url, params=payload)

        if not resp.is_success:
            raise httpx.HTTPStatusError(
                f"HTTP {resp.status_code} :: {url} :: {resp.text[:250]}",
                request=resp.request,
                response=resp,
            )

        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {url}")

        error = data.get("error")
        if isinstance(error, dict):
            raise ServiceError(
                str(error.get("message") or "Feature service error"),
                url,
                code=error.get("code"),
                details=[str(d) for d in error.get("details") or []],
            )
        return data
