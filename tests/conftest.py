"""Shared test fixtures and helpers."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from zoninglens.core.config import ArcGISConfig, EndpointConfig, Settings
from zoninglens.gis.cache import LookupCaches
from zoninglens.gis.errors import EndpointNotConfiguredError
from zoninglens.gis.providers import ProviderRegistry
from zoninglens.gis.service import PropertyLookupService

PARCEL_URL = "https://gis.example.test/arcgis/rest/services/Parcels/MapServer/0"
CITY_URL = "https://gis.example.test/arcgis/rest/services/Boundaries/MapServer/1"
ZONING_URL = "https://gis.example.test/arcgis/rest/services/Zoning/MapServer/2"
ASSESSOR_URL = "https://gis.example.test/arcgis/rest/services/Assessor/MapServer/3"

Handler = Callable[[dict[str, Any]], Any]


def square(x0: float = 0.0, y0: float = 0.0, size: float = 1.0) -> list[list[float]]:
    """Closed square ring in Esri JSON point order."""
    return [
        [x0, y0],
        [x0 + size, y0],
        [x0 + size, y0 + size],
        [x0, y0 + size],
        [x0, y0],
    ]


def parcel_feature(
    ain: str = "5843004015",
    ring: list[list[float]] | None = None,
    **attributes: Any,
) -> dict[str, Any]:
    attrs = {
        "AIN": ain,
        "APN": f"{ain[:4]}-{ain[4:7]}-{ain[7:]}",
        "SitusAddress": "1234 N LAKE AVE",
        "SitusCity": "ALTADENA CA",
        "SitusZIP": "91001",
    }
    attrs.update(attributes)
    return {
        "attributes": attrs,
        "geometry": {
            "rings": [ring or square(6_500_000, 1_870_000, 30)],
            "spatialReference": {"wkid": 102100, "latestWkid": 3857},
        },
    }


def by_geometry(**stages: Any) -> Handler:
    """Respond by ``geometryType``: polygon=..., envelope=..., centroid=...

    A stage value may be a feature list or an exception to raise. Stages not
    listed return no features.
    """
    names = {
        "esriGeometryPolygon": "polygon",
        "esriGeometryEnvelope": "envelope",
        "esriGeometryPoint": "centroid",
    }

    def handler(params: dict[str, Any]) -> Any:
        return stages.get(names.get(params.get("geometryType", ""), ""), [])

    return handler


class FakeQueryClient:
    """Scripted stand-in for ``SpatialQueryClient``.

    Each endpoint maps to a feature list, an exception, or a callable taking
    the query params and returning either. Every call is recorded.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._routes: dict[str, Any] = {}
        self.closed = False

    def on(self, endpoint: str, response: Any) -> FakeQueryClient:
        self._routes[endpoint] = response
        return self

    def calls_to(self, endpoint: str) -> list[dict[str, Any]]:
        return [params for url, params in self.calls if url == endpoint]

    async def features(self, endpoint: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        self.calls.append((endpoint, dict(params)))
        if not endpoint:
            raise EndpointNotConfiguredError("Feature layer URL is not configured", endpoint)
        result = self._routes.get(endpoint, [])
        if callable(result):
            result = result(params)
        if isinstance(result, Exception):
            raise result
        return result

    async def query(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        return {"features": await self.features(endpoint, params)}

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**endpoint_overrides: Any) -> Settings:
    endpoints = {
        "parcel_query": PARCEL_URL,
        "jurisdiction_query": CITY_URL,
        "zoning_query": ZONING_URL,
        "assessor_query": ASSESSOR_URL,
    }
    endpoints.update(endpoint_overrides)
    return Settings(
        arcgis=ArcGISConfig(backoff_seconds=0),
        endpoints=EndpointConfig(**endpoints),
    )


@pytest.fixture
def fake_client() -> FakeQueryClient:
    return FakeQueryClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_service(fake_client, clock):
    """Factory building a service around ``fake_client`` with no config files."""

    def factory(
        registry: ProviderRegistry | None = None,
        overlay_layers=None,
        **endpoint_overrides: Any,
    ) -> PropertyLookupService:
        settings = make_settings(**endpoint_overrides)
        return PropertyLookupService(
            settings=settings,
            client=fake_client,
            caches=LookupCaches(settings.cache, clock=clock),
            registry=registry or ProviderRegistry(),
            overlay_layers=overlay_layers or [],
            clock=clock,
        )

    return factory
