"""Classify which government regulates a location."""

from __future__ import annotations

import logging

from zoninglens.core.config import EndpointConfig
from zoninglens.core.types import JurisdictionSource
from zoninglens.gis.cache import TTLCache
from zoninglens.gis.client import SpatialQueryClient
from zoninglens.gis.errors import SpatialQueryError
from zoninglens.gis.models import DEFAULT_WKID, JurisdictionResult, Point

logger = logging.getLogger(__name__)

UNINCORPORATED = "Unincorporated"
UNKNOWN = "Unknown"


def point_key(point: Point) -> str:
    """Cache key: coordinates rounded to whole units of the spatial reference."""
    return f"{round(point.x)},{round(point.y)}"


class JurisdictionResolver:
    """Point-in-boundary test against the city boundary layer.

    Land outside every city boundary is county-governed. A failed query is
    reported as ``JurisdictionSource.ERROR``, never as county.
    """

    def __init__(
        self,
        client: SpatialQueryClient,
        endpoints: EndpointConfig,
        spatial_reference: int = DEFAULT_WKID,
        cache: TTLCache[JurisdictionResult] | None = None,
    ) -> None:
        self._client = client
        self._endpoints = endpoints
        self._sr = spatial_reference
        self._cache = cache

    async def classify(self, point: Point) -> JurisdictionResult:
        key = point_key(point)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        params = {
            "geometry": point.to_esri(self._sr),
            "geometryType": "esriGeometryPoint",
            "inSR": self._sr,
            "spatialRel": "esriSpatialRelIntersects",
            "outFields": "*",
            "returnGeometry": False,
        }
        try:
            features = await self._client.features(self._endpoints.jurisdiction_query, params)
        except SpatialQueryError as exc:
            logger.warning("Jurisdiction query at %s failed: %s", key, exc)
            return JurisdictionResult(
                jurisdiction=UNKNOWN,
                source=JurisdictionSource.ERROR,
                note=f"Could not determine jurisdiction: {exc}",
            )

        result = self._classify_features(features)
        logger.info("Location %s is %s (%s)", key, result.jurisdiction, result.source)
        if self._cache is not None and result.source is not JurisdictionSource.ERROR:
            self._cache.set(key, result)
        return result

    def _classify_features(self, features: list[dict]) -> JurisdictionResult:
        if not features:
            return JurisdictionResult(jurisdiction=UNINCORPORATED, source=JurisdictionSource.COUNTY)

        first = features[0]
        attrs = first.get("attributes") if isinstance(first, dict) else None
        if not isinstance(attrs, dict):
            return JurisdictionResult(
                jurisdiction=UNKNOWN,
                source=JurisdictionSource.ERROR,
                note="Boundary feature has no attributes",
            )
        name = str(attrs.get(self._endpoints.name_field) or "").strip()
        kind = str(attrs.get(self._endpoints.type_field) or "").strip().lower()
        if kind == "city":
            return JurisdictionResult(
                jurisdiction=name or UNKNOWN,
                source=JurisdictionSource.CITY,
                raw=attrs,
            )
        # Unincorporated communities carry their own name; governance is still county.
        return JurisdictionResult(
            jurisdiction=UNINCORPORATED,
            source=JurisdictionSource.COUNTY,
            raw=attrs,
            note=f"Unincorporated community: {name}" if name else None,
        )
