"""Attribute queries that trade geometric fidelity for reliability.

Public feature services often reject full parcel polygons (too many
vertices, payload too large). A lookup therefore tries the simplified
polygon first, then the parcel's envelope, then its centroid, and stops at
the first stage that returns a feature.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from zoninglens.core.types import LookupMethod
from zoninglens.gis.client import SpatialQueryClient
from zoninglens.gis.errors import EndpointNotConfiguredError, SpatialQueryError
from zoninglens.gis.geometry import centroid, envelope, simplify
from zoninglens.gis.models import (
    DEFAULT_WKID,
    AttributeMatch,
    LayerSpec,
    OverlayFailure,
    OverlayHit,
    OverlayReport,
    Polygon,
)
from zoninglens.gis.normalize import find_field

logger = logging.getLogger(__name__)

ZONING_STAGES = (LookupMethod.POLYGON, LookupMethod.ENVELOPE, LookupMethod.CENTROID)
OVERLAY_STAGES = (LookupMethod.ENVELOPE, LookupMethod.CENTROID)

OVERLAY_NAME_FIELDS = ("NAME", "Name", "LABEL", "TITLE", "DISTRICT", "DIST_NAME", "TYPE")
OVERLAY_DESC_FIELDS = ("DESCRIPTION", "DESC", "DETAILS", "STATUS", "CATEGORY")

_GEOMETRY_TYPES = {
    LookupMethod.POLYGON: "esriGeometryPolygon",
    LookupMethod.ENVELOPE: "esriGeometryEnvelope",
    LookupMethod.CENTROID: "esriGeometryPoint",
}


@dataclass
class CascadeOutcome:
    match: AttributeMatch | None = None
    attempts: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.attempts > 0 and len(self.errors) == self.attempts


def overlay_summary(layer: LayerSpec, attributes: dict[str, Any]) -> str:
    """One line naming the overlay feature, e.g. ``Hillside: HMA - Hillside Management``."""
    name = find_field(attributes, (*layer.name_fields, *OVERLAY_NAME_FIELDS))
    desc = find_field(attributes, (*layer.desc_fields, *OVERLAY_DESC_FIELDS))
    parts = [p for p in (name, desc) if p]
    if desc and name and desc.lower() == name.lower():
        parts = [name]
    if not parts:
        return layer.label
    return f"{layer.label}: {' - '.join(parts)}"


class AttributeLookup:
    """Runs the polygon, envelope, centroid cascade against feature layers."""

    def __init__(
        self,
        client: SpatialQueryClient,
        spatial_reference: int = DEFAULT_WKID,
        precision: float = 1.0,
    ) -> None:
        self._client = client
        self._sr = spatial_reference
        self._precision = precision

    def geometry_params(self, polygon: Polygon, method: LookupMethod) -> dict[str, Any] | None:
        """Spatial filter for one stage, or ``None`` if the polygon is degenerate."""
        if method is LookupMethod.POLYGON:
            simplified = simplify(polygon, self._precision)
            if envelope(simplified) is None:
                return None
            geometry = simplified.to_esri()
        elif method is LookupMethod.ENVELOPE:
            env = envelope(polygon)
            if env is None:
                return None
            geometry = env.to_esri(self._sr)
        else:
            point = centroid(polygon)
            if point is None:
                return None
            geometry = point.to_esri(self._sr)

        return {
            "geometry": geometry,
            "geometryType": _GEOMETRY_TYPES[method],
            "inSR": self._sr,
            "spatialRel": "esriSpatialRelIntersects",
        }

    async def cascade(
        self,
        polygon: Polygon,
        layer: LayerSpec,
        stages: Sequence[LookupMethod] = ZONING_STAGES,
    ) -> CascadeOutcome:
        """Try each stage in turn, stopping at the first that returns features."""
        outcome = CascadeOutcome()
        for method in stages:
            params = self.geometry_params(polygon, method)
            if params is None:
                logger.debug("Skipping %s stage for %s: degenerate geometry", method, layer.label)
                continue
            outcome.attempts += 1
            params.update(outFields=",".join(layer.out_fields), returnGeometry=False)
            try:
                features = await self._client.features(layer.url, params)
            except EndpointNotConfiguredError as exc:
                logger.warning("%s layer is not configured", layer.label or "Unnamed")
                outcome.errors.append(str(exc))
                break
            except SpatialQueryError as exc:
                logger.info("%s stage failed for %s: %s", method, layer.label, exc)
                outcome.errors.append(f"{method}: {exc}")
                continue

            if features:
                logger.debug(
                    "%s matched %d feature(s) at %s stage", layer.label, len(features), method
                )
                outcome.match = AttributeMatch(method=method, features=features)
                return outcome
            logger.debug("%s stage found nothing for %s", method, layer.label)
        return outcome

    async def lookup(
        self,
        polygon: Polygon,
        layer: LayerSpec,
        stages: Sequence[LookupMethod] = ZONING_STAGES,
    ) -> AttributeMatch | None:
        """First match across ``stages``; ``None`` means no feature was found."""
        outcome = await self.cascade(polygon, layer, stages)
        return outcome.match

    async def lookup_overlays(
        self,
        polygon: Polygon,
        layers: Sequence[LayerSpec],
    ) -> OverlayReport:
        """Check every overlay layer independently.

        A layer whose every stage errored is reported under ``failures``;
        the other layers are unaffected.
        """
        results = await asyncio.gather(
            *(self._overlay_layer(polygon, layer) for layer in layers)
        )
        report = OverlayReport()
        for hits, failure in results:
            report.hits.extend(hits)
            if failure is not None:
                report.failures.append(failure)
        return report

    async def _overlay_layer(
        self, polygon: Polygon, layer: LayerSpec
    ) -> tuple[list[OverlayHit], OverlayFailure | None]:
        outcome = await self.cascade(polygon, layer, OVERLAY_STAGES)
        match = outcome.match
        if match is None:
            if outcome.all_failed:
                return [], OverlayFailure(label=layer.label, error=outcome.errors[-1])
            return [], None

        hits = []
        for feature in match.features:
            attrs = feature.get("attributes")
            if not isinstance(attrs, dict):
                attrs = {}
            hits.append(
                OverlayHit(
                    label=layer.label,
                    layer_id=layer.layer_id,
                    attributes=attrs,
                    summary=overlay_summary(layer, attrs),
                    method=match.method,
                )
            )
        return hits, None
