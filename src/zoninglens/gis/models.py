"""GIS data models."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from zoninglens.core.types import JurisdictionSource, LookupMethod

DEFAULT_WKID = 102100


def split_fields(value: Any) -> Any:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class Point(BaseModel):
    """A 2-D point in the service's planar spatial reference."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def to_esri(self, wkid: int = DEFAULT_WKID) -> dict[str, Any]:
        return {"x": self.x, "y": self.y, "spatialReference": {"wkid": wkid}}


class Envelope(BaseModel):
    """Axis-aligned bounding box."""

    model_config = ConfigDict(frozen=True)

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def to_esri(self, wkid: int = DEFAULT_WKID) -> dict[str, Any]:
        return {
            "xmin": self.xmin,
            "ymin": self.ymin,
            "xmax": self.xmax,
            "ymax": self.ymax,
            "spatialReference": {"wkid": wkid},
        }


class Polygon(BaseModel):
    """Polygon as one or more rings of (x, y) points."""

    rings: list[list[tuple[float, float]]] = Field(default_factory=list)
    spatial_reference: int = DEFAULT_WKID

    def to_esri(self) -> dict[str, Any]:
        return {
            "rings": [[[x, y] for x, y in ring] for ring in self.rings],
            "spatialReference": {"wkid": self.spatial_reference},
        }

    @classmethod
    def from_esri(
        cls, geometry: dict[str, Any] | None, default_wkid: int = DEFAULT_WKID
    ) -> Polygon | None:
        """Parse an Esri JSON polygon. Malformed points are skipped."""
        if not isinstance(geometry, dict):
            return None
        raw_rings = geometry.get("rings")
        if not isinstance(raw_rings, list):
            return None

        rings: list[list[tuple[float, float]]] = []
        for raw_ring in raw_rings:
            if not isinstance(raw_ring, list):
                continue
            ring: list[tuple[float, float]] = []
            for pt in raw_ring:
                if not isinstance(pt, (list, tuple)) or len(pt) < 2:
                    continue
                try:
                    ring.append((float(pt[0]), float(pt[1])))
                except (TypeError, ValueError):
                    continue
            if ring:
                rings.append(ring)
        if not rings:
            return None

        sr = geometry.get("spatialReference") or {}
        wkid = sr.get("latestWkid") or sr.get("wkid") or default_wkid
        return cls(rings=rings, spatial_reference=int(wkid))


class ParcelNumber(BaseModel):
    """The two interchangeable surface forms of a parcel number."""

    model_config = ConfigDict(frozen=True)

    digits: str
    dashed: str


class ParcelFeature(BaseModel):
    """One canonical parcel: identifier forms, situs, and geometry."""

    ain: str
    apn: str
    situs_address: str | None = None
    situs_city: str | None = None
    situs_zip: str | None = None
    geometry: Polygon | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class JurisdictionResult(BaseModel):
    """Which government regulates a location."""

    jurisdiction: str = "Unknown"
    source: JurisdictionSource
    raw: dict[str, Any] = Field(default_factory=dict)
    note: str | None = None


class LayerSpec(BaseModel):
    """A queryable feature layer and the fields worth reading from it."""

    model_config = ConfigDict(populate_by_name=True)

    label: str = ""
    url: str = Field(validation_alias=AliasChoices("url", "endpoint"))
    layer_id: int | str | None = Field(
        default=None, validation_alias=AliasChoices("layer_id", "layerId")
    )
    out_fields: list[str] = Field(
        default_factory=lambda: ["*"],
        validation_alias=AliasChoices("out_fields", "outFields"),
    )
    name_fields: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("name_fields", "nameFields")
    )
    desc_fields: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("desc_fields", "descFields")
    )

    @field_validator("out_fields", "name_fields", "desc_fields", mode="before")
    @classmethod
    def split_csv(cls, value: Any) -> Any:
        return split_fields(value)


class AttributeMatch(BaseModel):
    """Features returned by the first geometry stage that matched."""

    method: LookupMethod
    features: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def attributes(self) -> dict[str, Any]:
        if not self.features:
            return {}
        attrs = self.features[0].get("attributes")
        return attrs if isinstance(attrs, dict) else {}


class LookupNote(BaseModel):
    """A "no data" outcome with a human-readable reason and viewer links."""

    note: str
    links: dict[str, str] = Field(default_factory=dict)


class NormalizedZoning(BaseModel):
    """Zoning attributes reconciled into one shape for every jurisdiction."""

    jurisdiction: str
    zone: str
    zone_description: str
    general_plan: str | None = None
    general_plan_description: str | None = None
    community_plan_area: str | None = None
    specific_plan: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
    method: LookupMethod | None = None
    links: dict[str, str] = Field(default_factory=dict)


class OverlayHit(BaseModel):
    """One overlay feature intersecting the parcel."""

    label: str
    layer_id: int | str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    summary: str
    method: LookupMethod | None = None


class OverlayFailure(BaseModel):
    label: str
    error: str


class OverlayReport(BaseModel):
    """Hits across all overlay layers plus the layers that failed."""

    hits: list[OverlayHit] = Field(default_factory=list)
    failures: list[OverlayFailure] = Field(default_factory=list)


class AssessorRecord(BaseModel):
    """Tax-assessor attributes for one parcel."""

    ain: str
    apn: str
    situs_address: str | None = None
    use_code: str | None = None
    use_description: str | None = None
    land_sqft: float | None = None
    living_area_sqft: float | None = None
    year_built: int | None = None
    bedrooms: int | None = None
    units: int | None = None
    land_value: float | None = None
    improvement_value: float | None = None
    raw: dict[str, Any] = Field(default_factory=dict)
    links: dict[str, str] = Field(default_factory=dict)


class PropertyReport(BaseModel):
    """Everything known about a parcel after one fan-out lookup."""

    request_id: str
    identifier: str
    parcel: ParcelFeature | None = None
    jurisdiction: JurisdictionResult | None = None
    zoning: NormalizedZoning | LookupNote | None = None
    overlays: list[OverlayHit] = Field(default_factory=list)
    assessor: AssessorRecord | LookupNote | None = None
    errors: dict[str, str] = Field(default_factory=dict)
    timed_out: list[str] = Field(default_factory=list)
    facts: str = ""
