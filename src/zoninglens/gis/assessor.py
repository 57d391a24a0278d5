"""Tax-assessor attributes for a parcel."""

from __future__ import annotations

import logging
import math
from typing import Any

from zoninglens.core.config import EndpointConfig
from zoninglens.gis.cache import TTLCache
from zoninglens.gis.client import SpatialQueryClient
from zoninglens.gis.errors import SpatialQueryError
from zoninglens.gis.models import AssessorRecord, LookupNote, ParcelFeature
from zoninglens.gis.normalize import find_field
from zoninglens.gis.parcels import parcel_where, parse_parcel_number

logger = logging.getLogger(__name__)

SITUS_FIELDS = ("SITUS", "SitusAddress", "SitusFullAddress", "Address", "SITUS_ADDR")
USE_CODE_FIELDS = ("UseCode", "LandUse", "USE_CODE", "UseType")
USE_DESC_FIELDS = ("UseDescription", "UseDesc", "USE_DESC", "UseType")
LAND_SQFT_FIELDS = ("LotArea", "LandSQFT", "LAND_SQFT", "LotSqFt")
LIVING_AREA_FIELDS = ("LivingArea", "SqFt", "SQFTmain", "BLDG_SQFT")
YEAR_BUILT_FIELDS = ("YearBuilt", "YrBuilt", "YearBuilt1", "YEAR_BUILT")
BEDROOM_FIELDS = ("Bedrooms", "Bedrooms1", "BEDROOMS")
UNIT_FIELDS = ("Units", "Units1", "UNITS")
LAND_VALUE_FIELDS = ("LandValue", "Roll_LandValue", "LAND_VALUE")
IMPROVEMENT_VALUE_FIELDS = ("ImpValue", "ImprovementValue", "Roll_ImpValue", "IMP_VALUE")


def to_number(value: Any) -> float | None:
    """Coerce to a finite float; anything else is absent."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_int(value: Any) -> int | None:
    number = to_number(value)
    return int(number) if number is not None else None


def assessor_record(
    parcel: ParcelFeature, attrs: dict[str, Any], links: dict[str, str]
) -> AssessorRecord:
    return AssessorRecord(
        ain=parcel.ain,
        apn=parcel.apn,
        situs_address=find_field(attrs, SITUS_FIELDS) or parcel.situs_address,
        use_code=find_field(attrs, USE_CODE_FIELDS),
        use_description=find_field(attrs, USE_DESC_FIELDS),
        land_sqft=to_number(find_field(attrs, LAND_SQFT_FIELDS)),
        living_area_sqft=to_number(find_field(attrs, LIVING_AREA_FIELDS)),
        year_built=to_int(find_field(attrs, YEAR_BUILT_FIELDS)),
        bedrooms=to_int(find_field(attrs, BEDROOM_FIELDS)),
        units=to_int(find_field(attrs, UNIT_FIELDS)),
        land_value=to_number(find_field(attrs, LAND_VALUE_FIELDS)),
        improvement_value=to_number(find_field(attrs, IMPROVEMENT_VALUE_FIELDS)),
        raw=attrs,
        links=links,
    )


class AssessorLookup:
    """Attribute (where-clause) query against the assessor layer."""

    def __init__(
        self,
        client: SpatialQueryClient,
        endpoints: EndpointConfig,
        cache: TTLCache[AssessorRecord] | None = None,
    ) -> None:
        self._client = client
        self._endpoints = endpoints
        self._cache = cache

    async def lookup(self, parcel: ParcelFeature) -> AssessorRecord | LookupNote:
        links = {"assessor": self._endpoints.assessor_link(parcel.ain)}
        if not self._endpoints.assessor_query:
            return LookupNote(note="Assessor layer is not configured", links=links)
        if not parcel.ain:
            return LookupNote(note="Parcel has no assessor identification number", links={})

        if self._cache is not None:
            cached = self._cache.get(parcel.ain)
            if cached is not None:
                return cached

        number = parse_parcel_number(parcel.ain)
        params = {
            "where": parcel_where(number, self._endpoints.ain_field, self._endpoints.apn_field),
            "outFields": "*",
            "returnGeometry": False,
        }
        try:
            features = await self._client.features(self._endpoints.assessor_query, params)
        except SpatialQueryError as exc:
            logger.warning("Assessor query for %s failed: %s", number.dashed, exc)
            return LookupNote(note=f"Assessor lookup failed: {exc}", links=links)

        if not features:
            return LookupNote(note=f"No assessor record for {number.dashed}", links=links)

        attrs = features[0].get("attributes")
        record = assessor_record(parcel, attrs if isinstance(attrs, dict) else {}, links)
        if self._cache is not None:
            self._cache.set(parcel.ain, record)
        return record
