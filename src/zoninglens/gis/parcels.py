"""Parcel resolution: identifier or address to one canonical parcel feature."""

from __future__ import annotations

import logging
import re
from typing import Any

from zoninglens.core.config import EndpointConfig
from zoninglens.gis.cache import TTLCache
from zoninglens.gis.client import SpatialQueryClient
from zoninglens.gis.errors import InvalidParcelNumberError, SpatialQueryError
from zoninglens.gis.geometry import area
from zoninglens.gis.models import DEFAULT_WKID, ParcelFeature, ParcelNumber, Polygon

logger = logging.getLogger(__name__)

_PARCEL_NUMBER_RE = re.compile(r"^\s*\d{4}[-\s]?\d{3}[-\s]?\d{3}\s*$")


def parse_parcel_number(identifier: str) -> ParcelNumber:
    """Normalize a parcel number to its digits-only and dashed forms.

    Any separators are accepted as long as exactly ten digits remain.
    """
    digits = re.sub(r"\D", "", identifier or "")
    if len(digits) != 10:
        raise InvalidParcelNumberError(
            f"Parcel number must contain 10 digits, got {identifier!r}"
        )
    return ParcelNumber(digits=digits, dashed=f"{digits[:4]}-{digits[4:7]}-{digits[7:]}")


def looks_like_parcel_number(identifier: str) -> bool:
    return bool(_PARCEL_NUMBER_RE.match(identifier or ""))


def escape_literal(value: str) -> str:
    """Escape single quotes for a where-clause string literal."""
    return value.replace("'", "''")


def parcel_where(number: ParcelNumber, ain_field: str, apn_field: str) -> str:
    """Match either identifier field against either surface form."""
    fields = [ain_field] if ain_field == apn_field else [ain_field, apn_field]
    clauses = [
        f"{field}='{form}'" for field in fields for form in (number.digits, number.dashed)
    ]
    return " OR ".join(clauses)


def select_largest(features: list[ParcelFeature]) -> ParcelFeature | None:
    """Feature with the largest approximate area; first seen wins ties."""
    best: ParcelFeature | None = None
    best_area = -1.0
    for feature in features:
        feature_area = area(feature.geometry)
        size = feature_area if feature_area is not None else -1.0
        if best is None or size > best_area:
            best = feature
            best_area = size
    return best


class ParcelResolver:
    """Looks parcels up on the county parcel layer.

    Query failures are logged and reported as "not found" (``None``).
    """

    def __init__(
        self,
        client: SpatialQueryClient,
        endpoints: EndpointConfig,
        spatial_reference: int = DEFAULT_WKID,
        cache: TTLCache[ParcelFeature] | None = None,
    ) -> None:
        self._client = client
        self._endpoints = endpoints
        self._sr = spatial_reference
        self._cache = cache

    @property
    def out_fields(self) -> list[str]:
        ep = self._endpoints
        return [
            ep.ain_field,
            ep.apn_field,
            ep.situs_address_field,
            ep.situs_city_field,
            ep.situs_zip_field,
        ]

    async def resolve(self, identifier: str) -> ParcelFeature | None:
        try:
            number = parse_parcel_number(identifier)
        except InvalidParcelNumberError as exc:
            logger.info("Not a parcel number: %s", exc)
            return None

        if self._cache is not None:
            cached = self._cache.get(number.digits)
            if cached is not None:
                logger.debug("Parcel cache hit for %s", number.digits)
                return cached

        params = {
            "where": parcel_where(number, self._endpoints.ain_field, self._endpoints.apn_field),
            "outFields": ",".join(self.out_fields),
            "returnGeometry": True,
            "outSR": self._sr,
        }
        try:
            raw_features = await self._client.features(self._endpoints.parcel_query, params)
        except SpatialQueryError as exc:
            logger.warning("Parcel query for %s failed: %s", number.dashed, exc)
            return None

        candidates = [self._to_feature(raw, number) for raw in raw_features]
        parcel = select_largest(candidates)
        if parcel is None:
            logger.info("No parcel matched %s", number.dashed)
            return None
        if len(candidates) > 1:
            logger.info(
                "Parcel %s matched %d features; kept the largest", number.dashed, len(candidates)
            )
        if self._cache is not None:
            self._cache.set(number.digits, parcel)
        return parcel

    async def search_by_address(
        self,
        address: str,
        city: str | None = None,
        limit: int = 10,
    ) -> tuple[list[ParcelFeature], str | None]:
        """Case-insensitive partial match on the situs address.

        Returns the candidates and an optional note explaining an empty result.
        """
        cleaned = " ".join((address or "").split())
        if not cleaned:
            return [], "No address given"
        if not self._endpoints.parcel_query:
            return [], "Parcel search is not configured"

        ep = self._endpoints
        where = f"UPPER({ep.situs_address_field}) LIKE UPPER('%{escape_literal(cleaned)}%')"
        if city:
            where += f" AND UPPER({ep.situs_city_field}) = UPPER('{escape_literal(city.strip())}')"
        params = {
            "where": where,
            "outFields": ",".join(self.out_fields),
            "returnGeometry": True,
            "outSR": self._sr,
            "resultRecordCount": limit,
        }
        try:
            raw_features = await self._client.features(ep.parcel_query, params)
        except SpatialQueryError as exc:
            logger.warning("Address search for %r failed: %s", cleaned, exc)
            return [], f"Address search failed: {exc}"

        results = [self._to_feature(raw, None) for raw in raw_features[:limit]]
        if not results:
            return [], f"No parcels matched {cleaned!r}"
        return results, None

    async def resolve_address(self, address: str, city: str | None = None) -> ParcelFeature | None:
        results, _ = await self.search_by_address(address, city)
        return select_largest(results)

    def _to_feature(self, raw: dict[str, Any], fallback: ParcelNumber | None) -> ParcelFeature:
        ep = self._endpoints
        attrs = raw.get("attributes")
        if not isinstance(attrs, dict):
            attrs = {}
        number = fallback
        for field in (ep.ain_field, ep.apn_field):
            value = attrs.get(field)
            if value in (None, ""):
                continue
            try:
                number = parse_parcel_number(str(value))
                break
            except InvalidParcelNumberError:
                continue

        return ParcelFeature(
            ain=number.digits if number else "",
            apn=number.dashed if number else "",
            situs_address=_text(attrs.get(ep.situs_address_field)),
            situs_city=_text(attrs.get(ep.situs_city_field)),
            situs_zip=_text(attrs.get(ep.situs_zip_field)),
            geometry=Polygon.from_esri(raw.get("geometry"), self._sr),
            attributes=attrs,
        )


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
