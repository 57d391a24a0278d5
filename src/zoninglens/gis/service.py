"""Property lookup facade: parcel, jurisdiction, zoning, overlays, assessor.

Absence is never an exception here. A missing parcel, an unconfigured
layer or a failed query comes back as ``None``, an empty list or a
:class:`LookupNote` carrying a reason and viewer links.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from zoninglens.core.config import Settings
from zoninglens.core.request_log import RequestLogger, RequestMetrics, log_request_metrics
from zoninglens.core.types import JurisdictionSource, LogCategory
from zoninglens.gis.assessor import AssessorLookup
from zoninglens.gis.cache import CacheStats, LookupCaches, RequestCache
from zoninglens.gis.client import SpatialQueryClient
from zoninglens.gis.formatters import build_structured_sections
from zoninglens.gis.geometry import centroid
from zoninglens.gis.jurisdiction import (
    UNINCORPORATED,
    UNKNOWN,
    JurisdictionResolver,
    point_key,
)
from zoninglens.gis.lookup import AttributeLookup
from zoninglens.gis.models import (
    AssessorRecord,
    JurisdictionResult,
    LayerSpec,
    LookupNote,
    NormalizedZoning,
    OverlayHit,
    OverlayReport,
    ParcelFeature,
    Point,
    PropertyReport,
)
from zoninglens.gis.normalize import normalize_zoning
from zoninglens.gis.overlays import load_overlay_layers
from zoninglens.gis.parcels import ParcelResolver, looks_like_parcel_number, parse_parcel_number
from zoninglens.gis.providers import ProviderRegistry, QueryProvider, ViewerProvider

logger = logging.getLogger(__name__)


class PropertyLookupService:
    """Entry point for every lookup, wired from :class:`Settings`.

    Collaborators can be injected for tests; anything not given is built
    from configuration. The provider registry and overlay layers are read
    once here and never reloaded.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: SpatialQueryClient | None = None,
        caches: LookupCaches | None = None,
        registry: ProviderRegistry | None = None,
        overlay_layers: list[LayerSpec] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        endpoints = self.settings.endpoints
        sr = self.settings.arcgis.spatial_reference

        self._owns_client = client is None
        self.client = client or SpatialQueryClient(self.settings.arcgis)
        self.caches = caches or LookupCaches(self.settings.cache, clock=clock)
        self.registry = (
            registry
            if registry is not None
            else ProviderRegistry.from_config(self.settings.providers)
        )
        self.overlay_layers = (
            overlay_layers
            if overlay_layers is not None
            else load_overlay_layers(endpoints.overlay_config_path)
        )
        self._clock = clock

        self.parcels = ParcelResolver(self.client, endpoints, sr, self.caches.parcel)
        self.jurisdictions = JurisdictionResolver(
            self.client, endpoints, sr, self.caches.jurisdiction
        )
        self.attributes = AttributeLookup(self.client, sr)
        self.assessor = AssessorLookup(self.client, endpoints, self.caches.assessor)

        if not endpoints.configured():
            logger.warning("Parcel or zoning layer not configured; returning viewer links only")
        logger.info(
            "Property lookups ready: %d city provider(s), %d overlay layer(s)",
            len(self.registry),
            len(self.overlay_layers),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self.client.close()

    # -- Parcel and jurisdiction ----------------------------------------------

    async def resolve_parcel(self, identifier: str) -> ParcelFeature | None:
        """Parcel for a parcel number, or the largest parcel matching an address."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        if looks_like_parcel_number(identifier):
            return await self.parcels.resolve(identifier)
        return await self.parcels.resolve_address(identifier)

    async def search_address(
        self, address: str, city: str | None = None, limit: int = 10
    ) -> tuple[list[ParcelFeature], str | None]:
        return await self.parcels.search_by_address(address, city, limit)

    async def classify_jurisdiction(self, point: Point) -> JurisdictionResult:
        return await self.jurisdictions.classify(point)

    async def _parcel(self, identifier: str, request_cache: RequestCache) -> ParcelFeature | None:
        return await request_cache.get_or_fetch(
            f"parcel:{identifier}", lambda: self.resolve_parcel(identifier)
        )

    async def _jurisdiction(
        self, parcel: ParcelFeature, request_cache: RequestCache
    ) -> JurisdictionResult:
        point = centroid(parcel.geometry)
        if point is None:
            return JurisdictionResult(
                jurisdiction=UNKNOWN,
                source=JurisdictionSource.ERROR,
                note="Parcel geometry is unavailable",
            )
        return await request_cache.get_or_fetch(
            f"jurisdiction:{self._parcel_key(parcel)}", lambda: self.classify_jurisdiction(point)
        )

    @staticmethod
    def _parcel_key(parcel: ParcelFeature) -> str:
        """AIN, or the rounded centroid for address hits without one."""
        if parcel.ain:
            return parcel.ain
        point = centroid(parcel.geometry)
        return f"@{point_key(point)}" if point is not None else ""

    def _links(self, parcel: ParcelFeature | None = None) -> dict[str, str]:
        links = self.settings.endpoints.county_links()
        if parcel is not None and parcel.ain:
            links["assessor"] = self.settings.endpoints.assessor_link(parcel.ain)
        return links

    # -- Zoning ---------------------------------------------------------------

    async def lookup_zoning(
        self,
        identifier: str,
        request_cache: RequestCache | None = None,
        log: RequestLogger | None = None,
    ) -> NormalizedZoning | LookupNote:
        rc = request_cache if request_cache is not None else RequestCache()
        log = log or RequestLogger(logger)

        parcel = await self._parcel(identifier, rc)
        if parcel is None:
            log.info("No parcel for %r", identifier, category=LogCategory.PARCEL)
            return LookupNote(note=f"Parcel not found for {identifier!r}", links=self._links())
        if parcel.geometry is None:
            return LookupNote(note="Parcel has no geometry to query", links=self._links(parcel))

        jurisdiction = await self._jurisdiction(parcel, rc)
        log.info(
            "%s parcel %s is %s",
            jurisdiction.source,
            parcel.apn,
            jurisdiction.jurisdiction,
            category=LogCategory.JURISDICTION,
        )
        if jurisdiction.source is JurisdictionSource.CITY:
            return await self._city_zoning(parcel, jurisdiction, log)
        return await self._county_zoning(parcel, jurisdiction, log)

    async def _county_zoning(
        self, parcel: ParcelFeature, jurisdiction: JurisdictionResult, log: RequestLogger
    ) -> NormalizedZoning | LookupNote:
        links = self._links(parcel)
        name = (
            UNINCORPORATED
            if jurisdiction.source is JurisdictionSource.COUNTY
            else jurisdiction.jurisdiction
        )
        cache_key = f"{name.lower()}:{self._parcel_key(parcel)}"
        cached = self.caches.zoning.get(cache_key)
        if cached is not None:
            log.debug("Zoning cache hit for %s", parcel.apn, category=LogCategory.CACHE)
            return cached

        layer = LayerSpec(label="County zoning", url=self.settings.endpoints.zoning_query)
        match = await self.attributes.lookup(parcel.geometry, layer)
        if match is None:
            log.info("No county zoning feature for %s", parcel.apn, category=LogCategory.ZONING)
            return LookupNote(note=f"No zoning feature found for parcel {parcel.apn}", links=links)

        record = normalize_zoning(match.attributes, name)
        record = record.model_copy(update={"method": match.method, "links": links})
        log.info(
            "Zone %s via %s query", record.zone, match.method, category=LogCategory.ZONING
        )
        self.caches.zoning.set(cache_key, record)
        return record

    async def _city_zoning(
        self, parcel: ParcelFeature, jurisdiction: JurisdictionResult, log: RequestLogger
    ) -> NormalizedZoning | LookupNote:
        name = jurisdiction.jurisdiction
        provider = self.registry.resolve(name)
        links = self._links(parcel)

        if provider is None:
            log.info("No provider for %s", name, category=LogCategory.ZONING)
            return LookupNote(
                note=f"{name} regulates this parcel; check the city's own zoning map",
                links=links,
            )
        if isinstance(provider, ViewerProvider):
            return LookupNote(
                note=f"{name} zoning is available in the city's viewer",
                links={**links, "city_viewer": provider.viewer},
            )

        if provider.viewer:
            links["city_viewer"] = provider.viewer
        cache_key = f"{name.lower()}:{self._parcel_key(parcel)}"
        cached = self.caches.zoning.get(cache_key)
        if cached is not None:
            return cached

        layer = LayerSpec(
            label=f"{name} zoning", url=provider.endpoint, out_fields=provider.out_fields
        )
        match = await self.attributes.lookup(parcel.geometry, layer)
        if match is None:
            return LookupNote(note=f"No {name} zoning feature found for this parcel", links=links)

        record = normalize_zoning(
            match.attributes,
            name,
            zone_fields=provider.name_fields,
            desc_fields=provider.desc_fields,
            category_fields=provider.category_fields,
        )
        record = record.model_copy(update={"method": match.method, "links": links})
        log.info(
            "%s zone %s via %s query", name, record.zone, match.method,
            category=LogCategory.ZONING,
        )
        self.caches.zoning.set(cache_key, record)
        return record

    # -- Overlays -------------------------------------------------------------

    def overlay_layers_for(self, jurisdiction: JurisdictionResult) -> list[LayerSpec]:
        """City provider overlays when the provider lists any, else county layers."""
        if jurisdiction.source is JurisdictionSource.CITY:
            provider = self.registry.resolve(jurisdiction.jurisdiction)
            if isinstance(provider, QueryProvider) and provider.overlays:
                return provider.overlays
        return self.overlay_layers

    async def lookup_overlay_report(
        self,
        identifier: str,
        request_cache: RequestCache | None = None,
        log: RequestLogger | None = None,
    ) -> OverlayReport:
        rc = request_cache if request_cache is not None else RequestCache()
        log = log or RequestLogger(logger)

        parcel = await self._parcel(identifier, rc)
        if parcel is None or parcel.geometry is None:
            return OverlayReport()

        cached = self.caches.overlay.get(self._parcel_key(parcel))
        if cached is not None:
            return cached

        jurisdiction = await self._jurisdiction(parcel, rc)
        layers = self.overlay_layers_for(jurisdiction)
        if not layers:
            return OverlayReport()

        report = await self.attributes.lookup_overlays(parcel.geometry, layers)
        for failure in report.failures:
            log.warning(
                "Overlay %s failed: %s", failure.label, failure.error,
                category=LogCategory.OVERLAY,
            )
        log.info(
            "%d overlay hit(s) across %d layer(s)",
            len(report.hits),
            len(layers),
            category=LogCategory.OVERLAY,
        )
        if not report.failures:
            self.caches.overlay.set(self._parcel_key(parcel), report)
        return report

    async def lookup_overlays(
        self,
        identifier: str,
        request_cache: RequestCache | None = None,
        log: RequestLogger | None = None,
    ) -> list[OverlayHit]:
        report = await self.lookup_overlay_report(identifier, request_cache, log)
        return report.hits

    # -- Assessor -------------------------------------------------------------

    async def lookup_assessor(
        self,
        identifier: str,
        request_cache: RequestCache | None = None,
        log: RequestLogger | None = None,
    ) -> AssessorRecord | LookupNote:
        rc = request_cache if request_cache is not None else RequestCache()
        log = log or RequestLogger(logger)

        parcel = await self._parcel(identifier, rc)
        if parcel is None:
            links: dict[str, str] = {}
            if looks_like_parcel_number(identifier):
                digits = parse_parcel_number(identifier).digits
                links["assessor"] = self.settings.endpoints.assessor_link(digits)
            return LookupNote(note=f"Parcel not found for {identifier!r}", links=links)

        result = await self.assessor.lookup(parcel)
        if isinstance(result, LookupNote):
            log.info("Assessor: %s", result.note, category=LogCategory.ASSESSOR)
        return result

    # -- Full report ----------------------------------------------------------

    async def lookup_property(
        self,
        identifier: str,
        deadline_seconds: float | None = None,
    ) -> PropertyReport:
        """Fan out zoning, overlay and assessor lookups for one parcel.

        The three lookups share one request cache, so the parcel and its
        jurisdiction are fetched once. A failing lookup is recorded in
        ``errors`` without affecting the others. With a deadline, lookups
        still running when it passes are cancelled and listed in
        ``timed_out``; whatever finished is kept.
        """
        log = RequestLogger(logger, clock=self._clock)
        rc = RequestCache()
        hits_before, misses_before = self.caches.totals()
        report = PropertyReport(request_id=log.request_id, identifier=identifier)

        lookups = {
            "zoning": self.lookup_zoning,
            "overlays": self.lookup_overlays,
            "assessor": self.lookup_assessor,
        }
        tasks = {
            name: asyncio.create_task(self._timed(log, name, fn(identifier, rc, log)))
            for name, fn in lookups.items()
        }
        try:
            _, pending = await asyncio.wait(tasks.values(), timeout=deadline_seconds)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            for task in tasks.values():
                task.cancel()

        values: dict[str, Any] = {}
        for name, task in tasks.items():
            if task.cancelled():
                report.timed_out.append(name)
                log.warning(
                    "%s did not finish before the deadline", name, category=LogCategory.PERF
                )
                continue
            exc = task.exception()
            if exc is not None:
                report.errors[name] = str(exc) or type(exc).__name__
                continue
            values[name] = task.result()

        report.parcel = rc.peek(f"parcel:{identifier}")
        if report.parcel is not None:
            report.jurisdiction = rc.peek(f"jurisdiction:{self._parcel_key(report.parcel)}")
        report.zoning = values.get("zoning")
        report.overlays = values.get("overlays") or []
        report.assessor = values.get("assessor")
        report.facts = build_structured_sections(report.zoning, report.overlays, report.assessor)
        rc.clear()

        hits_after, misses_after = self.caches.totals()
        log_request_metrics(
            RequestMetrics(
                request_id=log.request_id,
                identifier=identifier,
                jurisdiction=report.jurisdiction.jurisdiction if report.jurisdiction else None,
                total_ms=log.elapsed_ms(),
                cache_hits=max(0, hits_after - hits_before),
                cache_misses=max(0, misses_after - misses_before),
                overlay_count=len(report.overlays) if "overlays" in values else None,
                benchmarks=log.benchmarks,
            )
        )
        return report

    @staticmethod
    async def _timed(log: RequestLogger, label: str, coro: Any) -> Any:
        async with log.timed(label):
            return await coro

    # -- Operations -----------------------------------------------------------

    def get_cache_stats(self) -> dict[str, CacheStats]:
        return self.caches.stats()

    def clear_all_caches(self) -> None:
        self.caches.clear()
        logger.info("All lookup caches cleared")
