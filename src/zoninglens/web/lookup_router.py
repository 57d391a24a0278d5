"""Property lookup API: tool endpoints, parcel and report reads, cache ops."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from zoninglens.gis.formatters import FactSummarizer
from zoninglens.gis.models import LookupNote, NormalizedZoning
from zoninglens.gis.normalize import zoning_card
from zoninglens.gis.service import PropertyLookupService
from zoninglens.web.ratelimit import rate_limited

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_ADDRESS_LENGTH = 5


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class ParcelQuery(BaseModel):
    """Parcel number and/or street address."""

    apn: str | None = None
    address: str | None = None

    def identifier(self) -> str | None:
        return (self.apn or "").strip() or (self.address or "").strip() or None


class OverlayQuery(BaseModel):
    apn: str | None = None


class AddressSearchQuery(BaseModel):
    address: str | None = None
    city: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_service(request: Request) -> PropertyLookupService:
    service = getattr(request.app.state, "lookup_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Lookup service not available")
    return service


def _require_identifier(body: ParcelQuery) -> str:
    identifier = body.identifier()
    if identifier is None:
        raise HTTPException(status_code=400, detail="Provide an address or APN")
    return identifier


def _zoning_payload(result: NormalizedZoning | LookupNote) -> dict[str, Any]:
    if isinstance(result, LookupNote):
        return {"found": False, **result.model_dump()}
    return {
        "found": True,
        "zoning": result.model_dump(mode="json"),
        "card": zoning_card(result),
    }


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/api/health")
async def health(request: Request) -> dict[str, Any]:
    service = _get_service(request)
    return {
        "ok": True,
        "status": "healthy",
        "service": "zoninglens",
        "endpoints_configured": service.settings.endpoints.configured(),
        "providers": len(service.registry),
        "overlay_layers": len(service.overlay_layers),
    }


# ---------------------------------------------------------------------------
# Tool endpoints
# ---------------------------------------------------------------------------


@router.post("/api/tools/zoning", dependencies=[rate_limited()])
async def api_zoning(body: ParcelQuery, request: Request) -> dict[str, Any]:
    """Normalized zoning for a parcel number or address."""
    service = _get_service(request)
    identifier = _require_identifier(body)
    result = await service.lookup_zoning(identifier)
    return {"ok": True, "data": _zoning_payload(result)}


@router.post("/api/tools/overlays", dependencies=[rate_limited()])
async def api_overlays(body: OverlayQuery, request: Request) -> dict[str, Any]:
    service = _get_service(request)
    apn = (body.apn or "").strip()
    if not apn:
        raise HTTPException(status_code=400, detail="Provide an APN")
    report = await service.lookup_overlay_report(apn)
    return {
        "ok": True,
        "data": {
            "overlays": [hit.model_dump(mode="json") for hit in report.hits],
            "failures": [f.model_dump() for f in report.failures],
            "count": len(report.hits),
        },
    }


@router.post("/api/tools/assessor", dependencies=[rate_limited()])
async def api_assessor(body: ParcelQuery, request: Request) -> dict[str, Any]:
    service = _get_service(request)
    identifier = _require_identifier(body)
    result = await service.lookup_assessor(identifier)
    if isinstance(result, LookupNote):
        return {"ok": True, "data": {"found": False, **result.model_dump()}}
    return {"ok": True, "data": {"found": True, "assessor": result.model_dump(mode="json")}}


@router.post("/api/tools/address-search", dependencies=[rate_limited()])
async def api_address_search(body: AddressSearchQuery, request: Request) -> dict[str, Any]:
    """Parcels whose situs address contains the given text."""
    service = _get_service(request)
    address = (body.address or "").strip()
    if len(address) < MIN_ADDRESS_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Please provide an address (at least {MIN_ADDRESS_LENGTH} characters)",
        )
    city = (body.city or "").strip() or None
    results, note = await service.search_address(address, city)
    return {
        "ok": True,
        "results": [
            p.model_dump(mode="json", exclude={"geometry", "attributes"}) for p in results
        ],
        "note": note,
        "count": len(results),
    }


# ---------------------------------------------------------------------------
# Parcel and full report
# ---------------------------------------------------------------------------


@router.get("/api/parcels/{identifier}", dependencies=[rate_limited()])
async def api_get_parcel(identifier: str, request: Request) -> dict[str, Any]:
    service = _get_service(request)
    parcel = await service.resolve_parcel(identifier)
    if parcel is None:
        raise HTTPException(status_code=404, detail=f"Parcel {identifier!r} not found")
    return {"ok": True, "parcel": parcel.model_dump(mode="json")}


@router.get("/api/property/{identifier}", dependencies=[rate_limited()])
async def api_property_report(
    identifier: str, request: Request, deadline: float | None = None
) -> dict[str, Any]:
    """Full fan-out report, plus a prose summary when a summarizer is installed."""
    service = _get_service(request)
    report = await service.lookup_property(identifier, deadline_seconds=deadline)
    payload: dict[str, Any] = {"ok": True, "report": report.model_dump(mode="json")}

    summarizer: FactSummarizer | None = getattr(request.app.state, "summarizer", None)
    if summarizer is not None and report.facts:
        try:
            payload["summary"] = await summarizer.summarize(report.facts)
        except Exception as exc:
            logger.error("Summarizer failed for %s: %s", report.request_id, exc)
            payload["summary_error"] = str(exc) or type(exc).__name__
    return payload


# ---------------------------------------------------------------------------
# Cache operations
# ---------------------------------------------------------------------------


@router.get("/api/cache/stats")
async def api_cache_stats(request: Request) -> dict[str, Any]:
    service = _get_service(request)
    stats = service.get_cache_stats()
    return {"ok": True, "caches": {name: s.model_dump() for name, s in stats.items()}}


@router.delete("/api/cache")
async def api_clear_cache(request: Request) -> dict[str, Any]:
    service = _get_service(request)
    service.clear_all_caches()
    return {"ok": True, "cleared": True}
