"""Render lookup results as ``KEY: value`` fact blocks for a summarizer."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from zoninglens.gis.models import AssessorRecord, LookupNote, NormalizedZoning, OverlayHit
from zoninglens.gis.normalize import is_valid_value, zoning_card


@runtime_checkable
class FactSummarizer(Protocol):
    """Turns structured facts into prose. Implemented outside this package."""

    async def summarize(self, facts: str) -> str: ...


_CARD_LABELS = {
    "jurisdiction": "JURISDICTION",
    "zone": "ZONE",
    "zone_description": "ZONE DESCRIPTION",
    "general_plan": "GENERAL PLAN",
    "general_plan_description": "GENERAL PLAN DESCRIPTION",
    "community_plan_area": "COMMUNITY/PLANNING AREA",
    "specific_plan": "SPECIFIC PLAN",
}


def format_zoning_for_context(zoning: NormalizedZoning) -> str:
    """Only meaningful fields; descriptions equal to their code are left out."""
    card = zoning_card(zoning)
    return "\n".join(f"{_CARD_LABELS[key]}: {value}" for key, value in card.items())


def _note_lines(note: LookupNote) -> list[str]:
    lines = [f"NOTE: {note.note}"]
    lines.extend(f"LINK_{name.upper()}: {url}" for name, url in note.links.items())
    return lines


def render_zoning_section(zoning: NormalizedZoning | LookupNote | None) -> str:
    if zoning is None:
        return ""
    if isinstance(zoning, LookupNote):
        return "\n".join(["Zoning:", *_note_lines(zoning)])
    lines = ["Zoning:", format_zoning_for_context(zoning)]
    if zoning.method:
        lines.append(f"LOOKUP_METHOD: {zoning.method}")
    return "\n".join(lines)


def render_overlays_section(overlays: Sequence[OverlayHit] | None) -> str:
    if not overlays:
        return "Overlays:\nNONE_FOUND: true"

    lines = ["Overlays:"]
    for n, hit in enumerate(overlays, start=1):
        lines.append(f"OVERLAY_{n}_PROGRAM: {hit.label}")
        lines.append(f"OVERLAY_{n}_NAME: {hit.summary}")
        if hit.layer_id is not None:
            lines.append(f"OVERLAY_{n}_LAYER: {hit.layer_id}")
        lines.append("")
    return "\n".join(lines).rstrip()


def render_assessor_section(assessor: AssessorRecord | LookupNote | None) -> str:
    if assessor is None:
        return ""
    if isinstance(assessor, LookupNote):
        return "\n".join(["Assessor:", *_note_lines(assessor)])

    fields = [
        ("AIN", assessor.ain),
        ("APN", assessor.apn),
        ("ADDRESS", assessor.situs_address),
        ("USE_CODE", assessor.use_code),
        ("USE_DESC", assessor.use_description),
        ("LAND_SQFT", assessor.land_sqft),
        ("LIVING_AREA_SQFT", assessor.living_area_sqft),
        ("YEAR_BUILT", assessor.year_built),
        ("BEDROOMS", assessor.bedrooms),
        ("UNITS", assessor.units),
        ("LAND_VALUE", assessor.land_value),
        ("IMPROVEMENT_VALUE", assessor.improvement_value),
    ]
    lines = ["Assessor:"]
    for key, value in fields:
        if is_valid_value(value):
            if isinstance(value, float) and value.is_integer():
                value = int(value)
            lines.append(f"{key}: {value}")
    return "\n".join(lines)


def build_structured_sections(
    zoning: NormalizedZoning | LookupNote | None = None,
    overlays: Sequence[OverlayHit] | None = None,
    assessor: AssessorRecord | LookupNote | None = None,
) -> str:
    """Zoning, overlays and assessor blocks separated by blank lines.

    The overlay block is always present so an empty result reads as
    ``NONE_FOUND: true`` rather than as missing data.
    """
    blocks = [
        render_zoning_section(zoning),
        render_overlays_section(overlays),
        render_assessor_section(assessor),
    ]
    return "\n\n".join(b for b in blocks if b)
