"""Reconcile per-jurisdiction zoning schemas into one canonical record.

Jurisdictions disagree on field names, and in one case on meaning: a
``CATEGORY`` field holds a human description ("Single Family Residential")
in the City of Los Angeles but a zone-code shorthand ("R-1") in the
unincorporated county. What each profile does with that field lives in
``PROFILE_RULES``; add a jurisdiction by adding a row there.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from zoninglens.core.types import JurisdictionProfile
from zoninglens.gis.models import NormalizedZoning
from zoninglens.gis.providers import normalize_jurisdiction_name

UNKNOWN = "Unknown"

ZONE_CODE_FIELDS = (
    "ZONE_CODE", "ZONE", "ZONE_SYMBOL", "ZONE_", "ZONING",
    "ZoneCode", "Zone", "PLAN_LEG_ZONE", "Z_CODE", "ZONECODE",
    "zone_code", "zone", "zoning",
)

# CATEGORY is deliberately absent; see PROFILE_RULES.
ZONE_DESC_FIELDS = (
    "ZONE_DESC", "ZONE_DESCRIPTION", "DESCRIPTIO", "DESCRIPTION",
    "Z_DESC", "ZoneDesc", "ZoneDescription", "ZONE_NAME",
    "zone_desc", "zone_description", "description",
)

GENERAL_PLAN_FIELDS = (
    "GEN_PLAN", "GENERAL_PLAN", "GP_DESIG", "GPLU", "GeneralPlan",
    "LAND_USE", "LandUse", "GP", "gen_plan", "general_plan",
)

GENERAL_PLAN_DESC_FIELDS = (
    "GEN_PLAN_DESC", "GP_DESC", "GPLU_DESC", "GeneralPlanDesc",
    "LAND_USE_DESC", "LandUseDesc", "GEN_PLAN_DESCRIPTION",
    "GENERAL_PLAN_DESC", "gen_plan_desc", "gp_desc",
)

COMMUNITY_PLAN_FIELDS = (
    "CPA", "COMMUNITY_PLAN", "PLANNINGAREA", "PLANNING_AREA",
    "CommunityPlan", "PlanArea", "PLAN_AREA", "CP_NAME",
    "PLNG_AREA", "COMM_PLAN", "COMM_NAME", "AREA_NAME",
    "cpa", "community_plan", "planning_area",
)

SPECIFIC_PLAN_FIELDS = (
    "SPECIFIC_PLAN", "SPEC_PLAN", "SPA_NAME", "SpecificPlan",
    "SP_NAME", "PLAN_NAME", "SPECIFICPLAN", "SPA_NM",
    "specific_plan", "spec_plan",
)

CATEGORY_FIELDS = (
    "CATEGORY", "Z_CATEGORY", "ZONE_CATEGORY", "Category",
    "category", "zone_category",
)

GEN_CODE_FIELDS = ("GEN_CODE", "GenCode", "GENCODE", "gen_code")

PLACEHOLDERS = frozenset({"", "null", "none", "n/a", "unknown", "undefined", "-"})


class CategoryRole(StrEnum):
    """What a jurisdiction's CATEGORY value means."""

    DESCRIPTION = "description"
    # Zone-code shorthand that duplicates ZONE; never shown.
    SHORTHAND = "shorthand"


@dataclass(frozen=True)
class ProfileRules:
    category_role: CategoryRole
    # Tried after the generic description fields, before CATEGORY.
    extra_desc_fields: tuple[str, ...] = ()


PROFILE_RULES: dict[JurisdictionProfile, ProfileRules] = {
    JurisdictionProfile.LOS_ANGELES: ProfileRules(CategoryRole.DESCRIPTION),
    JurisdictionProfile.PASADENA: ProfileRules(
        CategoryRole.DESCRIPTION, extra_desc_fields=GEN_CODE_FIELDS
    ),
    JurisdictionProfile.UNINCORPORATED: ProfileRules(CategoryRole.SHORTHAND),
    JurisdictionProfile.OTHER: ProfileRules(CategoryRole.DESCRIPTION),
}


def detect_profile(jurisdiction: str) -> JurisdictionProfile:
    norm = normalize_jurisdiction_name(jurisdiction)
    if "los angeles" in norm:
        return JurisdictionProfile.LOS_ANGELES
    if "pasadena" in norm:
        return JurisdictionProfile.PASADENA
    if "unincorporated" in norm or norm in ("unknown", ""):
        return JurisdictionProfile.UNINCORPORATED
    return JurisdictionProfile.OTHER


def is_valid_value(value: Any) -> bool:
    """True for strings and numbers that are not blank or placeholder tokens."""
    if value is None or isinstance(value, bool):
        return False
    if not isinstance(value, (str, int, float)):
        return False
    return str(value).strip().lower() not in PLACEHOLDERS


def find_field(data: Mapping[str, Any] | None, fields: Sequence[str]) -> str | None:
    """First valid value among ``fields``, trying exact, lower and upper keys."""
    if not data:
        return None
    for field in fields:
        for key in (field, field.lower(), field.upper()):
            if key in data and is_valid_value(data[key]):
                return str(data[key]).strip()
    return None


def normalize_zoning(
    raw: Mapping[str, Any] | None,
    jurisdiction: str,
    *,
    zone_fields: Sequence[str] = (),
    desc_fields: Sequence[str] = (),
    category_fields: Sequence[str] = (),
) -> NormalizedZoning:
    """Map raw zoning attributes to a :class:`NormalizedZoning`.

    ``zone_fields``, ``desc_fields`` and ``category_fields`` are tried
    ahead of the built-in candidates, for providers with their own schema.
    ``zone`` and ``zone_description`` always come back non-empty.
    """
    data = dict(raw or {})
    rules = PROFILE_RULES[detect_profile(jurisdiction)]

    zone = find_field(data, (*zone_fields, *ZONE_CODE_FIELDS))
    description = find_field(data, (*desc_fields, *ZONE_DESC_FIELDS, *rules.extra_desc_fields))

    category = find_field(data, (*category_fields, *CATEGORY_FIELDS))
    if category and rules.category_role is CategoryRole.DESCRIPTION:
        description = description or category

    zone = zone or UNKNOWN
    description = description or zone

    return NormalizedZoning(
        jurisdiction=jurisdiction,
        zone=zone,
        zone_description=description,
        general_plan=find_field(data, GENERAL_PLAN_FIELDS),
        general_plan_description=find_field(data, GENERAL_PLAN_DESC_FIELDS),
        community_plan_area=find_field(data, COMMUNITY_PLAN_FIELDS),
        specific_plan=find_field(data, SPECIFIC_PLAN_FIELDS),
        raw=data,
    )


def _same(a: str | None, b: str | None) -> bool:
    return bool(a and b and a.strip().lower() == b.strip().lower())


def zoning_card(record: NormalizedZoning) -> dict[str, str]:
    """Compact projection for display: no raw payload, no redundant fields."""
    card = {"jurisdiction": record.jurisdiction, "zone": record.zone}

    if is_valid_value(record.zone_description) and not _same(record.zone_description, record.zone):
        card["zone_description"] = record.zone_description
    if is_valid_value(record.general_plan):
        card["general_plan"] = record.general_plan
    gp_desc = record.general_plan_description
    if (
        is_valid_value(gp_desc)
        and not _same(gp_desc, record.general_plan)
        and not _same(gp_desc, record.zone)
    ):
        card["general_plan_description"] = gp_desc
    if is_valid_value(record.community_plan_area):
        card["community_plan_area"] = record.community_plan_area
    if is_valid_value(record.specific_plan):
        card["specific_plan"] = record.specific_plan
    return card
