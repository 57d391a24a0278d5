"""Core enumerations shared across ZoningLens modules."""

from __future__ import annotations

from enum import StrEnum


class JurisdictionSource(StrEnum):
    """Which kind of government regulates a parcel."""

    CITY = "CITY"
    COUNTY = "COUNTY"
    ERROR = "ERROR"


class LookupMethod(StrEnum):
    """Geometry used by the attribute query that produced a result."""

    POLYGON = "polygon"
    ENVELOPE = "envelope"
    CENTROID = "centroid"


class JurisdictionProfile(StrEnum):
    """Field-handling profile used when normalizing zoning attributes."""

    LOS_ANGELES = "los_angeles"
    PASADENA = "pasadena"
    UNINCORPORATED = "unincorporated"
    OTHER = "other"


class LogCategory(StrEnum):
    """Categories used by request-scoped log lines."""

    CACHE = "CACHE"
    ARCGIS = "ARCGIS"
    PARCEL = "PARCEL"
    JURISDICTION = "JURISDICTION"
    ZONING = "ZONING"
    OVERLAY = "OVERLAY"
    ASSESSOR = "ASSESSOR"
    PERF = "PERF"
    RATELIMIT = "RATELIMIT"
