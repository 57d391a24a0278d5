"""ZoningLens: parcel resolution and multi-jurisdiction zoning lookup."""

__version__ = "0.1.0"
