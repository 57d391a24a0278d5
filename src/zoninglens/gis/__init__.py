"""Parcel resolution, jurisdiction classification and attribute lookup."""
