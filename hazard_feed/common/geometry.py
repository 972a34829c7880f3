"""Geometry helpers."""

from __future__ import annotations

from typing import Any


def safe_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def extract_point_from_geometry(geometry: dict[str, Any] | None) -> tuple[float | None, float | None]:
    """Return (lat, lon) from an ArcGIS point or a GeoJSON Point geometry."""
    if not isinstance(geometry, dict):
        return None, None

    coordinates = geometry.get("coordinates")
    if isinstance(coordinates, (list, tuple)) and len(coordinates) >= 2:
        lon = safe_float(coordinates[0])
        lat = safe_float(coordinates[1])
        if lat is not None and lon is not None:
            return lat, lon

    x = safe_float(geometry.get("x"))
    y = safe_float(geometry.get("y"))
    if x is None or y is None:
        return None, None
    return y, x
