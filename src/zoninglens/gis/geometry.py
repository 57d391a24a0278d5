"""Pure geometry helpers over ring-based polygons.

Every function reads only the polygon's first ring. A ring with fewer than
three points has no area, envelope or centroid and yields ``None``.
"""

from __future__ import annotations

from zoninglens.gis.models import Envelope, Point, Polygon


def _first_ring(polygon: Polygon | None) -> list[tuple[float, float]] | None:
    if polygon is None or not polygon.rings:
        return None
    ring = polygon.rings[0]
    if len(ring) < 3:
        return None
    return ring


def area(polygon: Polygon | None) -> float | None:
    """Shoelace-formula area magnitude of the first ring."""
    ring = _first_ring(polygon)
    if ring is None:
        return None
    total = 0.0
    for i, (x1, y1) in enumerate(ring):
        x2, y2 = ring[(i + 1) % len(ring)]
        total += x1 * y2 - x2 * y1
    return abs(total) / 2.0


def envelope(polygon: Polygon | None) -> Envelope | None:
    ring = _first_ring(polygon)
    if ring is None:
        return None
    xs = [x for x, _ in ring]
    ys = [y for _, y in ring]
    return Envelope(xmin=min(xs), ymin=min(ys), xmax=max(xs), ymax=max(ys))


def centroid(polygon: Polygon | None) -> Point | None:
    """Midpoint of the envelope, not the centre of mass.

    Stable and cheap; good enough for point-in-feature queries on
    convex-ish parcels.
    """
    env = envelope(polygon)
    if env is None:
        return None
    return Point(x=(env.xmin + env.xmax) / 2.0, y=(env.ymin + env.ymax) / 2.0)


def simplify(polygon: Polygon, precision: float = 1.0) -> Polygon:
    """Snap coordinates to a ``precision`` grid and drop repeated points.

    Shrinks the payload of polygon queries; with a meters-based spatial
    reference the default keeps one-meter fidelity.
    """
    rings: list[list[tuple[float, float]]] = []
    for ring in polygon.rings:
        snapped: list[tuple[float, float]] = []
        for x, y in ring:
            pt = (round(x / precision) * precision, round(y / precision) * precision)
            if not snapped or snapped[-1] != pt:
                snapped.append(pt)
        if len(snapped) >= 3:
            rings.append(snapped)
    if not rings:
        return polygon
    return Polygon(rings=rings, spatial_reference=polygon.spatial_reference)
