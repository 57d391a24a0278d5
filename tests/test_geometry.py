"""Tests for the geometry helpers and the Esri polygon model."""

from __future__ import annotations

import pytest

from zoninglens.gis.geometry import area, centroid, envelope, simplify
from zoninglens.gis.models import Envelope, Point, Polygon


def _poly(*rings) -> Polygon:
    return Polygon(rings=[[tuple(p) for p in ring] for ring in rings])


class TestArea:
    def test_unit_square(self):
        assert area(_poly([(0, 0), (1, 0), (1, 1), (0, 1)])) == pytest.approx(1.0)

    def test_closed_ring_same_as_open(self):
        closed = _poly([(0, 0), (2, 0), (2, 3), (0, 3), (0, 0)])
        assert area(closed) == pytest.approx(6.0)

    def test_clockwise_ring_is_positive(self):
        assert area(_poly([(0, 0), (0, 1), (1, 1), (1, 0)])) == pytest.approx(1.0)

    def test_fewer_than_three_points_is_unavailable(self):
        assert area(_poly([(0, 0), (1, 1)])) is None

    def test_none_and_empty(self):
        assert area(None) is None
        assert area(Polygon(rings=[])) is None

    def test_only_first_ring_counts(self):
        poly = _poly([(0, 0), (1, 0), (1, 1), (0, 1)], [(0, 0), (10, 0), (10, 10), (0, 10)])
        assert area(poly) == pytest.approx(1.0)


class TestEnvelopeAndCentroid:
    def test_envelope(self):
        env = envelope(_poly([(2, 5), (8, 1), (6, 9)]))
        assert env == Envelope(xmin=2, ymin=1, xmax=8, ymax=9)

    def test_centroid_is_envelope_midpoint(self):
        # An L-shape: the envelope midpoint is not the centre of mass.
        ring = [(0, 0), (4, 0), (4, 1), (1, 1), (1, 4), (0, 4)]
        assert centroid(_poly(ring)) == Point(x=2.0, y=2.0)

    def test_degenerate_ring(self):
        poly = _poly([(0, 0), (1, 1)])
        assert envelope(poly) is None
        assert centroid(poly) is None


class TestSimplify:
    def test_snaps_to_grid_and_drops_repeats(self):
        poly = _poly([(0.2, 0.1), (0.4, 0.3), (10.6, 0.2), (10.4, 9.8), (0.1, 10.2)])
        simplified = simplify(poly, precision=1.0)
        assert simplified.rings == [[(0, 0), (11, 0), (10, 10), (0, 10)]]

    def test_collapsed_polygon_is_returned_unchanged(self):
        poly = _poly([(0.1, 0.1), (0.2, 0.2), (0.3, 0.1)])
        assert simplify(poly) is poly

    def test_keeps_spatial_reference(self):
        poly = Polygon(rings=[[(0, 0), (5, 0), (5, 5)]], spatial_reference=2229)
        assert simplify(poly).spatial_reference == 2229


class TestPolygonFromEsri:
    def test_parses_rings_and_latest_wkid(self):
        poly = Polygon.from_esri(
            {
                "rings": [[[0, 0], [1, 0], [1, 1]]],
                "spatialReference": {"wkid": 102100, "latestWkid": 3857},
            }
        )
        assert poly.rings == [[(0.0, 0.0), (1.0, 0.0), (1.0, 1.0)]]
        assert poly.spatial_reference == 3857

    def test_skips_malformed_points(self):
        poly = Polygon.from_esri({"rings": [[[0, 0], ["x", 1], [1], None, [1, 0], [1, 1]]]})
        assert poly.rings == [[(0.0, 0.0), (1.0, 0.0), (1.0, 1.0)]]

    @pytest.mark.parametrize("geometry", [None, {}, {"rings": "nope"}, {"rings": [[]]}, "x"])
    def test_unusable_geometry(self, geometry):
        assert Polygon.from_esri(geometry) is None

    def test_to_esri_round_shape(self):
        poly = Polygon(rings=[[(0, 0), (1, 0), (1, 1)]], spatial_reference=2229)
        assert poly.to_esri() == {
            "rings": [[[0, 0], [1, 0], [1, 1]]],
            "spatialReference": {"wkid": 2229},
        }
