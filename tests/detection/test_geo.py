import math

import pytest

from safetrail.detection.anomaly import LocationSample, ZoneVertex
from safetrail.detection.geo import (
    haversine_m,
    is_valid_polygon,
    path_length_m,
    point_in_polygon,
)


class TestHaversine:
    """Haversine距離のテスト"""

    def test_identical_points_are_zero(self):
        assert haversine_m(41.0082, 28.9784, 41.0082, 28.9784) == 0.0

    def test_symmetric(self):
        a = (41.0082, 28.9784)
        b = (39.9334, 32.8597)
        assert haversine_m(*a, *b) == pytest.approx(haversine_m(*b, *a))

    def test_one_millidegree_latitude(self):
        # 0.001度 ≒ 111m
        assert haversine_m(0.0, 0.0, 0.001, 0.0) == pytest.approx(111.19, abs=0.1)

    def test_quarter_meridian(self):
        expected = 6_371_000.0 * math.pi / 2
        assert haversine_m(0.0, 0.0, 90.0, 0.0) == pytest.approx(expected)

    def test_near_antipodal_points(self):
        """丸め誤差で a が1を超えても計算できる"""
        distance = haversine_m(0.015, 0.0, -0.015, 180.0)

        assert math.isfinite(distance)
        assert distance == pytest.approx(6_371_000.0 * math.pi, rel=1e-3)

    def test_path_length_sums_back_and_forth(self):
        points = [
            LocationSample(0.0, 0.0, 0),
            LocationSample(0.001, 0.0, 1),
            LocationSample(0.0, 0.0, 2),
        ]
        one_way = haversine_m(0.0, 0.0, 0.001, 0.0)
        assert path_length_m(points) == pytest.approx(2 * one_way)

    def test_path_length_of_single_point(self):
        assert path_length_m([LocationSample(1.0, 1.0, 0)]) == 0.0


class TestPointInPolygon:
    """レイキャスティング判定のテスト"""

    def test_inside_square(self, square_zone):
        assert point_in_polygon(0.5, 0.5, square_zone) is True

    def test_outside_square(self, square_zone):
        assert point_in_polygon(2.0, 2.0, square_zone) is False

    def test_concave_notch_is_outside(self):
        # U字型: 中央の切り欠き部分は外
        u_shape = [
            ZoneVertex(0.0, 0.0),
            ZoneVertex(3.0, 0.0),
            ZoneVertex(3.0, 1.0),
            ZoneVertex(1.0, 1.0),
            ZoneVertex(1.0, 2.0),
            ZoneVertex(3.0, 2.0),
            ZoneVertex(3.0, 3.0),
            ZoneVertex(0.0, 3.0),
        ]
        assert point_in_polygon(2.0, 1.5, u_shape) is False
        assert point_in_polygon(0.5, 1.5, u_shape) is True

    def test_too_few_vertices(self):
        line = [ZoneVertex(0.0, 0.0), ZoneVertex(1.0, 1.0)]
        assert is_valid_polygon(line) is False
        assert point_in_polygon(0.5, 0.5, line) is False

    def test_none_is_not_valid(self):
        assert is_valid_polygon(None) is False
