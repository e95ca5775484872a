import math
from types import SimpleNamespace

import pytest

from drivermon.services.geo import average_speed, haversine_m, total_distance, trip_stats


def fix(lat, lon, speed=None):
    return SimpleNamespace(latitude=lat, longitude=lon, speed=speed)


def test_haversine_one_degree_of_latitude():
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)


def test_haversine_same_point_is_zero():
    assert haversine_m(37.77, -122.41, 37.77, -122.41) == 0.0


@pytest.mark.parametrize("samples", [[], [fix(37.0, -122.0)]])
def test_total_distance_needs_two_samples(samples):
    assert total_distance(samples) == 0.0


def test_total_distance_is_sum_of_legs_in_order():
    a, b, c = fix(0.0, 0.0), fix(0.0, 1.0), fix(1.0, 1.0)
    expected = haversine_m(0.0, 0.0, 0.0, 1.0) + haversine_m(0.0, 1.0, 1.0, 1.0)
    assert total_distance([a, b, c]) == pytest.approx(expected)


def test_average_speed_ignores_missing_and_negative_readings():
    samples = [fix(0, 0, 10.0), fix(0, 0, None), fix(0, 0, -1.0), fix(0, 0, 20.0), fix(0, 0, math.nan)]
    assert average_speed(samples) == 15.0


def test_average_speed_without_readings_is_zero():
    assert average_speed([fix(0, 0), fix(0, 0, -3.0)]) == 0.0
    assert average_speed([]) == 0.0


def test_trip_stats_combines_both():
    stats = trip_stats([fix(0.0, 0.0, 4.0), fix(0.0, 0.001, 6.0)])
    assert stats.total_distance == pytest.approx(111.19, rel=1e-2)
    assert stats.average_speed == 5.0
