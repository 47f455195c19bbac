from __future__ import annotations

import pytest

from ambutrack import utils


CONNAUGHT_PLACE = (28.6315, 77.2167)
INDIA_GATE = (28.6129, 77.2295)


def test_distance_to_self_is_zero():
    assert utils.haversine_distance(*CONNAUGHT_PLACE, *CONNAUGHT_PLACE) == 0.0


def test_distance_is_symmetric():
    forward = utils.haversine_distance(*CONNAUGHT_PLACE, *INDIA_GATE)
    backward = utils.haversine_distance(*INDIA_GATE, *CONNAUGHT_PLACE)
    assert forward == pytest.approx(backward)


def test_distance_grows_with_separation():
    base = (28.61, 77.20)
    near = utils.haversine_distance(*base, 28.62, 77.20)
    far = utils.haversine_distance(*base, 28.70, 77.20)
    assert 0 < near < far


def test_known_distance():
    # 0.01 degrees of latitude is about 1.11 km everywhere
    assert utils.haversine_distance(28.61, 77.20, 28.62, 77.20) == pytest.approx(1.112, abs=0.001)


def test_antipodal_points_do_not_blow_up():
    distance = utils.haversine_distance(0.0, 0.0, 0.0, 180.0)
    assert distance == pytest.approx(20015.1, abs=0.5)


def test_travel_time_uses_average_speed():
    assert utils.calculate_travel_time_seconds(5.0) == pytest.approx(600.0)


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (45, "45s"),
        (60, "1 min"),
        (61, "2 min"),
        (3600, "1h 00m"),
        (3900, "1h 05m"),
        (59.4, "59s"),
        (59.7, "1 min"),
        (3590, "1h 00m"),
    ],
)
def test_format_eta(seconds, expected):
    assert utils.format_eta(seconds) == expected


def test_interpolate_midpoint():
    assert utils.interpolate((0.0, 0.0), (2.0, 4.0), 0.5) == (1.0, 2.0)


def test_moved_more_than():
    assert not utils.moved_more_than((28.61, 77.20), (28.61, 77.2001), 50)
    assert utils.moved_more_than((28.61, 77.20), (28.62, 77.20), 50)
