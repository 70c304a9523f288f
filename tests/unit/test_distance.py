import pytest
from pyproj import Geod

from store_locator.common.models import Coordinates
from store_locator.pipeline.distance import (
    EARTH_RADIUS_METERS,
    METERS_PER_MILE,
    distance_miles,
    format_distance,
)

NEW_YORK = (-74.0060, 40.7128)
LOS_ANGELES = (-118.2437, 34.0522)

# Great-circle reference on the same sphere the haversine uses.
SPHERE = Geod(a=EARTH_RADIUS_METERS, f=0)

SAMPLE_PAIRS = [
    (NEW_YORK, LOS_ANGELES),
    ((-117.40, 33.95), (-117.3755, 33.9806)),
    ((0.0, 0.0), (90.0, 0.0)),
    ((-2.1, 49.2), (151.2093, -33.8688)),
    ((179.9, 10.0), (-179.9, 10.0)),
]


def _reference_miles(a, b) -> float:
    _az12, _az21, meters = SPHERE.inv(a[0], a[1], b[0], b[1])
    return meters / METERS_PER_MILE


def test_new_york_to_los_angeles_is_about_2451_miles():
    assert distance_miles(NEW_YORK, LOS_ANGELES) == pytest.approx(2451, rel=0.01)


@pytest.mark.parametrize("a,b", SAMPLE_PAIRS)
def test_distance_matches_reference_great_circle(a, b):
    assert distance_miles(a, b) == pytest.approx(_reference_miles(a, b), rel=1e-3)


@pytest.mark.parametrize("a,b", SAMPLE_PAIRS)
def test_distance_is_symmetric(a, b):
    assert distance_miles(a, b) == pytest.approx(distance_miles(b, a), rel=1e-12)


@pytest.mark.parametrize("point", [NEW_YORK, (0.0, 0.0), (-180.0, 90.0)])
def test_distance_identity_is_zero(point):
    assert distance_miles(point, point) == 0


def test_distance_accepts_coordinates_instances():
    a = Coordinates(longitude=NEW_YORK[0], latitude=NEW_YORK[1])
    b = Coordinates(longitude=LOS_ANGELES[0], latitude=LOS_ANGELES[1])
    assert distance_miles(a, b) == distance_miles(NEW_YORK, LOS_ANGELES)


@pytest.mark.parametrize("bad", [None, (1.0,), ("x", "y"), (0.0, 91.0), "40,-74"])
def test_distance_rejects_malformed_coordinates(bad):
    with pytest.raises(ValueError):
        distance_miles(bad, NEW_YORK)


def test_format_distance():
    assert format_distance(12.345) == "12.3 miles"
    assert format_distance(10.0) == "10 miles"
    assert format_distance(2451.26) == "2451.3 miles"
    assert format_distance(None) == "Unknown distance"
    assert format_distance(float("nan")) == "Unknown distance"
