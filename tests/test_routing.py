"""Tests for the route estimator."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import datetime

import pytest

from tripquote.services.locations import Coordinates, HashedOffsetGenerator, LocationResolver
from tripquote.services.routing import (
    RouteEstimator, average_speed, correction_factor, haversine_distance,
)

CENTER = Coordinates(48.8566, 2.3522)
NOON = datetime(2026, 3, 4, 12, 0)  # Wednesday

LOUVRE = "48.8606,2.3376"
NOTRE_DAME = "48.8530,2.3499"


def _estimator(lookup=None):
    resolver = LocationResolver(fallback=HashedOffsetGenerator(CENTER, 0.05))
    return RouteEstimator(
        resolver=resolver,
        lookup=lookup if lookup is not None else {},
        center=CENTER,
        urban_radius_km=5.0,
    )


def test_haversine_identical_points():
    """Distance between identical coordinates should be zero."""
    assert haversine_distance(48.8566, 2.3522, 48.8566, 2.3522) == 0


def test_haversine_symmetric():
    """A→B should equal B→A."""
    ab = haversine_distance(48.8566, 2.3522, 49.0097, 2.5479)
    ba = haversine_distance(49.0097, 2.5479, 48.8566, 2.3522)
    assert ab == ba


def test_haversine_known_distance():
    """Paris center to CDG is roughly 22 km as the crow flies."""
    d = haversine_distance(48.8566, 2.3522, 49.0097, 2.5479)
    assert 21 < d < 24


def test_correction_buckets():
    assert correction_factor(2.9) == 1.3
    assert correction_factor(3.0) == 1.2
    assert correction_factor(9.99) == 1.2
    assert correction_factor(10.0) == 1.1
    assert correction_factor(2.0, airport=True) == 1.15
    assert correction_factor(50.0, airport=True) == 1.15


def test_speed_model():
    """Peak, night and default speeds by hour."""
    assert average_speed(datetime(2026, 3, 4, 8, 0)) == 20
    assert average_speed(datetime(2026, 3, 4, 18, 30)) == 20
    assert average_speed(datetime(2026, 3, 4, 23, 0)) == 40
    assert average_speed(datetime(2026, 3, 4, 3, 0)) == 40
    assert average_speed(datetime(2026, 3, 4, 6, 0)) == 30
    assert average_speed(datetime(2026, 3, 4, 10, 0)) == 30
    assert average_speed(NOON) == 30
    assert average_speed(NOON, out_of_town=True) == 50


def test_short_trip_correction():
    """Trips under 3 km should be corrected by 1.3."""
    route = _estimator().estimate(LOUVRE, NOTRE_DAME, at=NOON)
    raw_km = haversine_distance(48.8606, 2.3376, 48.8530, 2.3499)
    assert raw_km < 3
    assert route.total_distance_meters == pytest.approx(raw_km * 1.3 * 1000, abs=0.1)
    assert route.correction_factor == 1.3
    assert route.source == "estimate"


def test_duration_from_speed():
    """Duration should follow distance at the hour's speed."""
    route = _estimator().estimate(LOUVRE, NOTRE_DAME, at=NOON)
    assert route.speed_kmh == 30
    expected = route.total_distance_meters / 1000 / 30 * 3600
    assert route.total_duration_seconds == pytest.approx(expected, abs=0.1)


def test_airport_override():
    """Airport labels should force the 1.15 correction."""
    route = _estimator().estimate("Orly airport", LOUVRE, at=NOON)
    assert route.correction_factor == 1.15


def test_out_of_town_speed_bonus():
    """Both ends outside the urban zone should add 20 km/h."""
    route = _estimator().estimate("48.95,2.60", "48.99,2.65", at=NOON)
    assert route.speed_kmh == 50


def test_one_end_in_town_no_bonus():
    route = _estimator().estimate(LOUVRE, "48.99,2.65", at=NOON)
    assert route.speed_kmh == 30


def test_legs_sum_to_totals():
    """Multi-stop legs should add up exactly to the totals."""
    route = _estimator().estimate(
        LOUVRE, "Gare du Nord", stops=[NOTRE_DAME, "Tour Eiffel"], at=NOON,
    )
    assert len(route.legs) == 3
    assert sum(leg.distance_meters for leg in route.legs) == route.total_distance_meters
    assert sum(leg.duration_seconds for leg in route.legs) == route.total_duration_seconds
    assert route.legs[0].start_label == LOUVRE
    assert route.legs[1].start_label == NOTRE_DAME
    assert route.legs[-1].end_label == "Gare du Nord"


def test_lookup_table_hit():
    """Known pairs should bypass geometry in both directions."""
    estimator = _estimator(lookup={("paris", "orly"): (18000.0, 1800.0)})
    forward = estimator.estimate("Paris", "Orly", at=NOON)
    backward = estimator.estimate("ORLY", "paris!", at=NOON)
    for route in (forward, backward):
        assert route.source == "lookup"
        assert route.total_distance_meters == 18000.0
        assert route.total_duration_seconds == 1800.0
        assert len(route.legs) == 1


def test_lookup_skipped_with_stops():
    """Stops require a per-leg estimate."""
    estimator = _estimator(lookup={("paris", "orly"): (18000.0, 1800.0)})
    route = estimator.estimate("Paris", "Orly", stops=["Louvre"], at=NOON)
    assert route.source == "estimate"
    assert len(route.legs) == 2
