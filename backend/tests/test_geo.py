from __future__ import annotations

import math
import random

import pytest

from livability_router.geo import (
    Coordinate,
    bearing,
    bounding_circle,
    destination_point,
    distance,
    grid,
    haversine_m,
    point_to_segment_distance,
)


def _random_point(rng: random.Random) -> Coordinate:
    return Coordinate(lat=rng.uniform(-80.0, 80.0), lon=rng.uniform(-179.0, 179.0))


def test_haversine_one_degree_of_latitude_on_the_equator() -> None:
    expected = 6_371_000.0 * math.pi / 180.0
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-9)
    assert haversine_m(45.0, -75.0, 45.0, -75.0) == 0.0


def test_distance_is_symmetric_and_obeys_triangle_inequality() -> None:
    rng = random.Random(20240611)
    for _ in range(200):
        a, b, c = _random_point(rng), _random_point(rng), _random_point(rng)
        ab = distance(a, b)
        assert ab >= 0.0
        assert ab == pytest.approx(distance(b, a), abs=1e-6)
        assert distance(a, c) <= ab + distance(b, c) + 1e-6


def test_destination_point_travels_requested_distance() -> None:
    rng = random.Random(7)
    for _ in range(100):
        start = Coordinate(lat=rng.uniform(-60.0, 60.0), lon=rng.uniform(-170.0, 170.0))
        meters = rng.uniform(10.0, 50_000.0)
        heading = rng.uniform(0.0, 360.0)
        dest = destination_point(start, meters, heading)
        assert distance(start, dest) == pytest.approx(meters, rel=1e-6)
        assert -180.0 <= dest.lon < 180.0


def test_bearing_cardinal_directions() -> None:
    origin = Coordinate(lat=0.0, lon=0.0)
    assert bearing(origin, Coordinate(lat=1.0, lon=0.0)) == pytest.approx(0.0, abs=1e-9)
    assert bearing(origin, Coordinate(lat=0.0, lon=1.0)) == pytest.approx(90.0, abs=1e-9)
    assert bearing(origin, Coordinate(lat=-1.0, lon=0.0)) == pytest.approx(180.0, abs=1e-9)
    assert bearing(origin, Coordinate(lat=0.0, lon=-1.0)) == pytest.approx(270.0, abs=1e-9)


def test_point_to_segment_distance_projects_and_clamps() -> None:
    start = Coordinate(lat=45.0, lon=-75.0)
    end = Coordinate(lat=45.0, lon=-74.99)
    midpoint = Coordinate(lat=45.0, lon=-74.995)
    assert point_to_segment_distance(midpoint, start, end) == pytest.approx(0.0, abs=1e-6)

    beyond = Coordinate(lat=45.0, lon=-74.98)
    assert point_to_segment_distance(beyond, start, end) == pytest.approx(distance(beyond, end), rel=1e-9)

    north = destination_point(midpoint, 120.0, 0.0)
    assert point_to_segment_distance(north, start, end) == pytest.approx(120.0, rel=1e-3)
    assert point_to_segment_distance(north, start, start) == pytest.approx(distance(north, start))


def test_bounding_circle_covers_radius() -> None:
    center = Coordinate(lat=45.42, lon=-75.69)
    box = bounding_circle(center, 2_000.0)
    for heading in range(0, 360, 15):
        assert box.contains(destination_point(center, 1_990.0, float(heading)))
    assert not box.contains(destination_point(center, 3_000.0, 0.0))


def test_location_grid_is_restartable_and_within_radius() -> None:
    center = Coordinate(lat=45.42, lon=-75.69)
    points = grid(center, 1_500.0, step_m=500.0)

    first = list(points)
    second = list(points)

    assert first
    assert first == second
    assert all(distance(center, point) <= 1_500.0 for point in first)
    assert len(first) > len(list(grid(center, 600.0, step_m=500.0)))


def test_location_grid_rejects_non_positive_step() -> None:
    with pytest.raises(ValueError):
        grid(Coordinate(lat=0.0, lon=0.0), 100.0, step_m=0.0)
