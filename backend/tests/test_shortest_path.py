from __future__ import annotations

from dataclasses import replace

import pytest

from livability_router.geo import Coordinate, destination_point, distance
from livability_router.road_graph import RoadGraph
from livability_router.road_segments import RoadSegment
from livability_router.shortest_path import (
    AUTHORITATIVE_METHODS,
    PathResult,
    SearchConfig,
    find_shortest_path,
)

A = Coordinate(lat=45.0, lon=-75.0)
B = Coordinate(lat=45.0, lon=-74.99)
C = Coordinate(lat=45.0, lon=-74.98)

CONFIG = SearchConfig()
EXACT = replace(CONFIG, frontier_sampling_enabled=False)


def _graph(*pairs: tuple[Coordinate, Coordinate]) -> RoadGraph:
    graph = RoadGraph(merge_max_segments=0)
    graph.build([RoadSegment(start=start, end=end, road_class="residential") for start, end in pairs])
    return graph


def _chain(count: int) -> list[Coordinate]:
    return [Coordinate(lat=45.0, lon=-75.0 + (0.01 * idx)) for idx in range(count)]


@pytest.mark.parametrize("config", [CONFIG, EXACT])
def test_routes_along_the_chain(config: SearchConfig) -> None:
    graph = _graph((A, B), (B, C))

    result = find_shortest_path(graph, A, C, config=config)

    assert isinstance(result, PathResult)
    assert result.success is True
    assert result.method == "dijkstra"
    assert result.is_estimate is False
    assert result.walking_distance_m == pytest.approx(distance(A, B) + distance(B, C))
    assert result.walking_time_s == pytest.approx(result.walking_distance_m / 1.4)
    assert result.direct_distance_m == pytest.approx(distance(A, C))
    assert result.path == (A, A, B, C, C)
    assert result.iterations == 3


def test_walking_distance_includes_snap_offsets() -> None:
    graph = _graph((A, B), (B, C))
    start = destination_point(A, 40.0, 180.0)
    end = destination_point(C, 60.0, 0.0)

    result = find_shortest_path(graph, start, end, config=CONFIG)

    assert result.method == "dijkstra"
    expected = 40.0 + distance(A, B) + distance(B, C) + 60.0
    assert result.walking_distance_m == pytest.approx(expected, rel=1e-6)
    assert result.path[0] == start
    assert result.path[-1] == end


def test_short_trips_are_direct_without_a_graph() -> None:
    graph = _graph()
    end = destination_point(A, 150.0, 90.0)

    result = find_shortest_path(graph, A, end, config=CONFIG)
    assert result.method == "direct"
    assert result.is_estimate is True
    assert result.walking_distance_m == pytest.approx(150.0, rel=1e-6)
    assert result.path == (A, end)

    same = find_shortest_path(graph, A, A, config=CONFIG)
    assert same.method == "direct"
    assert same.walking_distance_m == 0.0
    assert same.walking_time_s == 0.0


def test_unsnappable_points_fall_back_to_estimate() -> None:
    graph = _graph((A, B))
    start = Coordinate(lat=46.0, lon=-75.0)
    end = Coordinate(lat=46.0, lon=-74.99)

    result = find_shortest_path(graph, start, end, config=CONFIG)

    assert result.method == "estimate"
    assert result.walking_distance_m == pytest.approx(distance(start, end) * 1.3)
    assert result.path == (start, end)

    empty = find_shortest_path(_graph(), A, C, config=CONFIG)
    assert empty.method == "estimate"
    assert empty.walking_distance_m == pytest.approx(distance(A, C) * 1.3)


def test_points_sharing_a_nearest_node() -> None:
    graph = _graph((A, B), (B, C))
    start = destination_point(B, 150.0, 0.0)
    end = destination_point(B, 150.0, 180.0)

    result = find_shortest_path(graph, start, end, config=CONFIG)

    assert result.method == "same-node"
    assert result.is_estimate is False
    assert result.walking_distance_m == pytest.approx(300.0, rel=1e-6)
    assert result.path == (start, B, end)


def test_close_enough_stops_next_to_destination() -> None:
    x = destination_point(C, 60.0, 270.0)
    graph = _graph((A, B), (B, x), (x, C))

    result = find_shortest_path(graph, A, C, config=CONFIG)

    assert result.method == "close-enough"
    assert result.is_estimate is False
    expected = distance(A, B) + distance(B, x) + distance(x, C)
    assert result.walking_distance_m == pytest.approx(expected)
    assert result.path == (A, A, B, x, C, C)


def test_unreachable_far_destination_is_no_path() -> None:
    d = Coordinate(lat=45.0, lon=-74.90)
    e = Coordinate(lat=45.0, lon=-74.89)
    graph = _graph((A, B), (d, e))

    for config in (CONFIG, EXACT):
        result = find_shortest_path(graph, A, e, config=config)
        assert result.method == "no-path"
        assert result.is_estimate is True
        assert result.walking_distance_m == pytest.approx(distance(A, e) * 1.3)
        assert result.path == (A, e)


def test_unreachable_nearby_destination_is_direct_short() -> None:
    q = Coordinate(lat=45.0, lon=-75.0)
    p = destination_point(q, 700.0, 270.0)
    r = destination_point(q, 300.0, 90.0)
    s = destination_point(r, 700.0, 90.0)
    graph = _graph((p, q), (r, s))

    result = find_shortest_path(graph, q, r, config=CONFIG)

    assert result.method == "direct-short"
    assert result.walking_distance_m == pytest.approx(distance(q, r) * 1.2)


def test_iteration_cap_without_nearby_progress_is_estimated() -> None:
    nodes = _chain(6)
    graph = _graph(*zip(nodes, nodes[1:]))
    capped = replace(CONFIG, max_iterations=2)

    result = find_shortest_path(graph, nodes[0], nodes[-1], config=capped)

    assert result.method == "max-iterations"
    assert result.is_estimate is True
    assert result.iterations == 2
    assert result.walking_distance_m == pytest.approx(distance(nodes[0], nodes[-1]) * 1.3)


def test_iteration_cap_connects_closest_approach() -> None:
    n0, n1 = _chain(2)
    target = destination_point(n1, 300.0, 90.0)
    graph = _graph((n0, n1), (n1, target))
    capped = replace(CONFIG, max_iterations=2)

    result = find_shortest_path(graph, n0, target, config=capped)

    assert result.method == "iteration-limit"
    assert result.is_estimate is True
    assert result.walking_distance_m == pytest.approx(distance(n0, n1) + distance(n1, target))
    assert result.path == (n0, n0, n1, target, target)


def test_sampled_and_exact_frontiers_agree_on_a_lattice() -> None:
    rows, cols = 5, 5
    lattice = [[Coordinate(lat=45.0 + (0.005 * r), lon=-75.0 + (0.005 * c)) for c in range(cols)] for r in range(rows)]
    pairs: list[tuple[Coordinate, Coordinate]] = []
    for r in range(rows):
        for c in range(cols):
            if c + 1 < cols:
                pairs.append((lattice[r][c], lattice[r][c + 1]))
            if r + 1 < rows:
                pairs.append((lattice[r][c], lattice[r + 1][c]))
    graph = _graph(*pairs)

    for start, end in [(lattice[0][0], lattice[4][4]), (lattice[4][0], lattice[0][3]), (lattice[2][2], lattice[0][0])]:
        sampled = find_shortest_path(graph, start, end, config=CONFIG)
        exact = find_shortest_path(graph, start, end, config=EXACT)
        assert sampled.method == exact.method == "dijkstra"
        assert sampled.walking_distance_m == pytest.approx(exact.walking_distance_m)
        assert sampled.walking_distance_m >= sampled.direct_distance_m


def test_authoritative_methods() -> None:
    assert AUTHORITATIVE_METHODS == frozenset({"dijkstra", "close-enough", "same-node"})


def test_equator_records_route_through_the_middle_node() -> None:
    graph = RoadGraph()
    graph.build(
        [
            {"start_lat": 0, "start_lon": 0, "end_lat": 0, "end_lon": 0.001, "speed": 50},
            {"start_lat": 0, "start_lon": 0.001, "end_lat": 0, "end_lon": 0.002, "speed": 50},
        ]
    )
    middle = Coordinate(lat=0.0, lon=0.001)

    result = find_shortest_path(graph, Coordinate(lat=0.0, lon=0.0), Coordinate(lat=0.0, lon=0.002), config=CONFIG)

    assert len(graph.nodes) == 3
    assert graph.edge_count == 4
    assert result.method == "dijkstra"
    assert result.walking_distance_m == pytest.approx(222.39, rel=0.01)
    assert middle in result.path
