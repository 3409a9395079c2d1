from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from itertools import islice
from math import inf

from .geo import Coordinate, distance, haversine_m
from .logging_utils import log_event
from .road_graph import GraphNode, RoadGraph
from .settings import settings


METHOD_DIRECT = "direct"
METHOD_ESTIMATE = "estimate"
METHOD_SAME_NODE = "same-node"
METHOD_DIJKSTRA = "dijkstra"
METHOD_CLOSE_ENOUGH = "close-enough"
METHOD_ITERATION_LIMIT = "iteration-limit"
METHOD_MAX_ITERATIONS = "max-iterations"
METHOD_DIRECT_SHORT = "direct-short"
METHOD_NO_PATH = "no-path"

# Results produced by an actual walk over the graph; everything else is an estimate.
AUTHORITATIVE_METHODS: frozenset[str] = frozenset({METHOD_DIJKSTRA, METHOD_CLOSE_ENOUGH, METHOD_SAME_NODE})


@dataclass(frozen=True)
class PathResult:
    success: bool
    direct_distance_m: float
    walking_distance_m: float
    walking_time_s: float
    path: tuple[Coordinate, ...]
    method: str
    iterations: int = 0

    @property
    def is_estimate(self) -> bool:
        return self.method not in AUTHORITATIVE_METHODS


@dataclass(frozen=True)
class SearchConfig:
    max_snap_distance_m: float = 500.0
    direct_distance_m: float = 200.0
    close_enough_m: float = 100.0
    max_iterations: int = 2_000
    iteration_limit_connect_m: float = 500.0
    frontier_sampling_enabled: bool = True
    frontier_sample_size: int = 1_000
    estimate_multiplier: float = 1.3
    short_estimate_multiplier: float = 1.2
    short_estimate_max_m: float = 500.0
    walking_speed_mps: float = 1.4
    progress_log_every: int = 500

    @classmethod
    def from_settings(cls) -> SearchConfig:
        return cls(
            max_snap_distance_m=float(settings.route_max_snap_distance_m),
            direct_distance_m=float(settings.route_direct_distance_m),
            close_enough_m=float(settings.route_close_enough_m),
            max_iterations=int(settings.route_max_iterations),
            iteration_limit_connect_m=float(settings.route_iteration_limit_connect_m),
            frontier_sampling_enabled=bool(settings.route_frontier_sampling_enabled),
            frontier_sample_size=int(settings.route_frontier_sample_size),
            estimate_multiplier=float(settings.route_estimate_multiplier),
            short_estimate_multiplier=float(settings.route_short_estimate_multiplier),
            short_estimate_max_m=float(settings.route_short_estimate_max_m),
            walking_speed_mps=float(settings.walking_speed_mps),
            progress_log_every=int(settings.route_progress_log_every),
        )


def _result(
    *,
    config: SearchConfig,
    direct_m: float,
    walking_m: float,
    path: tuple[Coordinate, ...],
    method: str,
    iterations: int = 0,
) -> PathResult:
    return PathResult(
        success=True,
        direct_distance_m=direct_m,
        walking_distance_m=walking_m,
        walking_time_s=walking_m / config.walking_speed_mps,
        path=path,
        method=method,
        iterations=iterations,
    )


class _Frontier:
    """Picks the next node to finalize.

    With sampling enabled only the first ``sample_size`` entries of the
    unvisited set are examined once it grows past that size, which bounds each
    step but may pick a node that is not the true minimum. Without sampling a
    binary heap with lazy deletion yields the exact minimum.
    """

    def __init__(self, graph: RoadGraph, start: GraphNode, config: SearchConfig) -> None:
        self.dist: dict[str, float] = {start.key: 0.0}
        self.unvisited: dict[str, None] = dict.fromkeys(graph.nodes)
        self._graph = graph
        self._sampling = bool(config.frontier_sampling_enabled)
        self._sample_size = max(1, int(config.frontier_sample_size))
        self._heap: list[tuple[float, int, str]] = [] if self._sampling else [(0.0, start.index, start.key)]

    def pop(self) -> str | None:
        if self._sampling:
            return self._pop_sampled()
        while self._heap:
            cost, _idx, key = heapq.heappop(self._heap)
            if key in self.unvisited and cost == self.dist.get(key, inf):
                return key
        return None

    def _pop_sampled(self) -> str | None:
        if len(self.unvisited) <= self._sample_size:
            candidates = iter(self.unvisited)
        else:
            candidates = islice(self.unvisited, self._sample_size)
        best_key: str | None = None
        best_cost = inf
        for key in candidates:
            cost = self.dist.get(key, inf)
            if cost < best_cost:
                best_cost = cost
                best_key = key
        return best_key

    def finalize(self, key: str) -> None:
        self.unvisited.pop(key, None)

    def relax(self, key: str, cost: float) -> bool:
        if cost >= self.dist.get(key, inf):
            return False
        self.dist[key] = cost
        if not self._sampling:
            heapq.heappush(self._heap, (cost, self._graph.nodes[key].index, key))
        return True


def find_shortest_path(
    graph: RoadGraph,
    start: Coordinate,
    end: Coordinate,
    *,
    config: SearchConfig | None = None,
) -> PathResult:
    """Route ``start`` to ``end`` over ``graph``, degrading to tagged estimates.

    Never raises for a built graph: snapping failures, unreachable destinations
    and the iteration cap all produce a result whose ``method`` says how the
    walking distance was obtained.
    """
    cfg = config or SearchConfig.from_settings()
    direct_m = distance(start, end)
    straight = (start, end)

    if direct_m < cfg.direct_distance_m:
        return _result(config=cfg, direct_m=direct_m, walking_m=direct_m, path=straight, method=METHOD_DIRECT)

    start_node, start_snap_m = graph.nearest_node(start, cfg.max_snap_distance_m)
    end_node, end_snap_m = graph.nearest_node(end, cfg.max_snap_distance_m)
    if start_node is None or end_node is None:
        log_event(
            "route_search_snap_failed",
            level=logging.DEBUG,
            start_snapped=start_node is not None,
            end_snapped=end_node is not None,
            node_count=len(graph.nodes),
        )
        return _result(
            config=cfg,
            direct_m=direct_m,
            walking_m=direct_m * cfg.estimate_multiplier,
            path=straight,
            method=METHOD_ESTIMATE,
        )

    if start_node is end_node:
        return _result(
            config=cfg,
            direct_m=direct_m,
            walking_m=start_snap_m + end_snap_m,
            path=(start, start_node.coordinate, end),
            method=METHOD_SAME_NODE,
        )

    frontier = _Frontier(graph, start_node, cfg)
    prev: dict[str, str] = {}
    end_key = end_node.key
    end_lat, end_lon = end_node.coordinate.lat, end_node.coordinate.lon
    closest_key: str | None = None
    closest_m = inf
    method: str | None = None
    exhausted = False
    iterations = 0

    while frontier.unvisited and iterations < cfg.max_iterations:
        iterations += 1
        current = frontier.pop()
        if current is None:
            exhausted = True
            break
        if current == end_key:
            method = METHOD_DIJKSTRA
            break
        frontier.finalize(current)
        node = graph.nodes[current]
        here_m = frontier.dist[current]
        to_end_m = haversine_m(node.coordinate.lat, node.coordinate.lon, end_lat, end_lon)
        if to_end_m < closest_m:
            closest_m = to_end_m
            closest_key = current
        if to_end_m < cfg.close_enough_m:
            frontier.dist[end_key] = here_m + to_end_m
            prev[end_key] = current
            method = METHOD_CLOSE_ENOUGH
            break
        for edge in node.edges:
            if edge.to not in frontier.unvisited:
                continue
            if frontier.relax(edge.to, here_m + edge.distance_m):
                prev[edge.to] = current
        if iterations % cfg.progress_log_every == 0:
            log_event(
                "route_search_progress",
                level=logging.DEBUG,
                iterations=iterations,
                closest_approach_m=round(closest_m, 2),
            )

    capped = method is None and not exhausted and iterations >= cfg.max_iterations
    if capped:
        if closest_key is not None and closest_m < cfg.iteration_limit_connect_m:
            frontier.dist[end_key] = frontier.dist[closest_key] + closest_m
            prev[end_key] = closest_key
            method = METHOD_ITERATION_LIMIT
        else:
            log_event(
                "route_search_iteration_cap",
                level=logging.DEBUG,
                iterations=iterations,
                closest_approach_m=None if closest_m == inf else round(closest_m, 2),
            )
            return _result(
                config=cfg,
                direct_m=direct_m,
                walking_m=direct_m * cfg.estimate_multiplier,
                path=straight,
                method=METHOD_MAX_ITERATIONS,
                iterations=iterations,
            )

    graph_m = frontier.dist.get(end_key, inf)
    if graph_m == inf:
        if direct_m < cfg.short_estimate_max_m:
            walking_m, fallback = direct_m * cfg.short_estimate_multiplier, METHOD_DIRECT_SHORT
        else:
            walking_m, fallback = direct_m * cfg.estimate_multiplier, METHOD_NO_PATH
        return _result(
            config=cfg,
            direct_m=direct_m,
            walking_m=walking_m,
            path=straight,
            method=fallback,
            iterations=iterations,
        )

    chain = [end_key]
    cursor = end_key
    while cursor != start_node.key:
        parent = prev.get(cursor)
        if parent is None:
            log_event("route_path_reconstruction_partial", level=logging.WARNING, stalled_at=cursor)
            break
        chain.append(parent)
        cursor = parent
    chain.reverse()

    route = (start, *(graph.nodes[key].coordinate for key in chain), end)
    return _result(
        config=cfg,
        direct_m=direct_m,
        walking_m=graph_m + start_snap_m + end_snap_m,
        path=route,
        method=method or METHOD_DIJKSTRA,
        iterations=iterations,
    )
