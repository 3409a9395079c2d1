from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .geo import METERS_PER_DEGREE_LAT, Coordinate, haversine_m
from .logging_utils import log_event
from .road_segments import RoadSegment, SegmentProvider, normalize_road_class, parse_road_segment
from .routing_errors import RoutingDataError
from .settings import settings


NODE_KEY_PRECISION = 5
RESTRICTED_ONEWAY_CLASSES: frozenset[str] = frozenset({"motorway", "motorway_link", "trunk", "trunk_link"})
ROAD_CLASS_PRIORITY: dict[str, int] = {
    "motorway": 1,
    "trunk": 2,
    "primary": 3,
    "secondary": 4,
    "tertiary": 5,
    "residential": 6,
    "service": 7,
    "footway": 8,
    "path": 9,
}
_UNRANKED_PRIORITY = 10
_SKIPPED_SEGMENT_LOG_LIMIT = 20


def node_key(lat: float, lon: float) -> str:
    return f"{lat:.{NODE_KEY_PRECISION}f},{lon:.{NODE_KEY_PRECISION}f}"


def road_class_priority(road_class: str) -> int:
    return ROAD_CLASS_PRIORITY.get(normalize_road_class(road_class), _UNRANKED_PRIORITY)


def _iso_utc_now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class GraphEdge:
    to: str
    distance_m: float
    road_name: str
    road_class: str
    travel_time_s: float


@dataclass
class GraphNode:
    key: str
    index: int
    coordinate: Coordinate
    edges: list[GraphEdge] = field(default_factory=list)


def prioritize_segments(segments: Sequence[RoadSegment], max_segments: int) -> list[RoadSegment]:
    """Keep the ``max_segments`` highest-class segments, preserving input order within a class."""
    if len(segments) <= max_segments:
        return list(segments)
    ranked = sorted(segments, key=lambda seg: road_class_priority(seg.road_class))
    return ranked[: max(0, int(max_segments))]


def merge_intersections(segments: Sequence[RoadSegment], threshold_m: float) -> dict[str, Coordinate]:
    """Map each distinct endpoint key to the coordinate its intersection collapses to.

    Endpoints closer than ``threshold_m`` are pulled to their midpoint. Chains of
    merges end up sharing the coordinate of the group's first endpoint, so every
    member of a group produces the same node key.
    """
    positions: dict[str, list[float]] = {}
    for seg in segments:
        for point in (seg.start, seg.end):
            positions.setdefault(node_key(point.lat, point.lon), [point.lat, point.lon])
    keys = list(positions)
    parent = list(range(len(keys)))

    def _find(idx: int) -> int:
        while parent[idx] != idx:
            parent[idx] = parent[parent[idx]]
            idx = parent[idx]
        return idx

    for i in range(len(keys)):
        pi = positions[keys[i]]
        for j in range(i + 1, len(keys)):
            pj = positions[keys[j]]
            if haversine_m(pi[0], pi[1], pj[0], pj[1]) >= threshold_m:
                continue
            mid = [(pi[0] + pj[0]) / 2.0, (pi[1] + pj[1]) / 2.0]
            pi[:] = mid
            pj[:] = mid
            root_i, root_j = _find(i), _find(j)
            if root_i != root_j:
                parent[max(root_i, root_j)] = min(root_i, root_j)

    merged: dict[str, Coordinate] = {}
    for idx, key in enumerate(keys):
        root = positions[keys[_find(idx)]]
        merged[key] = Coordinate(lat=root[0], lon=root[1])
    return merged


class RoadGraph:
    """Adjacency-list road network keyed by rounded coordinates.

    The graph is filled exactly once, either from explicit segments via
    :meth:`build` or from providers via :meth:`ensure_built`. Once
    ``initialized`` is set it is treated as read-only, so path queries may read
    it from several threads without locking.
    """

    def __init__(
        self,
        *,
        max_segments: int | None = None,
        batch_size: int | None = None,
        merge_max_segments: int | None = None,
        intersection_threshold_m: float | None = None,
        grid_bucket_deg: float | None = None,
        default_snap_distance_m: float | None = None,
    ) -> None:
        self.max_segments = int(max_segments if max_segments is not None else settings.road_graph_max_segments)
        self.batch_size = max(1, int(batch_size if batch_size is not None else settings.road_graph_batch_size))
        self.merge_max_segments = int(
            merge_max_segments if merge_max_segments is not None else settings.road_graph_merge_max_segments
        )
        self.intersection_threshold_m = float(
            intersection_threshold_m
            if intersection_threshold_m is not None
            else settings.road_graph_intersection_threshold_m
        )
        self.grid_bucket_deg = float(grid_bucket_deg if grid_bucket_deg is not None else settings.road_graph_grid_bucket_deg)
        self.default_snap_distance_m = float(
            default_snap_distance_m if default_snap_distance_m is not None else settings.route_max_snap_distance_m
        )
        self.nodes: dict[str, GraphNode] = {}
        self.initialized = False
        self._lock = threading.RLock()
        self._grid_index: dict[tuple[int, int], list[GraphNode]] | None = None
        self._edge_total = 0
        # Build diagnostics live behind their own lock so status() never waits
        # on a build that holds ``_lock``.
        self._status_lock = threading.Lock()
        self._status: dict[str, Any] = {
            "state": "idle",  # idle | loading | ready | failed
            "source": None,
            "ready_at_utc": None,
            "build_ms": None,
            "last_error": None,
            "segments_seen": 0,
            "segments_kept": 0,
            "segments_skipped": 0,
            "component_count": 0,
            "largest_component_nodes": 0,
            "largest_component_ratio": 0.0,
        }

    def _set_status(self, **fields: Any) -> None:
        with self._status_lock:
            self._status.update(fields)

    def _status_value(self, key: str) -> Any:
        with self._status_lock:
            return self._status[key]

    # -- construction -------------------------------------------------

    def get_or_create(self, coordinate: Coordinate) -> GraphNode:
        key = node_key(coordinate.lat, coordinate.lon)
        node = self.nodes.get(key)
        if node is None:
            node = GraphNode(key=key, index=len(self.nodes), coordinate=coordinate)
            self.nodes[key] = node
            self._grid_index = None
        return node

    def add_segment(self, segment: RoadSegment, *, merged: Mapping[str, Coordinate] | None = None) -> int:
        start = segment.start
        end = segment.end
        if merged:
            start = merged.get(node_key(start.lat, start.lon), start)
            end = merged.get(node_key(end.lat, end.lon), end)
        from_node = self.get_or_create(start)
        to_node = self.get_or_create(end)
        if from_node is to_node:
            return 0
        road_class = normalize_road_class(segment.road_class)
        dist_m = haversine_m(
            from_node.coordinate.lat,
            from_node.coordinate.lon,
            to_node.coordinate.lat,
            to_node.coordinate.lon,
        )
        speed_mps = max(0.1, float(segment.speed_kph)) / 3.6
        travel_time_s = dist_m / speed_mps
        from_node.edges.append(
            GraphEdge(
                to=to_node.key,
                distance_m=dist_m,
                road_name=segment.name,
                road_class=road_class,
                travel_time_s=travel_time_s,
            )
        )
        if segment.oneway and road_class in RESTRICTED_ONEWAY_CLASSES:
            self._edge_total += 1
            return 1
        to_node.edges.append(
            GraphEdge(
                to=from_node.key,
                distance_m=dist_m,
                road_name=segment.name,
                road_class=road_class,
                travel_time_s=travel_time_s,
            )
        )
        self._edge_total += 2
        return 2

    def build(self, records: Iterable[RoadSegment | Mapping[str, Any]], *, source: str = "segments") -> None:
        with self._lock:
            if self.initialized:
                return
            self._set_status(state="loading", source=source)
            self._build_locked(list(records))

    def ensure_built(
        self,
        primary: SegmentProvider | None,
        fallback: SegmentProvider | None = None,
    ) -> RoadGraph:
        """Build from ``primary``, switching to ``fallback`` when it fails or is empty.

        Raises :class:`RoutingDataError` only when every provider failed; the
        graph then stays uninitialized so a later call can retry.
        """
        if self.initialized:
            return self
        with self._lock:
            if self.initialized:
                return self
            self._set_status(state="loading", last_error=None)
            records: list[RoadSegment | Mapping[str, Any]] = []
            source = ""
            failures: list[str] = []
            for provider in (primary, fallback):
                if provider is None:
                    continue
                try:
                    records = list(provider.load())
                except Exception as exc:
                    failures.append(f"{provider.name}: {type(exc).__name__}: {str(exc).strip()}")
                    log_event(
                        "road_segments_provider_failed",
                        level=logging.WARNING,
                        provider=provider.name,
                        error_type=type(exc).__name__,
                        error_message=str(exc).strip() or type(exc).__name__,
                    )
                    continue
                source = provider.name
                if records:
                    break
                log_event("road_segments_provider_empty", level=logging.WARNING, provider=provider.name)
            if not source and failures:
                self._set_status(state="failed", last_error="; ".join(failures))
                log_event("road_graph_build_failed", level=logging.ERROR, reason="road_segments_unavailable")
                raise RoutingDataError(
                    reason_code="road_segments_unavailable",
                    message="No road segment provider could be read.",
                    details={"failures": failures},
                )
            self._set_status(source=source or "none")
            self._build_locked(records)
        return self

    def _build_locked(self, records: list[RoadSegment | Mapping[str, Any]]) -> None:
        started = time.monotonic()
        self._set_status(segments_seen=len(records))
        segments: list[RoadSegment] = []
        skipped = 0
        for idx, raw in enumerate(records):
            parsed = parse_road_segment(raw)
            if parsed is None:
                skipped += 1
                if skipped <= _SKIPPED_SEGMENT_LOG_LIMIT:
                    log_event("road_segment_skipped", level=logging.WARNING, index=idx, reason="malformed_coordinates")
                continue
            segments.append(parsed)
        self._set_status(segments_skipped=skipped)

        if not segments:
            log_event(
                "road_graph_empty",
                level=logging.WARNING,
                source=self._status_value("source"),
                segments_seen=len(records),
            )
            self._finalize(started, segments_kept=0)
            return

        if len(segments) > self.max_segments:
            log_event(
                "road_graph_segments_truncated",
                segment_count=len(segments),
                max_segments=self.max_segments,
            )
            segments = prioritize_segments(segments, self.max_segments)

        merged: dict[str, Coordinate] | None = None
        if len(segments) < self.merge_max_segments and self.intersection_threshold_m > 0.0:
            merged = merge_intersections(segments, self.intersection_threshold_m)

        total_batches = int(math.ceil(len(segments) / self.batch_size))
        edge_count = 0
        for batch_idx in range(total_batches):
            batch = segments[batch_idx * self.batch_size : (batch_idx + 1) * self.batch_size]
            for segment in batch:
                edge_count += self.add_segment(segment, merged=merged)
            log_event(
                "road_graph_batch_processed",
                level=logging.DEBUG,
                batch=batch_idx + 1,
                total_batches=total_batches,
                batch_segments=len(batch),
                node_count=len(self.nodes),
                edge_count=edge_count,
            )
        self._finalize(started, segments_kept=len(segments))

    def _finalize(self, started_monotonic: float, *, segments_kept: int) -> None:
        self._build_grid_index()
        component_count, largest_nodes, largest_ratio = self._component_summary()
        self._set_status(
            state="ready",
            ready_at_utc=_iso_utc_now(),
            build_ms=round(max(0.0, (time.monotonic() - started_monotonic) * 1000.0), 2),
            segments_kept=int(segments_kept),
            component_count=component_count,
            largest_component_nodes=largest_nodes,
            largest_component_ratio=largest_ratio,
        )
        self.initialized = True
        snapshot = self.status()
        log_event(
            "road_graph_built",
            source=snapshot["source"],
            node_count=snapshot["node_count"],
            edge_count=snapshot["edge_count"],
            segments_seen=snapshot["segments_seen"],
            segments_kept=snapshot["segments_kept"],
            segments_skipped=snapshot["segments_skipped"],
            component_count=component_count,
            largest_component_ratio=round(largest_ratio, 6),
            build_ms=snapshot["build_ms"],
        )

    # -- queries ------------------------------------------------------

    @property
    def edge_count(self) -> int:
        return self._edge_total

    def _grid_key(self, lat: float, lon: float) -> tuple[int, int]:
        return (int(math.floor(lat / self.grid_bucket_deg)), int(math.floor(lon / self.grid_bucket_deg)))

    def _build_grid_index(self) -> dict[tuple[int, int], list[GraphNode]]:
        grid: dict[tuple[int, int], list[GraphNode]] = {}
        for node in self.nodes.values():
            grid.setdefault(self._grid_key(node.coordinate.lat, node.coordinate.lon), []).append(node)
        self._grid_index = grid
        return grid

    def _candidate_nodes(self, point: Coordinate, limit_m: float) -> Iterable[GraphNode]:
        lat_span = limit_m / METERS_PER_DEGREE_LAT
        lat_lo = point.lat - lat_span
        lat_hi = point.lat + lat_span
        max_abs_lat = max(abs(lat_lo), abs(lat_hi))
        if max_abs_lat >= 89.0:
            return self.nodes.values()
        lon_span = lat_span / math.cos(math.radians(max_abs_lat))
        lon_lo = point.lon - lon_span
        lon_hi = point.lon + lon_span
        if lon_lo < -180.0 or lon_hi > 180.0:
            return self.nodes.values()
        row_lo, col_lo = self._grid_key(lat_lo, lon_lo)
        row_hi, col_hi = self._grid_key(lat_hi, lon_hi)
        # One spare cell on each side absorbs the spherical approximation.
        row_lo, col_lo, row_hi, col_hi = row_lo - 1, col_lo - 1, row_hi + 1, col_hi + 1
        if (row_hi - row_lo + 1) * (col_hi - col_lo + 1) >= len(self.nodes):
            return self.nodes.values()
        grid = self._grid_index if self._grid_index is not None else self._build_grid_index()
        out: list[GraphNode] = []
        for row in range(row_lo, row_hi + 1):
            for col in range(col_lo, col_hi + 1):
                out.extend(grid.get((row, col), ()))
        return out

    def nearest_node(
        self,
        point: Coordinate,
        max_distance_m: float | None = None,
    ) -> tuple[GraphNode | None, float]:
        limit_m = float(max_distance_m if max_distance_m is not None else self.default_snap_distance_m)
        if not self.nodes or not math.isfinite(limit_m) or limit_m <= 0.0:
            return None, float("inf")
        best: GraphNode | None = None
        best_dist = limit_m
        for node in self._candidate_nodes(point, limit_m):
            dist = haversine_m(point.lat, point.lon, node.coordinate.lat, node.coordinate.lon)
            if dist < best_dist or (best is not None and dist == best_dist and node.index < best.index):
                best = node
                best_dist = dist
        if best is None:
            return None, float("inf")
        return best, best_dist

    def _component_summary(self) -> tuple[int, int, float]:
        undirected: dict[str, set[str]] = {key: set() for key in self.nodes}
        for key, node in self.nodes.items():
            for edge in node.edges:
                undirected[key].add(edge.to)
                undirected[edge.to].add(key)
        seen: set[str] = set()
        component_count = 0
        largest = 0
        for key in self.nodes:
            if key in seen:
                continue
            component_count += 1
            size = 0
            q: deque[str] = deque([key])
            seen.add(key)
            while q:
                current = q.popleft()
                size += 1
                for nxt in undirected[current]:
                    if nxt not in seen:
                        seen.add(nxt)
                        q.append(nxt)
            largest = max(largest, size)
        ratio = float(largest) / float(len(self.nodes)) if self.nodes else 0.0
        return component_count, largest, ratio

    def status(self) -> dict[str, Any]:
        """Diagnostics snapshot; safe to call while another thread is building."""
        with self._status_lock:
            snapshot = dict(self._status)
        return {
            "state": snapshot["state"],
            "initialized": bool(self.initialized),
            "source": snapshot["source"],
            "ready_at_utc": snapshot["ready_at_utc"],
            "build_ms": snapshot["build_ms"],
            "last_error": snapshot["last_error"],
            "node_count": len(self.nodes),
            "edge_count": self.edge_count,
            "segments_seen": snapshot["segments_seen"],
            "segments_kept": snapshot["segments_kept"],
            "segments_skipped": snapshot["segments_skipped"],
            "component_count": snapshot["component_count"],
            "largest_component_nodes": snapshot["largest_component_nodes"],
            "largest_component_ratio": snapshot["largest_component_ratio"],
        }
