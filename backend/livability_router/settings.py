from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _running_in_docker() -> bool:
    """Best-effort check for container execution.

    Used only to pick sensible defaults. Environment variables always win.
    """
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _default_out_dir() -> str:
    if _running_in_docker():
        return "/app/out"
    return str(Path(__file__).resolve().parents[1] / "out")


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping routing thresholds out of code."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default_factory=_default_out_dir, alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Primary road segment asset. Empty means "use the curated fallback list only".
    road_segments_path: str = Field(default="", alias="ROAD_SEGMENTS_PATH")

    # Graph construction
    road_graph_max_segments: int = Field(default=50_000, ge=1, alias="ROAD_GRAPH_MAX_SEGMENTS")
    road_graph_batch_size: int = Field(default=1_000, ge=1, alias="ROAD_GRAPH_BATCH_SIZE")
    road_graph_merge_max_segments: int = Field(
        default=1_000,
        ge=0,
        alias="ROAD_GRAPH_MERGE_MAX_SEGMENTS",
    )
    road_graph_intersection_threshold_m: float = Field(
        default=50.0,
        ge=0.0,
        le=500.0,
        alias="ROAD_GRAPH_INTERSECTION_THRESHOLD_M",
    )
    road_graph_grid_bucket_deg: float = Field(
        default=0.01,
        gt=0.0,
        le=1.0,
        alias="ROAD_GRAPH_GRID_BUCKET_DEG",
    )

    # Snapping and search
    route_max_snap_distance_m: float = Field(default=500.0, gt=0.0, alias="ROUTE_MAX_SNAP_DISTANCE_M")
    route_direct_distance_m: float = Field(default=200.0, ge=0.0, alias="ROUTE_DIRECT_DISTANCE_M")
    route_close_enough_m: float = Field(default=100.0, ge=0.0, alias="ROUTE_CLOSE_ENOUGH_M")
    route_max_iterations: int = Field(default=2_000, ge=1, alias="ROUTE_MAX_ITERATIONS")
    route_iteration_limit_connect_m: float = Field(
        default=500.0,
        ge=0.0,
        alias="ROUTE_ITERATION_LIMIT_CONNECT_M",
    )
    route_frontier_sampling_enabled: bool = Field(default=True, alias="ROUTE_FRONTIER_SAMPLING_ENABLED")
    route_frontier_sample_size: int = Field(default=1_000, ge=1, alias="ROUTE_FRONTIER_SAMPLE_SIZE")
    route_progress_log_every: int = Field(default=500, ge=1, alias="ROUTE_PROGRESS_LOG_EVERY")

    # Estimate fallbacks
    route_estimate_multiplier: float = Field(default=1.3, ge=1.0, le=3.0, alias="ROUTE_ESTIMATE_MULTIPLIER")
    route_short_estimate_multiplier: float = Field(
        default=1.2,
        ge=1.0,
        le=3.0,
        alias="ROUTE_SHORT_ESTIMATE_MULTIPLIER",
    )
    route_short_estimate_max_m: float = Field(default=500.0, ge=0.0, alias="ROUTE_SHORT_ESTIMATE_MAX_M")

    # Travel time
    walking_speed_mps: float = Field(default=1.4, gt=0.0, le=5.0, alias="WALKING_SPEED_MPS")
    driving_min_distance_m: float = Field(default=300.0, ge=0.0, alias="DRIVING_MIN_DISTANCE_M")
    driving_intersection_spacing_m: float = Field(
        default=500.0,
        gt=0.0,
        alias="DRIVING_INTERSECTION_SPACING_M",
    )
    driving_intersection_delay_s: float = Field(default=20.0, ge=0.0, alias="DRIVING_INTERSECTION_DELAY_S")
    emergency_intersection_delay_s: float = Field(
        default=5.0,
        ge=0.0,
        alias="EMERGENCY_INTERSECTION_DELAY_S",
    )
    emergency_speed_boost: float = Field(default=1.2, gt=0.0, le=3.0, alias="EMERGENCY_SPEED_BOOST")

    @model_validator(mode="after")
    def _clamp_search_thresholds(self) -> "Settings":
        # The short multiplier must never exceed the standard one.
        if self.route_short_estimate_multiplier > self.route_estimate_multiplier:
            self.route_short_estimate_multiplier = self.route_estimate_multiplier
        self.log_level = str(self.log_level or "INFO").strip().upper() or "INFO"
        return self


settings = Settings()
