from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Reason codes surfaced to callers when the road network cannot be loaded.
FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "road_segments_unavailable",
        "road_segment_asset_missing",
        "road_segment_asset_invalid",
        "road_graph_build_failed",
    }
)


def normalize_reason_code(reason_code: str, *, default: str = "road_graph_build_failed") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default


@dataclass
class RoutingDataError(RuntimeError):
    """Road data could not be read; path queries never raise this once a graph exists."""

    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        self.reason_code = normalize_reason_code(self.reason_code)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"reason_code": self.reason_code, "message": self.message}
        if self.details:
            payload["details"] = dict(self.details)
        return payload
