"""Pydantic models for visualization artifacts (FOV wireframes, visible points).

These are one-way exports: a sink receives them for display and never
feeds anything back into the visibility core.
"""

from __future__ import annotations

import time
from typing import Optional, Protocol

import numpy as np
from pydantic import BaseModel, Field

from occlusion_culling.coverage.aggregator import CoverageState, FoldReport
from occlusion_culling.culling.frustum import Frustum
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.model import VisibleSubset

# Corner index pairs of the 12 frustum edges (corners: near 0-3, far 4-7)
_FRUSTUM_EDGES = [
    (0, 1), (1, 2), (2, 3), (3, 0),  # near rectangle
    (4, 5), (5, 6), (6, 7), (7, 4),  # far rectangle
    (0, 4), (1, 5), (2, 6), (3, 7),  # side edges
]


class VisualizationSink(Protocol):
    """Anything that accepts a message on a topic (bus publisher, viewer, list)."""

    def publish(self, topic: str, message: BaseModel) -> object: ...


class PoseMessage(BaseModel):
    """Sensor pose in the world frame."""
    position: list[float] = Field(description="[x, y, z] in meters")
    orientation: list[float] = Field(description="Quaternion [x, y, z, w]")

    @classmethod
    def from_pose(cls, pose: Pose) -> PoseMessage:
        return cls(position=list(pose.position), orientation=list(pose.orientation))


class FrustumWireframeMessage(BaseModel):
    """Edges of the sensor view volume as world-frame line segments."""

    pose: PoseMessage
    corners: list[list[float]] = Field(description="8 corners, near plane first")
    segments: list[list[list[float]]] = Field(
        description="12 segments, each [[x0, y0, z0], [x1, y1, z1]]"
    )
    color: list[float] = Field(default=[0.0, 1.0, 0.0], description="[r, g, b] 0-1")
    timestamp: float = 0.0


class VisibleCloudMessage(BaseModel):
    """Points observable from one pose."""

    pose: PoseMessage
    points: list[list[float]] = Field(default_factory=list, description="[x, y, z] per point")
    visible_count: int = 0
    frustum_count: int = Field(default=0, description="Points inside the FOV before occlusion")
    color: list[float] = Field(default=[1.0, 0.0, 0.0], description="[r, g, b] 0-1")
    timestamp: float = 0.0


class CoverageUpdateMessage(BaseModel):
    """Campaign progress after folding a pose."""

    coverage_ratio: float = Field(ge=0.0, le=1.0)
    covered_points: int = 0
    total_points: int = 0
    newly_covered: int = 0
    poses_folded: int = 0
    mean_accuracy: Optional[float] = None
    timestamp: float = 0.0


def build_fov_wireframe(frustum: Frustum, color: Optional[list[float]] = None) -> FrustumWireframeMessage:
    corners = frustum.corners_world()
    segments = [[corners[a].tolist(), corners[b].tolist()] for a, b in _FRUSTUM_EDGES]
    msg = FrustumWireframeMessage(
        pose=PoseMessage.from_pose(frustum.pose),
        corners=corners.tolist(),
        segments=segments,
        timestamp=time.time(),
    )
    if color is not None:
        msg.color = list(color)
    return msg


def build_visible_cloud(subset: VisibleSubset, max_points: Optional[int] = None) -> VisibleCloudMessage:
    """Message for a visible subset; `max_points` evenly subsamples large clouds."""
    points = subset.points
    if max_points is not None and len(points) > max_points > 0:
        keep = np.linspace(0, len(points) - 1, max_points).astype(np.intp)
        points = points[keep]
    return VisibleCloudMessage(
        pose=PoseMessage.from_pose(subset.pose),
        points=np.asarray(points).tolist(),
        visible_count=len(subset.indices),
        frustum_count=len(subset.frustum_indices),
        timestamp=time.time(),
    )


def build_coverage_update(state: CoverageState, report: Optional[FoldReport] = None) -> CoverageUpdateMessage:
    return CoverageUpdateMessage(
        coverage_ratio=state.ratio,
        covered_points=state.covered_count,
        total_points=state.total_points,
        newly_covered=state.newly_covered,
        poses_folded=state.poses_folded,
        mean_accuracy=None if report is None else report.mean_accuracy,
        timestamp=time.time(),
    )
