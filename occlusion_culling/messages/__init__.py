"""Pydantic message schemas for the visualization sink."""

from occlusion_culling.messages.topics import Topics
from occlusion_culling.messages.visualization import (
    CoverageUpdateMessage,
    FrustumWireframeMessage,
    PoseMessage,
    VisibleCloudMessage,
    VisualizationSink,
    build_coverage_update,
    build_fov_wireframe,
    build_visible_cloud,
)

__all__ = [
    "Topics",
    "CoverageUpdateMessage",
    "FrustumWireframeMessage",
    "PoseMessage",
    "VisibleCloudMessage",
    "VisualizationSink",
    "build_coverage_update",
    "build_fov_wireframe",
    "build_visible_cloud",
]
