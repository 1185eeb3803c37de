"""
occlusion_culling: visibility, occlusion and coverage queries for view planning.

Given a static point-cloud model and candidate sensor poses, determines
which model points are inside the sensor's field of view and not blocked
by other model geometry, and folds that visibility across poses into a
running coverage ratio and accuracy estimate.
"""

from occlusion_culling.config import CullingConfig
from occlusion_culling.coverage import (
    CoverageAggregator,
    CoverageState,
    RangeAccuracyModel,
    fold_coverage,
    query_accuracy,
)
from occlusion_culling.culling import FieldOfView, Frustum, OcclusionEstimator, contains, difference
from occlusion_culling.errors import (
    CullingError,
    DegenerateGridError,
    EmptyModelWarning,
    InvalidFieldOfViewError,
    InvalidPoseError,
)
from occlusion_culling.geometry import Pose
from occlusion_culling.map import VoxelGrid, build_grid
from occlusion_culling.model import PointCloud, VisibleSubset
from occlusion_culling.pipeline import VisibilityPlanner, campaign_accuracy_range, query_visible

__version__ = "0.1.0"

__all__ = [
    "CullingConfig",
    "CoverageAggregator",
    "CoverageState",
    "RangeAccuracyModel",
    "fold_coverage",
    "query_accuracy",
    "FieldOfView",
    "Frustum",
    "OcclusionEstimator",
    "contains",
    "difference",
    "CullingError",
    "DegenerateGridError",
    "EmptyModelWarning",
    "InvalidFieldOfViewError",
    "InvalidPoseError",
    "Pose",
    "VoxelGrid",
    "build_grid",
    "PointCloud",
    "VisibleSubset",
    "VisibilityPlanner",
    "campaign_accuracy_range",
    "query_visible",
]
