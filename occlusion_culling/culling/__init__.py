"""Field-of-view culling, occlusion estimation and point-set matching."""

from occlusion_culling.culling.frustum import FieldOfView, Frustum, cull
from occlusion_culling.culling.occlusion import OcclusionEstimator, estimate_visibility
from occlusion_culling.culling.point_set import PointSetIndex, contains, difference, union

__all__ = [
    "FieldOfView",
    "Frustum",
    "cull",
    "OcclusionEstimator",
    "estimate_visibility",
    "PointSetIndex",
    "contains",
    "difference",
    "union",
]
