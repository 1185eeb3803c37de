"""Coverage and accuracy aggregation across poses."""

from occlusion_culling.coverage.accuracy import (
    AccuracyModel,
    AccuracyTracker,
    RangeAccuracyModel,
    incidence_angles,
)
from occlusion_culling.coverage.aggregator import (
    CoverageAggregator,
    CoverageState,
    CoverageStatus,
    FoldReport,
    fold_coverage,
    query_accuracy,
    voxel_coverage,
)

__all__ = [
    "AccuracyModel",
    "AccuracyTracker",
    "RangeAccuracyModel",
    "incidence_angles",
    "CoverageAggregator",
    "CoverageState",
    "CoverageStatus",
    "FoldReport",
    "fold_coverage",
    "query_accuracy",
    "voxel_coverage",
]
