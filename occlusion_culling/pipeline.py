"""
Per-pose visibility queries and multi-pose campaigns.

    grid = build_grid(model, leaf_size=0.5)
    subset = query_visible(pose, fov, model, grid)
    state = fold_coverage(CoverageState.empty(len(model)), subset)

VisibilityPlanner bundles the same steps for a whole campaign: poses are
evaluated concurrently (each query is read-only against the model and grid)
and folded into coverage one at a time, in input order.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence, Tuple

from occlusion_culling.config import CullingConfig
from occlusion_culling.coverage.accuracy import AccuracyModel, AccuracyTracker
from occlusion_culling.coverage.aggregator import (
    CoverageAggregator,
    CoverageState,
    FoldReport,
    query_accuracy,
    voxel_coverage,
)
from occlusion_culling.culling.frustum import DEFAULT_EPSILON, FieldOfView, Frustum, cull
from occlusion_culling.culling.occlusion import OcclusionEstimator
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.map.voxel_grid import VoxelGrid, build_grid
from occlusion_culling.messages.topics import Topics
from occlusion_culling.messages.visualization import (
    VisualizationSink,
    build_coverage_update,
    build_fov_wireframe,
    build_visible_cloud,
)
from occlusion_culling.model import PointCloud, VisibleSubset, as_points

logger = logging.getLogger(__name__)


def query_visible(
    pose: Pose,
    fov: FieldOfView,
    model,
    grid: VoxelGrid,
    estimator: Optional[OcclusionEstimator] = None,
    epsilon: float = DEFAULT_EPSILON,
) -> VisibleSubset:
    """Model points inside the FOV at `pose` and not occluded by the model."""
    pts = as_points(model)
    frustum_idx = cull(pts, pose, fov, epsilon=epsilon)
    if len(frustum_idx) == 0:
        visible_idx = frustum_idx
    else:
        estimator = estimator or OcclusionEstimator(grid)
        mask = estimator.visible_mask(pts[frustum_idx], pose.translation)
        visible_idx = frustum_idx[mask]
    logger.debug(
        "Pose %s: %d in frustum, %d visible",
        pose.position, len(frustum_idx), len(visible_idx),
    )
    return VisibleSubset(
        pose=pose,
        indices=visible_idx,
        points=pts[visible_idx],
        frustum_indices=frustum_idx,
    )


def campaign_accuracy_range(
    pose_sets: Iterable[Sequence[Pose]],
    fov: FieldOfView,
    model: PointCloud,
    grid: VoxelGrid,
    accuracy_model: Optional[AccuracyModel] = None,
    estimator: Optional[OcclusionEstimator] = None,
) -> Tuple[Optional[float], Optional[float]]:
    """Global (min, max) of per-pose mean accuracy across candidate pose sets.

    Poses that see nothing are skipped. Returns (None, None) when no pose in
    any set sees a point.
    """
    tracker = AccuracyTracker()
    estimator = estimator or OcclusionEstimator(grid)
    for pose_set in pose_sets:
        for pose in pose_set:
            subset = query_visible(pose, fov, model, grid, estimator)
            if subset.is_empty:
                continue
            tracker.update(query_accuracy(subset, pose, model, accuracy_model))
    lo, hi = tracker.range
    logger.info("Campaign accuracy range over %d poses: %s .. %s", tracker.count, lo, hi)
    return lo, hi


class VisibilityPlanner:
    """Campaign facade: owns the model index, FOV and coverage aggregator.

    Parameters
    ----------
    model : PointCloud
        Static surface model.
    config : CullingConfig, optional
        Grid, frustum, occlusion and accuracy parameters.
    sink : VisualizationSink, optional
        Receives FOV wireframes, visible clouds and coverage updates.
    """

    def __init__(
        self,
        model: PointCloud,
        config: Optional[CullingConfig] = None,
        sink: Optional[VisualizationSink] = None,
    ):
        self.model = model
        self.config = config or CullingConfig()
        self.sink = sink
        self.fov = self.config.field_of_view()
        self.epsilon = float(self.config.get("frustum", "epsilon"))
        self.grid = build_grid(model, self.config.leaf_size())
        self.estimator = OcclusionEstimator(
            self.grid,
            boundary_epsilon=float(self.config.get("occlusion", "boundary_epsilon")),
            workers=int(self.config.get("occlusion", "workers")),
        )
        self.aggregator = CoverageAggregator(
            model,
            tolerance=float(self.config.get("set_algebra", "tolerance")),
            accuracy_model=self.config.accuracy_model(),
        )
        self._pose_workers = max(1, int(self.config.get("planner", "pose_workers")))
        self._max_marker_points = self.config.get("planner", "max_marker_points")
        self._stop = threading.Event()

    # -- queries -----------------------------------------------------------

    def query(self, pose: Pose) -> VisibleSubset:
        """Visible subset at `pose`; does not touch campaign state."""
        return query_visible(pose, self.fov, self.model, self.grid, self.estimator, self.epsilon)

    def accuracy(self, subset: VisibleSubset) -> float:
        return query_accuracy(subset, subset.pose, self.model, self.aggregator.accuracy_model)

    def accuracy_range(self, pose_sets: Iterable[Sequence[Pose]]) -> Tuple[Optional[float], Optional[float]]:
        return campaign_accuracy_range(
            pose_sets, self.fov, self.model, self.grid,
            self.aggregator.accuracy_model, self.estimator,
        )

    # -- campaign ----------------------------------------------------------

    @property
    def state(self) -> CoverageState:
        return self.aggregator.state

    def fold(self, subset: VisibleSubset) -> FoldReport:
        report = self.aggregator.fold(subset)
        self._publish(subset, report)
        return report

    def evaluate(self, poses: Sequence[Pose]) -> List[FoldReport]:
        """Query every pose and fold the results into coverage in input order.

        Stops folding once :meth:`stop` has been called; queries already
        running finish but their results are discarded.
        """
        self._stop.clear()
        poses = list(poses)
        reports: List[FoldReport] = []
        if self._pose_workers == 1 or len(poses) < 2:
            for pose in poses:
                if self._stop.is_set():
                    break
                reports.append(self.fold(self.query(pose)))
        else:
            with ThreadPoolExecutor(max_workers=self._pose_workers) as pool:
                for subset in pool.map(self.query, poses):
                    if self._stop.is_set():
                        break
                    reports.append(self.fold(subset))
        if self._stop.is_set():
            logger.warning("Campaign stopped after %d of %d poses", len(reports), len(poses))
        return reports

    def stop(self) -> None:
        """Stop folding further poses into the campaign."""
        self._stop.set()

    def reset(self) -> None:
        self.aggregator.reset()

    # -- visualization -----------------------------------------------------

    def _publish(self, subset: VisibleSubset, report: FoldReport) -> None:
        if self.sink is None:
            return
        frustum = Frustum(subset.pose, self.fov, epsilon=self.epsilon)
        self.sink.publish(Topics.FOV_WIREFRAME, build_fov_wireframe(frustum))
        self.sink.publish(
            Topics.VISIBLE_CLOUD, build_visible_cloud(subset, self._max_marker_points)
        )
        self.sink.publish(Topics.COVERAGE_UPDATE, build_coverage_update(self.state, report))

    def summary(self) -> dict:
        lo, hi = self.aggregator.accuracy.range
        state = self.state
        return {
            "coverage": state.to_dict(),
            "voxel_coverage": round(voxel_coverage(self.grid, state.covered), 6),
            "accuracy_range": [lo, hi],
            "grid": self.grid.get_stats(),
        }

