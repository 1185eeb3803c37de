"""
Cross-pose coverage and accuracy aggregation.

CoverageState is an immutable value threaded through fold_coverage():

    state = CoverageState.empty(len(model))
    for subset in subsets:
        state = fold_coverage(state, subset)

Each fold adds the subset's points that are not already covered (within
tolerance), so re-observed points are never double counted. The ratio can
only grow. Covered points live in an append-only PointSetIndex carried by
the state, so a fold only looks up and appends the new subset. CoverageAggregator wraps the same fold behind a lock for callers
that feed results from several workers.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from occlusion_culling.coverage.accuracy import (
    AccuracyModel,
    AccuracyTracker,
    RangeAccuracyModel,
    incidence_angles,
)
from occlusion_culling.culling.point_set import DEFAULT_TOLERANCE, PointSetIndex
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.map.voxel_grid import VoxelGrid
from occlusion_culling.model import PointCloud, VisibleSubset, as_points

logger = logging.getLogger(__name__)


class CoverageStatus(enum.Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"


def _empty_points() -> np.ndarray:
    return np.zeros((0, 3), dtype=np.float64)


@dataclass(frozen=True, eq=False)
class CoverageState:
    """Covered points of a campaign so far.

    Attributes
    ----------
    total_points : int
        Number of points in the model.
    covered_count : int
        Number of unique covered positions.
    newly_covered : int
        Points added by the most recent fold.
    poses_folded : int
        Number of subsets folded in.
    index : PointSetIndex, optional
        Covered positions. Shared with later states, which only append to
        it; `covered` is always the first `covered_count` rows.
    """

    total_points: int
    covered_count: int = 0
    newly_covered: int = 0
    poses_folded: int = 0
    index: Optional[PointSetIndex] = field(default=None, repr=False)

    @classmethod
    def empty(cls, total_points: int) -> CoverageState:
        if total_points < 0:
            raise ValueError(f"total_points must be >= 0, got {total_points}")
        return cls(total_points=int(total_points))

    @property
    def status(self) -> CoverageStatus:
        return CoverageStatus.EMPTY if self.poses_folded == 0 else CoverageStatus.ACCUMULATING

    @property
    def covered(self) -> np.ndarray:
        """(K, 3) unique covered positions, read-only."""
        if self.index is None or self.covered_count == 0:
            return _empty_points()
        return self.index.points[: self.covered_count]

    @property
    def ratio(self) -> float:
        if self.total_points == 0:
            return 0.0
        return min(1.0, self.covered_count / self.total_points)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "covered": self.covered_count,
            "total": self.total_points,
            "ratio": round(self.ratio, 6),
            "newly_covered": self.newly_covered,
            "poses_folded": self.poses_folded,
        }


def fold_coverage(
    state: CoverageState,
    subset,
    tolerance: float = DEFAULT_TOLERANCE,
) -> CoverageState:
    """Return the state with `subset` (VisibleSubset or points) merged in.

    Reuses the index of `state` when `state` is the latest fold over it;
    folding an older state again (or with another tolerance) re-indexes that
    state's covered points first. Callers folding from several threads must
    serialise, as CoverageAggregator does.
    """
    points = subset.points if isinstance(subset, VisibleSubset) else as_points(subset)
    index = state.index
    if index is None or index.tolerance != tolerance or len(index) != state.covered_count:
        index = PointSetIndex(state.covered, tolerance)
    new_points = index.add_unmatched(points)
    folded = CoverageState(
        total_points=state.total_points,
        covered_count=len(index),
        newly_covered=len(new_points),
        poses_folded=state.poses_folded + 1,
        index=index,
    )
    logger.debug(
        "Coverage fold #%d: +%d points, ratio %.4f",
        folded.poses_folded, folded.newly_covered, folded.ratio,
    )
    return folded


def query_accuracy(
    subset: VisibleSubset,
    pose: Optional[Pose] = None,
    model: Optional[PointCloud] = None,
    accuracy_model: Optional[AccuracyModel] = None,
) -> float:
    """Mean accuracy score over the subset's points seen from `pose`.

    Incidence angles are used when `model` carries ``"normals"``. An empty
    subset scores 0.0.
    """
    if subset.is_empty:
        return 0.0
    pose = pose or subset.pose
    scorer = accuracy_model or RangeAccuracyModel()
    origin = pose.translation
    ranges = np.linalg.norm(subset.points - origin, axis=1)
    incidence = None
    if model is not None and model.normals is not None:
        incidence = incidence_angles(subset.points, model.normals[subset.indices], origin)
    return float(np.mean(scorer(ranges, incidence)))


def voxel_coverage(grid: VoxelGrid, points) -> float:
    """Fraction of the grid's occupied cells that contain at least one of `points`."""
    if grid.occupied_count == 0:
        return 0.0
    touched = set()
    for p in as_points(points):
        cell = grid.cell_of(p)
        if cell is not None and grid.is_occupied(cell):
            touched.add(cell)
    return len(touched) / grid.occupied_count


@dataclass
class FoldReport:
    """Outcome of folding one pose into a campaign."""

    pose: Pose
    visible: int
    newly_covered: int
    coverage_ratio: float
    mean_accuracy: float

    def to_dict(self) -> dict:
        return {
            "position": list(self.pose.position),
            "orientation": list(self.pose.orientation),
            "visible": self.visible,
            "newly_covered": self.newly_covered,
            "coverage_ratio": round(self.coverage_ratio, 6),
            "mean_accuracy": round(self.mean_accuracy, 6),
        }


class CoverageAggregator:
    """Single-writer owner of a campaign's coverage state and accuracy range."""

    def __init__(
        self,
        model: PointCloud,
        tolerance: float = DEFAULT_TOLERANCE,
        accuracy_model: Optional[AccuracyModel] = None,
    ):
        self.model = model
        self.tolerance = tolerance
        self.accuracy_model = accuracy_model or RangeAccuracyModel()
        self.accuracy = AccuracyTracker()
        self._lock = threading.Lock()
        self._state = CoverageState.empty(len(model))

    @property
    def state(self) -> CoverageState:
        with self._lock:
            return self._state

    def fold(self, subset: VisibleSubset) -> FoldReport:
        mean_acc = query_accuracy(subset, subset.pose, self.model, self.accuracy_model)
        with self._lock:
            self._state = fold_coverage(self._state, subset, self.tolerance)
            state = self._state
        if not subset.is_empty:
            self.accuracy.update(mean_acc)
        return FoldReport(
            pose=subset.pose,
            visible=len(subset),
            newly_covered=state.newly_covered,
            coverage_ratio=state.ratio,
            mean_accuracy=mean_acc,
        )

    def reset(self) -> None:
        with self._lock:
            self._state = CoverageState.empty(len(self.model))
        self.accuracy.reset()
