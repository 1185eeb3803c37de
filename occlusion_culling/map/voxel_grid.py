"""Sparse voxel grid over a point cloud.

Partitions the model's bounding box into fixed-size cells and records
which point indices fall into each cell. Cells are stored sparsely as a
dict keyed by integer (i, j, k) triples, so memory scales with the number
of occupied cells rather than with the bounding-box volume.

Exposes occupancy queries for the occlusion estimator and neighbourhood
lookups for tolerance-based point matching.
"""

from __future__ import annotations

import itertools
import logging
import math
import warnings
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from occlusion_culling.errors import DegenerateGridError, EmptyModelWarning
from occlusion_culling.model import as_points

logger = logging.getLogger(__name__)

Cell = Tuple[int, int, int]

# Slack for points that sit exactly on the bounding box faces
BOUNDS_EPSILON = 1e-9


def _normalize_leaf_size(leaf_size) -> np.ndarray:
    leaf = np.asarray(leaf_size, dtype=np.float64).reshape(-1)
    if leaf.size == 1:
        leaf = np.repeat(leaf, 3)
    if leaf.shape != (3,):
        raise DegenerateGridError(f"Leaf size must be a scalar or 3 values, got {leaf.tolist()}")
    if not np.isfinite(leaf).all() or (leaf <= 0).any():
        raise DegenerateGridError(f"Leaf size must be > 0 on every axis, got {leaf.tolist()}")
    return leaf


class VoxelGrid:
    """Read-only cell -> point-index mapping over an axis-aligned bounding box.

    Use :func:`build_grid` (or :meth:`VoxelGrid.build`) to construct one.
    An empty grid has no bounding box and occludes nothing.
    """

    def __init__(
        self,
        cells: Dict[Cell, Tuple[int, ...]],
        leaf_size: np.ndarray,
        min_bound: Optional[np.ndarray],
        max_bound: Optional[np.ndarray],
        num_points: int = 0,
        points: Optional[np.ndarray] = None,
    ):
        self.leaf_size = _normalize_leaf_size(leaf_size)
        self._inverse_leaf = 1.0 / self.leaf_size
        self._cells = cells
        self.num_points = num_points
        self._points = points
        if min_bound is None or max_bound is None:
            self.min_bound = None
            self.max_bound = None
            self.divisions = np.zeros(3, dtype=np.int64)
        else:
            self.min_bound = np.asarray(min_bound, dtype=np.float64)
            self.max_bound = np.asarray(max_bound, dtype=np.float64)
            extent = (self.max_bound - self.min_bound) * self._inverse_leaf
            self.divisions = np.array(
                [math.ceil(e) + 1 for e in extent.tolist()], dtype=np.int64
            )

    # -- construction ----------------------------------------------------

    @classmethod
    def build(cls, cloud, leaf_size) -> VoxelGrid:
        """Assign every point of `cloud` to its cell.

        Raises DegenerateGridError for a non-positive leaf size. An empty
        cloud issues EmptyModelWarning and yields an empty grid.
        """
        leaf = _normalize_leaf_size(leaf_size)
        pts = as_points(cloud)

        if len(pts) == 0:
            logger.warning("Building voxel grid over an empty model; nothing will occlude")
            warnings.warn(
                "Model has no points; voxel grid is empty", EmptyModelWarning, stacklevel=2
            )
            return cls({}, leaf, None, None, num_points=0)

        if not np.isfinite(pts).all():
            raise DegenerateGridError("Model contains non-finite point coordinates")

        min_bound = pts.min(axis=0)
        max_bound = pts.max(axis=0)
        grid = cls({}, leaf, min_bound, max_bound, num_points=len(pts), points=pts)

        keys = grid._local_cells(pts)
        unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        order = np.argsort(inverse, kind="stable")
        splits = np.cumsum(np.bincount(inverse, minlength=len(unique_keys)))[:-1]
        groups = np.split(order, splits)
        grid._cells = {
            tuple(int(v) for v in key): tuple(int(i) for i in group)
            for key, group in zip(unique_keys.tolist(), groups)
        }

        logger.info(
            "Voxel grid built: %d points -> %d occupied cells, divisions=%s, leaf=%s",
            len(pts), len(grid._cells), grid.divisions.tolist(), leaf.tolist(),
        )
        return grid

    def _local_cells(self, pts: np.ndarray) -> np.ndarray:
        """Cell indices for points known to lie inside the bbox (clamped)."""
        raw = np.floor((pts - self.min_bound) * self._inverse_leaf).astype(np.int64)
        return np.clip(raw, 0, self.divisions - 1)

    # -- occupancy queries -------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return self.min_bound is None

    @property
    def occupied_count(self) -> int:
        return len(self._cells)

    def occupied_cells(self) -> List[Cell]:
        return list(self._cells.keys())

    def is_occupied(self, cell: Cell) -> bool:
        return tuple(cell) in self._cells

    def points_in_cell(self, cell: Cell) -> Tuple[int, ...]:
        return self._cells.get(tuple(cell), ())

    def contains_cell(self, cell: Cell) -> bool:
        if self.is_empty:
            return False
        c = np.asarray(cell)
        return bool(((c >= 0) & (c < self.divisions)).all())

    def contains_point(self, point) -> bool:
        if self.is_empty:
            return False
        p = np.asarray(point, dtype=np.float64)
        return bool(
            ((p >= self.min_bound - BOUNDS_EPSILON) & (p <= self.max_bound + BOUNDS_EPSILON)).all()
        )

    def cell_of(self, point) -> Optional[Cell]:
        """Cell containing `point`, or None if it lies outside the bbox."""
        if not self.contains_point(point):
            return None
        p = np.asarray(point, dtype=np.float64).reshape(1, 3)
        return tuple(int(v) for v in self._local_cells(p)[0])

    def raw_cell(self, point) -> Cell:
        """Unclamped cell coordinate of `point`; may fall outside the grid."""
        if self.is_empty:
            raise DegenerateGridError("Empty grid has no cell coordinates")
        p = np.asarray(point, dtype=np.float64)
        return tuple(int(v) for v in np.floor((p - self.min_bound) * self._inverse_leaf))

    def to_local(self, point) -> np.ndarray:
        """Point expressed in continuous cell units relative to the bbox minimum."""
        return (np.asarray(point, dtype=np.float64) - self.min_bound) * self._inverse_leaf

    def cell_center(self, cell: Cell) -> np.ndarray:
        """World coordinate of the centre of `cell`."""
        if self.is_empty:
            raise DegenerateGridError("Empty grid has no cell coordinates")
        return self.min_bound + (np.asarray(cell, dtype=np.float64) + 0.5) * self.leaf_size

    def occupied_centers(self) -> np.ndarray:
        """All occupied cell centres as (M, 3)."""
        if not self._cells:
            return np.zeros((0, 3), dtype=np.float64)
        cells = np.array(list(self._cells.keys()), dtype=np.float64)
        return self.min_bound + (cells + 0.5) * self.leaf_size

    def downsample(self) -> np.ndarray:
        """Centroid of each occupied cell's member points as (M, 3).

        Rows follow :meth:`occupied_cells` order. Only grids made by
        :meth:`build` (or derived from one) keep the member points.
        """
        if not self._cells:
            return np.zeros((0, 3), dtype=np.float64)
        if self._points is None:
            raise DegenerateGridError("Grid was built without its member points")
        groups = list(self._cells.values())
        counts = np.fromiter((len(g) for g in groups), dtype=np.int64, count=len(groups))
        order = np.fromiter(
            itertools.chain.from_iterable(groups), dtype=np.intp, count=int(counts.sum())
        )
        starts = np.concatenate(([0], np.cumsum(counts)[:-1]))
        sums = np.add.reduceat(self._points[order], starts, axis=0)
        return sums / counts[:, np.newaxis]

    def neighbor_indices(self, point, radius_cells: int = 1) -> List[int]:
        """Point indices in the cells within `radius_cells` of `point`'s cell.

        Works for query points outside the bbox as well; cells that do not
        exist simply contribute nothing.
        """
        if not self._cells:
            return []
        ci, cj, ck = self.raw_cell(point)
        found: List[int] = []
        r = int(radius_cells)
        for dx in range(-r, r + 1):
            for dy in range(-r, r + 1):
                for dz in range(-r, r + 1):
                    found.extend(self._cells.get((ci + dx, cj + dy, ck + dz), ()))
        return found

    def clip_segment(
        self, origin, target, epsilon: float = BOUNDS_EPSILON
    ) -> Optional[Tuple[float, float]]:
        """Slab test of the segment origin->target against the bbox.

        The box is grown by `epsilon` on every side. Returns (t_enter, t_exit)
        as fractions of the segment in [0, 1], or None when it misses the box.
        """
        if self.is_empty:
            return None
        o = np.asarray(origin, dtype=np.float64)
        d = np.asarray(target, dtype=np.float64) - o
        lo = self.min_bound - epsilon
        hi = self.max_bound + epsilon
        t_enter, t_exit = 0.0, 1.0
        for axis in range(3):
            if abs(d[axis]) < 1e-15:
                if o[axis] < lo[axis] or o[axis] > hi[axis]:
                    return None
                continue
            t0 = (lo[axis] - o[axis]) / d[axis]
            t1 = (hi[axis] - o[axis]) / d[axis]
            if t0 > t1:
                t0, t1 = t1, t0
            t_enter = max(t_enter, t0)
            t_exit = min(t_exit, t1)
            if t_enter > t_exit:
                return None
        return t_enter, t_exit

    def without_cells(self, cells: Iterable[Cell]) -> VoxelGrid:
        """Copy of this grid with `cells` cleared; bbox and divisions unchanged."""
        drop = {tuple(c) for c in cells}
        kept = {k: v for k, v in self._cells.items() if k not in drop}
        grid = VoxelGrid(
            kept, self.leaf_size, self.min_bound, self.max_bound, self.num_points, self._points
        )
        # Divisions stay fixed even if the cleared cells defined the bbox
        grid.divisions = self.divisions.copy()
        return grid

    def get_stats(self) -> Dict[str, Any]:
        return {
            "num_points": self.num_points,
            "occupied_cells": self.occupied_count,
            "divisions": self.divisions.tolist(),
            "leaf_size": self.leaf_size.tolist(),
            "bounds": {
                "min": None if self.is_empty else self.min_bound.tolist(),
                "max": None if self.is_empty else self.max_bound.tolist(),
            },
        }


def build_grid(model, leaf_size) -> VoxelGrid:
    """Build the voxel grid of `model` (PointCloud or (N, 3) array)."""
    return VoxelGrid.build(model, leaf_size)
