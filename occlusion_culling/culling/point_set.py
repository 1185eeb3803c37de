"""
Tolerance-based set operations on point clouds.

Two points are "the same" when their Euclidean distance is below the
tolerance. PointSetIndex buckets a reference cloud on an absolute lattice
whose cell edge equals the tolerance, so a lookup only compares against the
27 cells around the query. The index is append-only: coverage folds extend
it with newly covered points instead of re-indexing everything seen so far.

One-off `contains` queries against a plain cloud skip indexing and scan the
cloud with a single vectorized distance test.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Tuple

import numpy as np

from occlusion_culling.model import as_points

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-4

_NEIGHBOR_OFFSETS = [
    (dx, dy, dz) for dx in (-1, 0, 1) for dy in (-1, 0, 1) for dz in (-1, 0, 1)
]


def _check_tolerance(tolerance: float) -> float:
    tol = float(tolerance)
    if not np.isfinite(tol) or tol <= 0.0:
        raise ValueError(f"Tolerance must be a positive finite distance, got {tolerance}")
    return tol


class PointSetIndex:
    """Append-only bucketed lookup over a reference cloud.

    Parameters
    ----------
    cloud : PointCloud or array-like, optional
        Initial reference points.
    tolerance : float
        Match distance; also the lattice cell edge.
    """

    def __init__(self, cloud=None, tolerance: float = DEFAULT_TOLERANCE):
        self.tolerance = _check_tolerance(tolerance)
        self._inverse = 1.0 / self.tolerance
        self._tol_sq = self.tolerance * self.tolerance
        self._cells: Dict[Tuple[int, int, int], List[int]] = {}
        self._buffer = np.zeros((0, 3), dtype=np.float64)
        self._size = 0
        if cloud is not None:
            self.extend(cloud)

    def __len__(self) -> int:
        return self._size

    @property
    def points(self) -> np.ndarray:
        """Read-only (K, 3) view of the indexed points, in insertion order.

        Later `extend` calls never alter rows already returned.
        """
        view = self._buffer[: self._size]
        view.flags.writeable = False
        return view

    def extend(self, points) -> None:
        """Append `points` to the index (no de-duplication)."""
        pts = as_points(points)
        if len(pts) == 0:
            return
        if not np.isfinite(pts).all():
            raise ValueError("Cannot index non-finite point coordinates")

        needed = self._size + len(pts)
        if needed > len(self._buffer):
            capacity = max(needed, 2 * len(self._buffer), 64)
            grown = np.empty((capacity, 3), dtype=np.float64)
            grown[: self._size] = self._buffer[: self._size]
            self._buffer = grown
        self._buffer[self._size:needed] = pts

        keys = np.floor(pts * self._inverse).astype(np.int64).tolist()
        cells = self._cells
        for offset, (i, j, k) in enumerate(keys, start=self._size):
            bucket = cells.get((i, j, k))
            if bucket is None:
                cells[(i, j, k)] = [offset]
            else:
                bucket.append(offset)
        self._size = needed

    def _match(self, x: float, y: float, z: float) -> bool:
        i = math.floor(x * self._inverse)
        j = math.floor(y * self._inverse)
        k = math.floor(z * self._inverse)
        cells = self._cells
        buf = self._buffer
        for dx, dy, dz in _NEIGHBOR_OFFSETS:
            bucket = cells.get((i + dx, j + dy, k + dz))
            if bucket is None:
                continue
            for idx in bucket:
                px, py, pz = buf[idx]
                ex, ey, ez = px - x, py - y, pz - z
                if ex * ex + ey * ey + ez * ez < self._tol_sq:
                    return True
        return False

    def contains(self, point) -> bool:
        if self._size == 0:
            return False
        x, y, z = (float(v) for v in np.asarray(point, dtype=np.float64).reshape(3))
        return self._match(x, y, z)

    def contains_mask(self, points) -> np.ndarray:
        pts = as_points(points)
        if self._size == 0:
            return np.zeros(len(pts), dtype=bool)
        return np.array([self._match(x, y, z) for x, y, z in pts.tolist()], dtype=bool)

    def add_unmatched(self, points) -> np.ndarray:
        """Append the points of `points` with no match in the index; return them.

        Points are matched against the index as it was before the call.
        """
        pts = as_points(points)
        new_points = pts[~self.contains_mask(pts)]
        self.extend(new_points)
        return new_points


def contains(cloud, point, tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """True iff some point of `cloud` lies within `tolerance` of `point`.

    `cloud` may be a prebuilt PointSetIndex; otherwise the cloud is scanned
    directly.
    """
    if isinstance(cloud, PointSetIndex):
        return cloud.contains(point)
    tol = _check_tolerance(tolerance)
    pts = as_points(cloud)
    if len(pts) == 0:
        return False
    diffs = pts - np.asarray(point, dtype=np.float64).reshape(3)
    return bool((np.einsum("ij,ij->i", diffs, diffs) < tol * tol).any())


def _as_index(cloud, tolerance: float) -> PointSetIndex:
    if isinstance(cloud, PointSetIndex):
        return cloud
    return PointSetIndex(cloud, tolerance)


def difference_mask(a, b, tolerance: float = DEFAULT_TOLERANCE) -> np.ndarray:
    """Mask over `a` of points with no tolerance-match in `b` (cloud or index)."""
    pts_a = as_points(a)
    if len(pts_a) == 0:
        return np.zeros(0, dtype=bool)
    return ~_as_index(b, tolerance).contains_mask(pts_a)


def difference(a, b, tolerance: float = DEFAULT_TOLERANCE) -> np.ndarray:
    """Points of `a` (as (K, 3)) with no tolerance-match in `b`, in `a`'s order."""
    pts_a = as_points(a)
    keep = difference_mask(pts_a, b, tolerance)
    logger.debug("Point difference: %d of %d points unmatched", int(keep.sum()), len(pts_a))
    return pts_a[keep]


def union(a, b, tolerance: float = DEFAULT_TOLERANCE) -> np.ndarray:
    """Points of `a` followed by the points of `b` not already in `a`."""
    pts_a = as_points(a)
    extra = difference(b, pts_a, tolerance)
    return np.vstack([pts_a, extra]) if len(extra) else pts_a.copy()
