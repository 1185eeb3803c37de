"""
Ray-based occlusion estimation through a voxel grid.

For each candidate point the ray from the sensor origin is walked cell by
cell with an incremental 3-D DDA (Amanatides & Woo). If any occupied cell
lies strictly before the cell that holds the candidate, the candidate is
occluded.

Policies:
  - Candidate outside the grid bbox (or empty grid): visible. Nothing in
    the model can occlude a point the index knows nothing about.
  - Candidate in the sensor's own cell: visible.
  - Sensor outside the bbox: the ray is clipped to the bbox first and the
    walk starts at the entry cell.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from occlusion_culling.map.voxel_grid import Cell, VoxelGrid

logger = logging.getLogger(__name__)

# Nudge (in cell units) applied to the walk start so boundary points land
# in the cell the ray is entering
BOUNDARY_EPSILON = 1e-9

# Below this many candidates a thread pool costs more than it saves
MIN_CHUNK = 256


class OcclusionEstimator:
    """Read-only visibility queries against a voxel grid.

    Parameters
    ----------
    grid : VoxelGrid
        Occupancy index of the full model.
    boundary_epsilon : float
        Start-point nudge along the ray, in cell units.
    workers : int
        Thread pool size for :meth:`visible_mask`. 1 evaluates inline. The
        walk is pure Python and holds the GIL, so extra workers mostly help
        when callers release it elsewhere; expect modest speedups.
    """

    def __init__(
        self,
        grid: VoxelGrid,
        boundary_epsilon: float = BOUNDARY_EPSILON,
        workers: int = 1,
    ):
        self.grid = grid
        self.boundary_epsilon = float(boundary_epsilon)
        self.workers = max(1, int(workers))

    # -- traversal ---------------------------------------------------------

    def traverse(self, origin, target) -> List[Cell]:
        """Ordered cells crossed by the segment origin->target inside the grid.

        Starts at the bbox entry cell (or the origin's cell if the sensor is
        inside) and ends at the target's cell. Empty when the target lies
        outside the grid.
        """
        cells: List[Cell] = []
        self._walk(origin, target, cells.append)
        return cells

    def _walk(self, origin, target, visit) -> bool:
        """Walk cells towards `target`; stop early when `visit(cell)` is True.

        Returns True if the walk was stopped by `visit`.
        """
        grid = self.grid
        target_cell = grid.cell_of(target)
        if target_cell is None:
            return False

        o = np.asarray(origin, dtype=np.float64)
        t = np.asarray(target, dtype=np.float64)
        # Exact bounds: a target on a face must not pick up a neighbour cell
        clip = grid.clip_segment(o, t, epsilon=0.0)
        if clip is None:
            # Target is inside the bbox, so this only happens through round-off
            return bool(visit(target_cell))
        t_enter = clip[0]

        start = grid.to_local(o + (t - o) * t_enter)
        end = grid.to_local(t)
        direction = end - start
        length = float(np.linalg.norm(direction))
        if length <= self.boundary_epsilon:
            # Ray enters the grid at the target itself
            return bool(visit(target_cell))
        start = start + direction / length * self.boundary_epsilon

        # Per-step work below runs on plain ints and floats
        hi = grid.divisions.tolist()
        start = start.tolist()
        direction = direction.tolist()
        cell = [min(max(math.floor(s), 0), h - 1) for s, h in zip(start, hi)]
        goal = list(target_cell)

        step = [(g > c) - (g < c) for g, c in zip(goal, cell)]
        t_max = [math.inf] * 3
        t_delta = [math.inf] * 3
        for axis in range(3):
            if step[axis] == 0 or abs(direction[axis]) < 1e-15:
                continue
            boundary = cell[axis] + (1 if step[axis] > 0 else 0)
            t_max[axis] = abs((boundary - start[axis]) / direction[axis])
            t_delta[axis] = abs(1.0 / direction[axis])

        # Exactly one step per unit of Manhattan distance; never overshoots
        remaining = sum(abs(g - c) for g, c in zip(goal, cell))
        for _ in range(remaining):
            if visit((cell[0], cell[1], cell[2])):
                return True
            axis = -1
            best = math.inf
            for a in range(3):
                if cell[a] != goal[a] and t_max[a] < best:
                    axis, best = a, t_max[a]
            if axis < 0:
                # Round-off left a pending axis with no crossing; step it anyway
                axis = next(a for a in range(3) if cell[a] != goal[a])
            cell[axis] += step[axis]
            t_max[axis] += t_delta[axis]
        return bool(visit(target_cell))

    # -- visibility --------------------------------------------------------

    def is_visible(self, point, origin) -> bool:
        """True if no occupied cell lies between `origin` and `point`."""
        grid = self.grid
        if grid.is_empty or grid.occupied_count == 0:
            return True
        target_cell = grid.cell_of(point)
        if target_cell is None:
            return True
        if grid.cell_of(origin) == target_cell:
            return True

        def blocked(cell: Cell) -> bool:
            return cell != target_cell and grid.is_occupied(cell)

        return not self._walk(origin, point, blocked)

    def _mask_chunk(self, points: np.ndarray, origin: np.ndarray) -> np.ndarray:
        return np.array([self.is_visible(p, origin) for p in points], dtype=bool)

    def visible_mask(self, points, origin) -> np.ndarray:
        """Boolean visibility of (N, 3) world-frame points seen from `origin`.

        Chunks go to a thread pool when `workers` > 1. Each ray walk holds
        the GIL, so throughput scales far less than linearly with workers.
        """
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        o = np.asarray(origin, dtype=np.float64)
        if len(pts) == 0:
            return np.zeros(0, dtype=bool)
        if self.grid.is_empty or self.grid.occupied_count == 0:
            return np.ones(len(pts), dtype=bool)

        if self.workers == 1 or len(pts) < MIN_CHUNK * 2:
            return self._mask_chunk(pts, o)

        n_chunks = min(self.workers * 4, max(1, len(pts) // MIN_CHUNK))
        chunks = np.array_split(pts, n_chunks)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            parts = list(pool.map(lambda c: self._mask_chunk(c, o), chunks))
        return np.concatenate(parts)

    def occluded_by(self, point, origin) -> Optional[Cell]:
        """First occupied cell blocking `point`, or None if it is visible."""
        grid = self.grid
        target_cell = grid.cell_of(point)
        if target_cell is None or grid.cell_of(origin) == target_cell:
            return None
        hit: List[Cell] = []

        def blocked(cell: Cell) -> bool:
            if cell != target_cell and grid.is_occupied(cell):
                hit.append(cell)
                return True
            return False

        self._walk(origin, point, blocked)
        return hit[0] if hit else None


def estimate_visibility(
    points, origin, grid: VoxelGrid, workers: int = 1
) -> Tuple[np.ndarray, np.ndarray]:
    """Split points into (visible_mask, occluded_mask) as seen from `origin`."""
    mask = OcclusionEstimator(grid, workers=workers).visible_mask(points, origin)
    return mask, ~mask
