"""Immutable point cloud container for the surface model."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional

import numpy as np

from occlusion_culling.geometry.transform import Pose


class PointCloud:
    """Ordered (N, 3) point positions with optional per-point attributes.

    Arrays are copied and frozen on construction; the model never mutates
    during a planning session. Attributes are arrays whose first dimension
    matches the number of points (e.g. ``"normals"`` of shape (N, 3)).
    """

    def __init__(
        self,
        positions,
        attributes: Optional[Mapping[str, np.ndarray]] = None,
    ):
        pts = np.array(positions, dtype=np.float64)
        if pts.size == 0:
            pts = np.zeros((0, 3), dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] < 3:
            raise ValueError(f"Expected (N, 3) positions, got shape {pts.shape}")
        # Extra columns (e.g. rgb in Nx6 clouds) are dropped from positions
        pts = np.ascontiguousarray(pts[:, :3])
        pts.setflags(write=False)
        self._positions = pts

        self._attributes: Dict[str, np.ndarray] = {}
        for name, values in (attributes or {}).items():
            arr = np.array(values)
            if len(arr) != len(pts):
                raise ValueError(
                    f"Attribute '{name}' has {len(arr)} entries, expected {len(pts)}"
                )
            arr.setflags(write=False)
            self._attributes[name] = arr

    @property
    def positions(self) -> np.ndarray:
        return self._positions

    @property
    def attributes(self) -> Dict[str, np.ndarray]:
        return dict(self._attributes)

    @property
    def normals(self) -> Optional[np.ndarray]:
        return self._attributes.get("normals")

    def attribute(self, name: str) -> Optional[np.ndarray]:
        return self._attributes.get(name)

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def is_empty(self) -> bool:
        return len(self._positions) == 0

    def subset(self, indices) -> PointCloud:
        """New cloud holding the points at `indices`, attributes sliced alongside."""
        idx = np.asarray(indices, dtype=np.intp).reshape(-1)
        return PointCloud(
            self._positions[idx],
            {name: values[idx] for name, values in self._attributes.items()},
        )

    def __repr__(self) -> str:
        attrs = ", ".join(sorted(self._attributes)) or "none"
        return f"PointCloud(points={len(self)}, attributes={attrs})"


def as_points(cloud) -> np.ndarray:
    """Return (N, 3) float64 positions from a PointCloud or array-like."""
    if isinstance(cloud, PointCloud):
        return cloud.positions
    pts = np.asarray(cloud, dtype=np.float64)
    if pts.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return pts.reshape(-1, pts.shape[-1])[:, :3]


@dataclass(frozen=True, eq=False)
class VisibleSubset:
    """Model points observable from one pose.

    Attributes
    ----------
    pose : Pose
        Sensor pose the subset was computed for.
    indices : np.ndarray
        Ascending model indices that passed the frustum and occlusion tests.
    points : np.ndarray
        (K, 3) world positions of those indices.
    frustum_indices : np.ndarray
        Ascending model indices that passed the frustum test alone.
    """

    pose: Pose
    indices: np.ndarray
    points: np.ndarray
    frustum_indices: np.ndarray

    def __len__(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return len(self.indices) == 0

    @property
    def occluded_indices(self) -> np.ndarray:
        return np.setdiff1d(self.frustum_indices, self.indices, assume_unique=True)
