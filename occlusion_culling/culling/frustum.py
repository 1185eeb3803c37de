"""
Frustum field-of-view culling.

The view volume is a truncated pyramid in the sensor frame (+z forward,
+x right, +y down), bounded by six half-spaces:

    near:   z >= near
    far:    z <= far
    left:   z * tan(h) + x >= 0
    right:  z * tan(h) - x >= 0
    top:    z * tan(v) + y >= 0
    bottom: z * tan(v) - y >= 0

Each plane is stored as a unit normal n and offset d so that a point p is
inside when n . p + d >= -epsilon.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from occlusion_culling.errors import InvalidFieldOfViewError
from occlusion_culling.geometry.transform import Pose, sensor_to_world, world_to_sensor
from occlusion_culling.model import as_points

logger = logging.getLogger(__name__)

# Tolerance on the signed-distance test so boundary points do not flicker
DEFAULT_EPSILON = 1e-6


@dataclass(frozen=True)
class FieldOfView:
    """Sensor view volume parameters.

    Attributes
    ----------
    h_half_angle : float
        Horizontal half-angle in radians, in (0, pi/2).
    v_half_angle : float
        Vertical half-angle in radians, in (0, pi/2).
    near : float
        Near clip distance along the optical axis (>= 0).
    far : float
        Far clip distance along the optical axis (> near).
    """

    h_half_angle: float
    v_half_angle: float
    near: float
    far: float

    def __post_init__(self):
        values = (self.h_half_angle, self.v_half_angle, self.near, self.far)
        if not all(math.isfinite(v) for v in values):
            raise InvalidFieldOfViewError(f"Non-finite field of view parameters: {values}")
        for name, angle in (("horizontal", self.h_half_angle), ("vertical", self.v_half_angle)):
            if not 0.0 < angle < math.pi / 2:
                raise InvalidFieldOfViewError(
                    f"{name} half-angle must be in (0, pi/2) rad, got {angle:.4f}"
                )
        if self.near < 0.0:
            raise InvalidFieldOfViewError(f"Near distance must be >= 0, got {self.near}")
        if self.far <= self.near:
            raise InvalidFieldOfViewError(
                f"Far distance ({self.far}) must exceed near distance ({self.near})"
            )

    @classmethod
    def from_degrees(cls, h_fov_deg: float, v_fov_deg: float, near: float, far: float) -> FieldOfView:
        """Build from FULL horizontal/vertical opening angles in degrees."""
        return cls(
            h_half_angle=math.radians(h_fov_deg) / 2.0,
            v_half_angle=math.radians(v_fov_deg) / 2.0,
            near=float(near),
            far=float(far),
        )


def _frustum_planes(fov: FieldOfView) -> tuple[np.ndarray, np.ndarray]:
    """Unit normals (6, 3) and offsets (6,) of the view volume in the sensor frame."""
    th, tv = math.tan(fov.h_half_angle), math.tan(fov.v_half_angle)
    normals = np.array(
        [
            [0.0, 0.0, 1.0],   # near
            [0.0, 0.0, -1.0],  # far
            [1.0, 0.0, th],    # left
            [-1.0, 0.0, th],   # right
            [0.0, 1.0, tv],    # top
            [0.0, -1.0, tv],   # bottom
        ]
    )
    offsets = np.array([-fov.near, fov.far, 0.0, 0.0, 0.0, 0.0])
    norms = np.linalg.norm(normals, axis=1)
    return normals / norms[:, np.newaxis], offsets / norms


class Frustum:
    """View volume of a sensor at a given pose."""

    def __init__(self, pose: Pose, fov: FieldOfView, epsilon: float = DEFAULT_EPSILON):
        self.pose = pose
        self.fov = fov
        self.epsilon = float(epsilon)
        self.normals, self.offsets = _frustum_planes(fov)

    def signed_distances(self, points_sensor: np.ndarray) -> np.ndarray:
        """(N, 6) signed distances of sensor-frame points to each plane."""
        pts = np.asarray(points_sensor, dtype=np.float64).reshape(-1, 3)
        return pts @ self.normals.T + self.offsets

    def contains(self, points_sensor: np.ndarray) -> np.ndarray:
        """Boolean mask of sensor-frame points inside all six half-spaces."""
        pts = np.asarray(points_sensor, dtype=np.float64).reshape(-1, 3)
        if len(pts) == 0:
            return np.zeros(0, dtype=bool)
        return (self.signed_distances(pts) >= -self.epsilon).all(axis=1)

    def contains_world(self, points_world: np.ndarray) -> np.ndarray:
        pts = as_points(points_world)
        if len(pts) == 0:
            return np.zeros(0, dtype=bool)
        return self.contains(world_to_sensor(self.pose, pts))

    def corners_sensor(self) -> np.ndarray:
        """Eight corners in the sensor frame: near plane first, then far.

        Each plane is ordered top-left, top-right, bottom-right, bottom-left.
        """
        th, tv = math.tan(self.fov.h_half_angle), math.tan(self.fov.v_half_angle)
        corners = []
        for dist in (self.fov.near, self.fov.far):
            hx, hy = dist * th, dist * tv
            corners.extend(
                [[-hx, -hy, dist], [hx, -hy, dist], [hx, hy, dist], [-hx, hy, dist]]
            )
        return np.array(corners, dtype=np.float64)

    def corners_world(self) -> np.ndarray:
        return sensor_to_world(self.pose, self.corners_sensor())


def cull(model, pose: Pose, fov: FieldOfView, epsilon: float = DEFAULT_EPSILON) -> np.ndarray:
    """Ascending indices of model points inside the view frustum at `pose`."""
    pts = as_points(model)
    if len(pts) == 0:
        return np.zeros(0, dtype=np.intp)
    frustum = Frustum(pose, fov, epsilon=epsilon)
    mask = frustum.contains(world_to_sensor(pose, pts))
    indices = np.flatnonzero(mask)
    logger.debug("Frustum cull: %d / %d points inside", len(indices), len(pts))
    return indices
