"""
Rigid transforms between the world frame and a sensor's local frame.

Sensor frame convention (matches the OpenCV camera model):
    +z   optical axis (forward)
    +x   right
    +y   down

An identity orientation therefore looks along world +z.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation

from occlusion_culling.errors import InvalidPoseError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pose container
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Pose:
    """Sensor position (world frame) and orientation quaternion (x, y, z, w).

    The orientation rotates sensor-frame vectors into the world frame.
    """

    position: tuple[float, float, float]
    orientation: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def __post_init__(self):
        position = np.asarray(self.position, dtype=np.float64).reshape(-1)
        orientation = np.asarray(self.orientation, dtype=np.float64).reshape(-1)
        if position.shape != (3,):
            raise InvalidPoseError(f"Expected 3 position values, got shape {position.shape}")
        if orientation.shape != (4,):
            raise InvalidPoseError(
                f"Expected quaternion (x, y, z, w), got shape {orientation.shape}"
            )
        if not np.isfinite(position).all():
            raise InvalidPoseError(f"Non-finite pose position: {position.tolist()}")
        if not np.isfinite(orientation).all():
            raise InvalidPoseError(f"Non-finite pose orientation: {orientation.tolist()}")
        norm = float(np.linalg.norm(orientation))
        if norm < 1e-12:
            raise InvalidPoseError("Pose orientation quaternion has zero norm")
        object.__setattr__(self, "position", tuple(float(v) for v in position))
        object.__setattr__(self, "orientation", tuple(float(v) for v in orientation / norm))

    @property
    def translation(self) -> np.ndarray:
        return np.array(self.position, dtype=np.float64)

    @property
    def rotation(self) -> Rotation:
        return Rotation.from_quat(self.orientation)

    @property
    def forward(self) -> np.ndarray:
        """Unit optical axis in the world frame."""
        return self.rotation.apply([0.0, 0.0, 1.0])

    @classmethod
    def from_matrix(cls, T: np.ndarray) -> Pose:
        """Build a pose from a 4x4 sensor->world homogeneous transform."""
        T = np.asarray(T, dtype=np.float64)
        if T.shape != (4, 4):
            raise InvalidPoseError(f"Expected 4x4 transform, got shape {T.shape}")
        if not np.isfinite(T).all():
            raise InvalidPoseError("Transform contains non-finite values")
        quat = Rotation.from_matrix(T[:3, :3]).as_quat()
        return cls(position=tuple(T[:3, 3]), orientation=tuple(quat))

    @classmethod
    def from_euler(
        cls,
        position,
        roll: float = 0.0,
        pitch: float = 0.0,
        yaw: float = 0.0,
        degrees: bool = False,
    ) -> Pose:
        """Build a pose from extrinsic xyz Euler angles."""
        angles = np.array([roll, pitch, yaw], dtype=np.float64)
        if not np.isfinite(angles).all():
            raise InvalidPoseError(f"Non-finite Euler angles: {angles.tolist()}")
        quat = Rotation.from_euler("xyz", angles, degrees=degrees).as_quat()
        return cls(position=tuple(position), orientation=tuple(quat))

    @classmethod
    def look_at(cls, position, target, up=(0.0, 0.0, 1.0)) -> Pose:
        """Pose at `position` whose optical axis points at `target`.

        World `up` fixes the roll; when the view direction is parallel to
        it, world +x is used instead.
        """
        eye = np.asarray(position, dtype=np.float64)
        tgt = np.asarray(target, dtype=np.float64)
        if not (np.isfinite(eye).all() and np.isfinite(tgt).all()):
            raise InvalidPoseError("Non-finite look-at position or target")
        z_axis = tgt - eye
        dist = np.linalg.norm(z_axis)
        if dist < 1e-12:
            raise InvalidPoseError("Look-at target coincides with the sensor position")
        z_axis /= dist

        up_ref = np.asarray(up, dtype=np.float64)
        if np.linalg.norm(np.cross(z_axis, up_ref)) < 1e-6:
            logger.debug("look_at: view direction %s parallel to up, using +x", z_axis.tolist())
            up_ref = np.array([1.0, 0.0, 0.0])
        # Image +y points down, so +x (right) = forward x up
        x_axis = np.cross(z_axis, up_ref)
        x_axis /= np.linalg.norm(x_axis)
        y_axis = np.cross(z_axis, x_axis)

        R = np.column_stack([x_axis, y_axis, z_axis])
        return cls(position=tuple(eye), orientation=tuple(Rotation.from_matrix(R).as_quat()))


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------


def pose_to_transform(pose: Pose) -> np.ndarray:
    """Return the 4x4 sensor->world transform for `pose`."""
    T = np.eye(4)
    T[:3, :3] = pose.rotation.as_matrix()
    T[:3, 3] = pose.translation
    return T


def world_to_sensor_transform(pose: Pose) -> np.ndarray:
    """Return the 4x4 world->sensor transform (inverse of the pose)."""
    R = pose.rotation.as_matrix()
    T = np.eye(4)
    T[:3, :3] = R.T
    T[:3, 3] = -R.T @ pose.translation
    return T


def transform_points(T: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Apply a homogeneous transform to (N, 3) points."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return pts @ T[:3, :3].T + T[:3, 3]


def world_to_sensor(pose: Pose, points: np.ndarray) -> np.ndarray:
    return transform_points(world_to_sensor_transform(pose), points)


def sensor_to_world(pose: Pose, points: np.ndarray) -> np.ndarray:
    return transform_points(pose_to_transform(pose), points)
