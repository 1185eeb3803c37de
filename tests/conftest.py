"""
Shared test fixtures for the occlusion_culling test suite.

Provides small synthetic models with known visibility:
  - two-point model on the optical axis (one point hides the other)
  - a front wall at z=5 that hides a back wall at z=8 from the origin
"""

import logging

import numpy as np
import pytest

from occlusion_culling.config import CullingConfig
from occlusion_culling.culling.frustum import FieldOfView
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.model import PointCloud


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

WALL_COORDS = [-1.0, -0.5, 0.0, 0.5, 1.0]
FRONT_Z = 5.0
BACK_Z = 8.0


def make_wall(z: float) -> np.ndarray:
    """5x5 grid of points in the plane at height z, spaced 0.5."""
    return np.array([[x, y, z] for x in WALL_COORDS for y in WALL_COORDS], dtype=np.float64)


class RecordingSink:
    """Visualization sink that keeps every (topic, message) pair."""

    def __init__(self):
        self.messages = []

    def publish(self, topic, message):
        self.messages.append((topic, message))
        return True

    def topics(self):
        return [t for t, _ in self.messages]


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def axis_model():
    """Two points on the optical axis of a sensor at the origin."""
    return PointCloud([[0.0, 0.0, 5.0], [0.0, 0.0, 10.0]])


@pytest.fixture
def two_wall_model():
    """Front wall (indices 0-24) at z=5, back wall (indices 25-49) at z=8."""
    return PointCloud(np.vstack([make_wall(FRONT_Z), make_wall(BACK_Z)]))


@pytest.fixture
def wide_fov():
    """90 x 90 degree view volume from 0.1 m to 20 m."""
    return FieldOfView.from_degrees(90.0, 90.0, 0.1, 20.0)


@pytest.fixture
def front_pose():
    """At the origin looking along +z towards the front wall."""
    return Pose(position=(0.0, 0.0, 0.0))


@pytest.fixture
def back_pose():
    """Behind the back wall looking along -z."""
    return Pose.look_at((0.0, 0.0, 13.0), (0.0, 0.0, 6.5))


@pytest.fixture
def away_pose():
    """At the origin looking away from both walls."""
    return Pose.look_at((0.0, 0.0, 0.0), (0.0, 0.0, -5.0))


@pytest.fixture
def wall_config():
    """Config matching `wide_fov` with a 0.5 m grid."""
    return CullingConfig({
        "grid": {"leaf_size": 0.5},
        "frustum": {"h_fov_deg": 90.0, "v_fov_deg": 90.0, "near_m": 0.1, "far_m": 20.0},
    })


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def restore_root_logging():
    """Undo root-logger changes made by setup_logging() inside a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)
