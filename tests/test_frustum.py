"""Tests for field-of-view validation and frustum culling."""

import math

import numpy as np
import pytest

from occlusion_culling.culling.frustum import FieldOfView, Frustum, cull
from occlusion_culling.errors import InvalidFieldOfViewError
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.model import PointCloud


@pytest.fixture
def square_fov():
    """45 degree half-angles, 1 m to 10 m."""
    return FieldOfView.from_degrees(90.0, 90.0, 1.0, 10.0)


class TestFieldOfView:

    def test_from_degrees_uses_full_angles(self):
        fov = FieldOfView.from_degrees(58.0, 45.0, 0.8, 5.8)
        assert fov.h_half_angle == pytest.approx(math.radians(29.0))
        assert fov.v_half_angle == pytest.approx(math.radians(22.5))
        assert fov.near == 0.8
        assert fov.far == 5.8

    @pytest.mark.parametrize("kwargs", [
        dict(h_half_angle=0.0, v_half_angle=0.5, near=0.1, far=1.0),
        dict(h_half_angle=0.5, v_half_angle=math.pi / 2, near=0.1, far=1.0),
        dict(h_half_angle=0.5, v_half_angle=0.5, near=-0.1, far=1.0),
        dict(h_half_angle=0.5, v_half_angle=0.5, near=2.0, far=1.0),
        dict(h_half_angle=0.5, v_half_angle=0.5, near=1.0, far=1.0),
        dict(h_half_angle=float("nan"), v_half_angle=0.5, near=0.1, far=1.0),
        dict(h_half_angle=0.5, v_half_angle=0.5, near=0.1, far=float("inf")),
    ])
    def test_invalid_rejected(self, kwargs):
        with pytest.raises(InvalidFieldOfViewError):
            FieldOfView(**kwargs)

    def test_zero_near_allowed(self):
        assert FieldOfView(0.5, 0.5, 0.0, 1.0).near == 0.0


class TestFrustumContains:

    def test_axis_points(self, square_fov):
        frustum = Frustum(Pose((0, 0, 0)), square_fov)
        pts = np.array([
            [0.0, 0.0, 5.0],    # inside
            [0.0, 0.0, 0.5],    # before near
            [0.0, 0.0, 11.0],   # beyond far
            [0.0, 0.0, -5.0],   # behind
        ])
        assert frustum.contains(pts).tolist() == [True, False, False, False]

    def test_side_planes(self, square_fov):
        frustum = Frustum(Pose((0, 0, 0)), square_fov)
        pts = np.array([
            [4.9, 0.0, 5.0],
            [5.1, 0.0, 5.0],
            [-5.1, 0.0, 5.0],
            [0.0, 4.9, 5.0],
            [0.0, -5.1, 5.0],
        ])
        assert frustum.contains(pts).tolist() == [True, False, False, True, False]

    def test_boundary_points_inside(self, square_fov):
        frustum = Frustum(Pose((0, 0, 0)), square_fov)
        pts = np.array([[5.0, 0.0, 5.0], [0.0, 0.0, 1.0], [0.0, 0.0, 10.0]])
        assert frustum.contains(pts).all()

    def test_contains_world_follows_pose(self, square_fov):
        pose = Pose.look_at((10.0, 0.0, 0.0), (0.0, 0.0, 0.0))
        frustum = Frustum(pose, square_fov)
        pts = np.array([[5.0, 0.0, 0.0], [15.0, 0.0, 0.0]])
        assert frustum.contains_world(pts).tolist() == [True, False]

    def test_empty_input(self, square_fov):
        frustum = Frustum(Pose((0, 0, 0)), square_fov)
        assert frustum.contains(np.zeros((0, 3))).shape == (0,)

    def test_corners(self, square_fov):
        frustum = Frustum(Pose((0, 0, 0)), square_fov)
        corners = frustum.corners_world()
        assert corners.shape == (8, 3)
        assert np.allclose(corners[:4, 2], 1.0)
        assert np.allclose(corners[4:, 2], 10.0)
        assert np.allclose(np.abs(corners[4:, :2]), 10.0)
        # Corners lie on the boundary of the view volume
        assert frustum.contains(frustum.corners_sensor()).all()


class TestCull:

    def test_indices_ascending(self, square_fov):
        model = PointCloud([
            [0.0, 0.0, 3.0],
            [0.0, 0.0, -3.0],
            [1.0, 1.0, 4.0],
            [20.0, 0.0, 4.0],
            [0.0, 0.0, 9.0],
        ])
        idx = cull(model, Pose((0, 0, 0)), square_fov)
        assert idx.tolist() == [0, 2, 4]

    def test_translated_pose(self, square_fov):
        model = np.array([[0.0, 0.0, 3.0], [0.0, 0.0, 12.0]])
        idx = cull(model, Pose((0.0, 0.0, 5.0)), square_fov)
        assert idx.tolist() == [1]

    def test_empty_model(self, square_fov):
        idx = cull(np.zeros((0, 3)), Pose((0, 0, 0)), square_fov)
        assert idx.shape == (0,)

    def test_epsilon_widens_boundary(self, square_fov):
        pt = np.array([[5.0 + 1e-4, 0.0, 5.0]])
        assert cull(pt, Pose((0, 0, 0)), square_fov).tolist() == []
        assert cull(pt, Pose((0, 0, 0)), square_fov, epsilon=1e-3).tolist() == [0]
