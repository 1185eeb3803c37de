"""Tests for voxel ray traversal and occlusion estimation."""

import numpy as np
import pytest

from occlusion_culling.culling.occlusion import OcclusionEstimator, estimate_visibility
from occlusion_culling.map.voxel_grid import build_grid

ORIGIN = np.zeros(3)


@pytest.fixture
def open_box():
    """Grid spanning [0, 4]^3 at 1 m with only the two corner cells occupied."""
    grid = build_grid(np.array([[0.0, 0.0, 0.0], [4.0, 4.0, 4.0]]), 1.0)
    return OcclusionEstimator(grid)


def _assert_face_connected(cells):
    for a, b in zip(cells, cells[1:]):
        assert sum(abs(x - y) for x, y in zip(a, b)) == 1, (a, b)
    assert len(set(cells)) == len(cells)


class TestTraverse:

    def test_straight_line(self, open_box):
        cells = open_box.traverse((0.5, 0.5, 0.5), (3.5, 0.5, 0.5))
        assert cells == [(0, 0, 0), (1, 0, 0), (2, 0, 0), (3, 0, 0)]

    def test_oblique_ray(self, open_box):
        cells = open_box.traverse((0.5, 0.5, 0.5), (3.5, 2.5, 0.5))
        assert cells[0] == (0, 0, 0)
        assert cells[-1] == (3, 2, 0)
        assert len(cells) == 6
        _assert_face_connected(cells)

    def test_through_cell_corners_terminates(self, open_box):
        cells = open_box.traverse((0.5, 0.5, 0.5), (2.5, 2.5, 2.5))
        assert cells[0] == (0, 0, 0)
        assert cells[-1] == (2, 2, 2)
        assert len(cells) == 7
        _assert_face_connected(cells)

    def test_ray_along_cell_boundary(self, open_box):
        cells = open_box.traverse((1.0, 0.5, 0.5), (1.0, 0.5, 3.5))
        assert cells == [(1, 0, 0), (1, 0, 1), (1, 0, 2), (1, 0, 3)]

    def test_origin_outside_starts_at_entry_cell(self, open_box):
        cells = open_box.traverse((-5.0, 0.5, 0.5), (2.5, 0.5, 0.5))
        assert cells == [(0, 0, 0), (1, 0, 0), (2, 0, 0)]

    def test_target_outside_is_empty(self, open_box):
        assert open_box.traverse((0.5, 0.5, 0.5), (9.0, 0.5, 0.5)) == []

    def test_reverse_ray_yields_plain_int_cells(self, open_box):
        cells = open_box.traverse((3.5, 2.5, 0.5), (0.5, 0.5, 0.5))
        assert cells[0] == (3, 2, 0)
        assert cells[-1] == (0, 0, 0)
        assert len(cells) == 6
        _assert_face_connected(cells)
        assert all(type(v) is int for cell in cells for v in cell)

    def test_same_cell(self, open_box):
        assert open_box.traverse((0.2, 0.2, 0.2), (0.8, 0.8, 0.8)) == [(0, 0, 0)]


class TestVisibility:

    def test_axis_occluder(self, axis_model):
        grid = build_grid(axis_model, 1.0)
        est = OcclusionEstimator(grid)
        assert est.is_visible((0.0, 0.0, 5.0), ORIGIN)
        assert not est.is_visible((0.0, 0.0, 10.0), ORIGIN)

    def test_removing_occluder_restores_visibility(self, axis_model):
        grid = build_grid(axis_model, 1.0)
        occluder = grid.cell_of((0.0, 0.0, 5.0))
        est = OcclusionEstimator(grid.without_cells([occluder]))
        assert est.is_visible((0.0, 0.0, 10.0), ORIGIN)

        alone = OcclusionEstimator(build_grid(np.array([[0.0, 0.0, 10.0]]), 1.0))
        assert alone.is_visible((0.0, 0.0, 10.0), ORIGIN)

    def test_occluded_by_reports_blocking_cell(self, axis_model):
        grid = build_grid(axis_model, 1.0)
        est = OcclusionEstimator(grid)
        assert est.occluded_by((0.0, 0.0, 10.0), ORIGIN) == grid.cell_of((0.0, 0.0, 5.0))
        assert est.occluded_by((0.0, 0.0, 5.0), ORIGIN) is None

    def test_front_wall_hides_back_wall(self, two_wall_model):
        est = OcclusionEstimator(build_grid(two_wall_model, 0.5))
        mask = est.visible_mask(two_wall_model.positions, ORIGIN)
        assert mask[:25].all()
        assert not mask[25:].any()

    def test_view_from_behind_is_reversed(self, two_wall_model):
        est = OcclusionEstimator(build_grid(two_wall_model, 0.5))
        mask = est.visible_mask(two_wall_model.positions, (0.0, 0.0, 13.0))
        assert not mask[:25].any()
        assert mask[25:].all()

    def test_target_outside_grid_is_visible(self, two_wall_model):
        est = OcclusionEstimator(build_grid(two_wall_model, 0.5))
        assert est.is_visible((0.0, 0.0, 20.0), ORIGIN)

    def test_sensor_inside_grid(self, axis_model):
        est = OcclusionEstimator(build_grid(axis_model, 1.0))
        assert est.is_visible((0.0, 0.0, 10.0), (0.0, 0.0, 7.5))
        assert est.is_visible((0.0, 0.0, 5.0), (0.0, 0.0, 5.5))

    def test_points_on_bbox_face_see_themselves(self, two_wall_model):
        # Front-wall points sit on both the bbox face and cell corners
        est = OcclusionEstimator(build_grid(two_wall_model, 0.5))
        assert est.traverse(ORIGIN, (1.0, 1.0, 5.0)) == [(4, 4, 0)]

    def test_empty_grid_hides_nothing(self):
        with pytest.warns(UserWarning):
            grid = build_grid(np.zeros((0, 3)), 1.0)
        est = OcclusionEstimator(grid)
        mask = est.visible_mask(np.array([[0.0, 0.0, 1.0], [5.0, 5.0, 5.0]]), ORIGIN)
        assert mask.tolist() == [True, True]

    def test_empty_candidates(self, axis_model):
        est = OcclusionEstimator(build_grid(axis_model, 1.0))
        assert est.visible_mask(np.zeros((0, 3)), ORIGIN).shape == (0,)

    def test_threaded_mask_matches_inline(self, two_wall_model):
        rng = np.random.default_rng(3)
        behind = np.column_stack([
            rng.uniform(-1.0, 1.0, 800),
            rng.uniform(-1.0, 1.0, 800),
            rng.uniform(5.2, 8.0, 800),
        ])
        pts = np.vstack([two_wall_model.positions[:25], behind])
        grid = build_grid(pts, 0.25)
        inline = OcclusionEstimator(grid, workers=1).visible_mask(pts, ORIGIN)
        threaded = OcclusionEstimator(grid, workers=4).visible_mask(pts, ORIGIN)
        assert np.array_equal(inline, threaded)
        assert inline[:25].all()

    def test_estimate_visibility_split(self, axis_model):
        grid = build_grid(axis_model, 1.0)
        visible, occluded = estimate_visibility(axis_model.positions, ORIGIN, grid)
        assert visible.tolist() == [True, False]
        assert occluded.tolist() == [False, True]
