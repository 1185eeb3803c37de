"""Tests for per-pose queries and multi-pose campaigns."""

import numpy as np
import pytest

from occlusion_culling.culling.frustum import FieldOfView, cull
from occlusion_culling.errors import EmptyModelWarning
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.map.voxel_grid import build_grid
from occlusion_culling.messages.topics import Topics
from occlusion_culling.model import PointCloud
from occlusion_culling.pipeline import VisibilityPlanner, campaign_accuracy_range, query_visible


class TestQueryVisible:

    def test_axis_occluder(self, axis_model):
        grid = build_grid(axis_model, 1.0)
        fov = FieldOfView.from_degrees(60.0, 60.0, 0.1, 20.0)
        subset = query_visible(Pose((0, 0, 0)), fov, axis_model, grid)
        assert subset.indices.tolist() == [0]
        assert subset.frustum_indices.tolist() == [0, 1]
        assert subset.occluded_indices.tolist() == [1]
        assert np.allclose(subset.points, [[0.0, 0.0, 5.0]])

    def test_front_and_back_views(self, two_wall_model, wide_fov, front_pose, back_pose):
        grid = build_grid(two_wall_model, 0.5)
        front = query_visible(front_pose, wide_fov, two_wall_model, grid)
        back = query_visible(back_pose, wide_fov, two_wall_model, grid)
        assert front.indices.tolist() == list(range(25))
        assert back.indices.tolist() == list(range(25, 50))

    def test_looking_away_sees_nothing(self, two_wall_model, wide_fov, away_pose):
        grid = build_grid(two_wall_model, 0.5)
        subset = query_visible(away_pose, wide_fov, two_wall_model, grid)
        assert subset.is_empty
        assert len(subset.frustum_indices) == 0

    def test_visible_within_frustum_within_model(self, two_wall_model, wide_fov):
        grid = build_grid(two_wall_model, 0.5)
        positions = [(3.0, 0.0, 0.0), (0.0, -4.0, 2.0), (2.0, 2.0, 14.0), (-6.0, 1.0, 6.5)]
        for pos in positions:
            pose = Pose.look_at(pos, (0.0, 0.0, 6.5))
            subset = query_visible(pose, wide_fov, two_wall_model, grid)
            assert np.isin(subset.indices, subset.frustum_indices).all()
            assert np.array_equal(subset.frustum_indices, cull(two_wall_model, pose, wide_fov))
            assert ((subset.indices >= 0) & (subset.indices < len(two_wall_model))).all()
            assert np.array_equal(subset.indices, np.sort(subset.indices))
            assert np.array_equal(subset.points, two_wall_model.positions[subset.indices])

    def test_empty_model(self, wide_fov, front_pose):
        model = PointCloud(np.zeros((0, 3)))
        with pytest.warns(EmptyModelWarning):
            grid = build_grid(model, 0.5)
        subset = query_visible(front_pose, wide_fov, model, grid)
        assert subset.is_empty


class TestCampaignAccuracyRange:

    def test_range_over_sets(self, two_wall_model, wide_fov, front_pose, back_pose, away_pose):
        grid = build_grid(two_wall_model, 0.5)
        near_pose = Pose((0.0, 0.0, 2.0))
        lo, hi = campaign_accuracy_range(
            [[front_pose], [back_pose, away_pose, near_pose]], wide_fov, two_wall_model, grid
        )
        assert lo is not None and hi is not None
        assert 0.0 <= lo < hi <= 1.0

    def test_nothing_seen(self, two_wall_model, wide_fov, away_pose):
        grid = build_grid(two_wall_model, 0.5)
        assert campaign_accuracy_range([[away_pose], []], wide_fov, two_wall_model, grid) == (None, None)


class TestVisibilityPlanner:

    def test_campaign_reaches_full_coverage(self, two_wall_model, wall_config, front_pose, back_pose):
        planner = VisibilityPlanner(two_wall_model, wall_config)
        reports = planner.evaluate([front_pose, back_pose, front_pose])
        assert [r.newly_covered for r in reports] == [25, 25, 0]
        assert [r.coverage_ratio for r in reports] == pytest.approx([0.5, 1.0, 1.0])
        assert planner.state.ratio == 1.0

    def test_threaded_poses_fold_in_order(self, two_wall_model, wall_config, front_pose, back_pose, away_pose):
        poses = [front_pose, away_pose, back_pose, front_pose]
        serial = VisibilityPlanner(two_wall_model, wall_config).evaluate(poses)
        wall_config.update({"planner": {"pose_workers": 3}})
        threaded = VisibilityPlanner(two_wall_model, wall_config).evaluate(poses)
        assert [r.to_dict() for r in threaded] == [r.to_dict() for r in serial]

    def test_publishes_three_messages_per_pose(self, two_wall_model, wall_config, sink, front_pose, back_pose):
        planner = VisibilityPlanner(two_wall_model, wall_config, sink=sink)
        planner.evaluate([front_pose, back_pose])
        assert sink.topics() == [
            Topics.FOV_WIREFRAME, Topics.VISIBLE_CLOUD, Topics.COVERAGE_UPDATE,
        ] * 2
        last_update = sink.messages[-1][1]
        assert last_update.coverage_ratio == pytest.approx(1.0)

    def test_stop_halts_folding(self, two_wall_model, wall_config, front_pose, back_pose):
        planner = VisibilityPlanner(two_wall_model, wall_config)

        class StoppingSink:
            def publish(self, topic, message):
                planner.stop()

        planner.sink = StoppingSink()
        reports = planner.evaluate([front_pose, back_pose, front_pose])
        assert len(reports) == 1
        assert planner.state.poses_folded == 1

    def test_query_does_not_change_state(self, two_wall_model, wall_config, front_pose):
        planner = VisibilityPlanner(two_wall_model, wall_config)
        subset = planner.query(front_pose)
        assert len(subset) == 25
        assert planner.state.poses_folded == 0
        assert 0.0 < planner.accuracy(subset) <= 1.0

    def test_reset_and_summary(self, two_wall_model, wall_config, front_pose):
        planner = VisibilityPlanner(two_wall_model, wall_config)
        planner.evaluate([front_pose])
        summary = planner.summary()
        assert summary["coverage"]["covered"] == 25
        assert summary["voxel_coverage"] == pytest.approx(0.5)
        assert summary["accuracy_range"][0] is not None
        assert summary["grid"]["num_points"] == 50
        planner.reset()
        assert planner.state.covered_count == 0

    def test_default_config(self, two_wall_model):
        planner = VisibilityPlanner(two_wall_model)
        assert planner.fov.far == pytest.approx(5.8)
        # Default 0.8 - 5.8 m range reaches the front wall only
        assert len(planner.query(Pose((0, 0, 0)))) == 25

    def test_accuracy_range(self, two_wall_model, wall_config, front_pose, back_pose):
        planner = VisibilityPlanner(two_wall_model, wall_config)
        lo, hi = planner.accuracy_range([[front_pose, back_pose]])
        assert lo is not None and lo <= hi
        # Campaign range queries leave the aggregator alone
        assert planner.aggregator.accuracy.count == 0
