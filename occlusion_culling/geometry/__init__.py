"""Pose and rigid-transform math."""

from occlusion_culling.geometry.transform import (
    Pose,
    pose_to_transform,
    sensor_to_world,
    transform_points,
    world_to_sensor,
    world_to_sensor_transform,
)

__all__ = [
    "Pose",
    "pose_to_transform",
    "sensor_to_world",
    "transform_points",
    "world_to_sensor",
    "world_to_sensor_transform",
]
