"""Evaluate a sequence of sensor poses against a point-cloud model.

Usage:
    # Model as .npy (N x 3, or N x 6 with normals) and poses as JSON
    python -m occlusion_culling model.npy poses.json

    # Override grid resolution and use a config file
    python -m occlusion_culling model.xyz poses.json --leaf-size 0.25 --config culling.json

Poses file: a JSON list of objects, each with either
    {"position": [x, y, z], "orientation": [qx, qy, qz, qw]}
or
    {"position": [x, y, z], "look_at": [x, y, z]}

Prints one JSON line per pose, then a campaign summary.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from occlusion_culling.config import CullingConfig
from occlusion_culling.errors import CullingError
from occlusion_culling.geometry.transform import Pose
from occlusion_culling.model import PointCloud
from occlusion_culling.pipeline import VisibilityPlanner
from occlusion_culling.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def load_model(path: Path, with_normals: bool = False) -> PointCloud:
    """Load an N x 3 (or N x 6 with normals) array from .npy or whitespace text."""
    if path.suffix == ".npy":
        data = np.load(path)
    else:
        data = np.loadtxt(path, ndmin=2)
    data = np.asarray(data, dtype=np.float64)
    if data.size == 0:
        return PointCloud(np.zeros((0, 3)))
    if with_normals:
        if data.shape[1] < 6:
            raise ValueError(f"--normals needs 6 columns, {path} has {data.shape[1]}")
        return PointCloud(data[:, :3], {"normals": data[:, 3:6]})
    return PointCloud(data[:, :3])


def load_poses(path: Path) -> list[Pose]:
    entries = json.loads(path.read_text())
    if not isinstance(entries, list):
        raise ValueError(f"{path} must contain a JSON list of poses")
    poses = []
    for i, entry in enumerate(entries):
        if "look_at" in entry:
            poses.append(Pose.look_at(entry["position"], entry["look_at"]))
        elif "position" in entry:
            poses.append(Pose(entry["position"], entry.get("orientation", (0.0, 0.0, 0.0, 1.0))))
        else:
            raise ValueError(f"Pose #{i} in {path} has no 'position'")
    return poses


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="occlusion_culling",
        description="Visible-surface extraction and coverage for candidate sensor poses",
    )
    parser.add_argument("model", type=Path, help="Model points (.npy or text)")
    parser.add_argument("poses", type=Path, help="JSON list of sensor poses")
    parser.add_argument("--config", type=Path, default=None, help="JSON config overlay")
    parser.add_argument("--leaf-size", type=float, default=None, help="Voxel leaf size (m)")
    parser.add_argument("--normals", action="store_true", help="Columns 3-5 of the model are normals")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(verbosity=args.verbose, log_file=args.log_file)

    config = CullingConfig.load(args.config)
    if args.leaf_size is not None:
        config.update({"grid": {"leaf_size": [args.leaf_size] * 3}})

    try:
        model = load_model(args.model, with_normals=args.normals)
        poses = load_poses(args.poses)
        planner = VisibilityPlanner(model, config)
    except (OSError, ValueError, KeyError) as e:
        # CullingError subclasses ValueError
        level = "configuration" if isinstance(e, CullingError) else "input"
        logger.error("Invalid %s: %s", level, e)
        return 2

    for report in planner.evaluate(poses):
        print(json.dumps(report.to_dict()))
    print(json.dumps(planner.summary()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
