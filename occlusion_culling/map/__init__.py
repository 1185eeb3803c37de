"""Spatial indexing of the surface model."""

from occlusion_culling.map.voxel_grid import VoxelGrid, build_grid

__all__ = ["VoxelGrid", "build_grid"]
