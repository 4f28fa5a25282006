"""
Submap Module

A submap is the independent volumetric reconstruction of one instance: a
TSDF layer plus the metadata needed to interpret it.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Tuple

from .tsdf_layer import TsdfLayer


@dataclass
class SubmapConfig:
    """
    Per-submap volumetric parameters.

    Negative truncation distances are multiples of the voxel size.
    """
    voxel_size: float = 0.05
    truncation_distance: float = -2.0
    voxels_per_side: int = 16

    def __post_init__(self):
        if self.voxel_size <= 0:
            raise ValueError(f"voxel_size must be positive, got {self.voxel_size}")
        if self.voxels_per_side <= 0:
            raise ValueError(f"voxels_per_side must be positive, got {self.voxels_per_side}")
        if self.truncation_distance == 0:
            raise ValueError("truncation_distance must be non-zero")
        if self.truncation_distance < 0:
            self.truncation_distance = -self.truncation_distance * self.voxel_size


class Submap:
    """
    One instance's TSDF reconstruction.

    Attributes:
        id: Instance id, stable for the lifetime of the map
        config: SubmapConfig with voxel size and truncation distance
        tsdf_layer: The submap's TsdfLayer
    """

    def __init__(self, submap_id: int, config: Optional[SubmapConfig] = None):
        self.id = int(submap_id)
        self.config = config if config is not None else SubmapConfig()
        self.tsdf_layer = TsdfLayer(self.config.voxel_size, self.config.voxels_per_side)

        self._mesh_stale = True
        self._surface_cache: Optional[Tuple[np.ndarray, np.ndarray]] = None

    def __repr__(self) -> str:
        return (f"Submap(id={self.id}, voxel_size={self.config.voxel_size}, "
                f"blocks={self.tsdf_layer.num_allocated_blocks})")

    @property
    def voxel_size(self) -> float:
        return self.config.voxel_size

    @property
    def truncation_distance(self) -> float:
        return self.config.truncation_distance

    @property
    def mesh_is_stale(self) -> bool:
        return self._mesh_stale

    def update_mesh(self, only_updated_blocks: bool = True):
        """
        Mark the surface representation for regeneration.

        The surface is rebuilt lazily by get_surface_points().

        Args:
            only_updated_blocks: If False, every block is flagged as updated.
        """
        self._mesh_stale = True
        if not only_updated_blocks:
            for block in self.tsdf_layer.blocks.values():
                block.updated = True

    def get_surface_points(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Observed voxel centers within one voxel of the surface.

        Regenerating the surface consumes the blocks' change flags: every
        block's `updated` is reset to False, and the result is cached until
        the next update_mesh(). A cached call leaves the flags alone.

        Returns:
            points: (N, 3) float64 voxel centers
            colors: (N, 3) uint8 voxel colors
        """
        if self._surface_cache is not None and not self._mesh_stale:
            return self._surface_cache

        points = [np.empty((0, 3), dtype=np.float64)]
        colors = [np.empty((0, 3), dtype=np.uint8)]
        for index in self.tsdf_layer.get_all_allocated_blocks():
            block = self.tsdf_layer.blocks[index]
            surface = (block.weight > 0) & (np.abs(block.distance) < self.voxel_size)
            if not np.any(surface):
                continue
            points.append(block.compute_voxel_centers()[surface])
            colors.append(block.color[surface])

        for block in self.tsdf_layer.blocks.values():
            block.updated = False
        self._surface_cache = (np.concatenate(points), np.concatenate(colors))
        self._mesh_stale = False
        return self._surface_cache
