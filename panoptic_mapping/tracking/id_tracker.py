"""
Ground Truth Id Tracker

Allocates one submap per instance id seen in the input, so that the
integrator finds a target for every labeled point. Background ids get a
coarser voxel size than object instances.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..core.submap import SubmapConfig
from ..core.submap_collection import SubmapCollection


class GroundTruthIdTracker:
    """Creates missing submaps for ground-truth instance ids."""

    @dataclass
    class Config:
        voxels_per_side: int = 16
        instance_voxel_size: float = 0.05
        background_voxel_size: float = 0.1
        truncation_distance: float = -2.0
        background_ids: Tuple[int, ...] = (0,)
        verbosity: int = 1

        def __post_init__(self):
            self.background_ids = tuple(int(i) for i in self.background_ids)
            if self.instance_voxel_size <= 0 or self.background_voxel_size <= 0:
                raise ValueError("Voxel sizes must be positive")

        @classmethod
        def from_dict(cls, params: Optional[dict]) -> 'GroundTruthIdTracker.Config':
            return cls(**dict(params or {}))

    def __init__(self, config: Optional['GroundTruthIdTracker.Config'] = None):
        self.config = config if config is not None else GroundTruthIdTracker.Config()

    def submap_config_for(self, instance_id: int) -> SubmapConfig:
        if int(instance_id) in self.config.background_ids:
            voxel_size = self.config.background_voxel_size
        else:
            voxel_size = self.config.instance_voxel_size
        return SubmapConfig(
            voxel_size=voxel_size,
            truncation_distance=self.config.truncation_distance,
            voxels_per_side=self.config.voxels_per_side,
        )

    def process_ids(self, submaps: SubmapCollection, ids: np.ndarray) -> List[int]:
        """
        Allocate submaps for all ids that have none yet.

        Args:
            submaps: Collection to extend
            ids: Instance ids of the current frame (any shape)

        Returns:
            allocated: Newly created submap ids in ascending order
        """
        allocated = []
        for instance_id in np.unique(np.asarray(ids).reshape(-1)):
            instance_id = int(instance_id)
            if submaps.submap_id_exists(instance_id):
                continue
            config = self.submap_config_for(instance_id)
            submaps.create_submap(config, submap_id=instance_id)
            allocated.append(instance_id)
            if self.config.verbosity >= 2:
                print(f"Allocated submap {instance_id} (voxel size {config.voxel_size * 1000:.1f} mm)")
        return allocated
