"""
Naive Instance Integrator

Splits every incoming labeled point cloud into one partial cloud per
instance id and fuses each partial cloud into the submap with that id.
Submaps must already exist; ids without a submap are skipped with a
warning.

Usage:
    integrator = NaiveIntegrator(NaiveIntegrator.Config(integrator_type="merged"))
    integrator.process_pointcloud(submaps, T_M_C, points, colors, ids)
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Union

import open3d as o3d

from ..core.submap_collection import SubmapCollection
from .integrator_base import IntegratorBase
from .tsdf_integrator import (
    IntegratorType, TsdfIntegrator, TsdfIntegratorConfig, create_tsdf_integrator
)


class PartialCloud(NamedTuple):
    id: int
    points: np.ndarray
    colors: np.ndarray


def segment_by_id(points: np.ndarray, colors: np.ndarray, ids: np.ndarray) -> List[PartialCloud]:
    """
    Group points and colors by instance id.

    Groups are ordered by the first occurrence of their id and keep the
    input order of their points. Runs in O(n log n) using a stable sort.

    Args:
        points: (N, 3) points
        colors: (N, 3) colors
        ids: (N,) instance ids

    Returns:
        groups: One PartialCloud per distinct id
    """
    points = np.asarray(points).reshape(-1, 3)
    colors = np.asarray(colors).reshape(-1, 3)
    ids = np.asarray(ids).reshape(-1)
    if ids.shape[0] == 0:
        return []

    unique_ids, first_index, inverse = np.unique(ids, return_index=True, return_inverse=True)
    inverse = inverse.reshape(-1)
    seen_order = np.argsort(first_index, kind='stable')
    rank = np.empty_like(seen_order)
    rank[seen_order] = np.arange(seen_order.shape[0])

    group_of_point = rank[inverse]
    order = np.argsort(group_of_point, kind='stable')
    counts = np.bincount(group_of_point, minlength=seen_order.shape[0])
    splits = np.cumsum(counts)[:-1]

    return [
        PartialCloud(int(instance_id), points[indices], colors[indices])
        for instance_id, indices in zip(unique_ids[seen_order], np.split(order, splits))
    ]


class NaiveIntegrator(IntegratorBase):
    """
    Routes per-instance partial clouds to their submaps.

    A single TSDF backend is created on first use and rebound to the target
    layer of every following group.
    """

    @dataclass
    class Config:
        integrator_type: Union[str, IntegratorType] = IntegratorType.SIMPLE
        integrator_config: TsdfIntegratorConfig = field(default_factory=TsdfIntegratorConfig)

        def __post_init__(self):
            self.integrator_type = IntegratorType.parse(self.integrator_type)
            if isinstance(self.integrator_config, dict):
                self.integrator_config = TsdfIntegratorConfig.from_dict(self.integrator_config)

        @classmethod
        def from_dict(cls, params: Optional[dict]) -> 'NaiveIntegrator.Config':
            """Build from a mapping {type: ..., <TsdfIntegratorConfig fields>}."""
            params = dict(params or {})
            integrator_type = params.pop("type", IntegratorType.SIMPLE)
            return cls(integrator_type, TsdfIntegratorConfig.from_dict(params))

    def __init__(
        self,
        config: Optional['NaiveIntegrator.Config'] = None,
        intrinsic: Optional[o3d.camera.PinholeCameraIntrinsic] = None
    ):
        super().__init__(intrinsic)
        self.config = config if config is not None else NaiveIntegrator.Config()
        self._tsdf_integrator: Optional[TsdfIntegrator] = None

    @property
    def tsdf_integrator(self) -> Optional[TsdfIntegrator]:
        return self._tsdf_integrator

    def process_pointcloud(
        self,
        submaps: SubmapCollection,
        T_M_C: np.ndarray,
        pointcloud: np.ndarray,
        colors: np.ndarray,
        ids: np.ndarray
    ) -> List[int]:
        """
        Integrate a labeled point cloud.

        Args:
            submaps: Collection holding the target submaps
            T_M_C: 4x4 camera pose in map frame
            pointcloud: (N, 3) points in camera frame
            colors: (N, 3) RGB colors
            ids: (N,) instance id per point

        Returns:
            integrated: Ids of the submaps that received points, in
                first-seen order

        Raises:
            ValueError: If submaps is None or the input sizes differ
        """
        if submaps is None:
            raise ValueError("submaps must not be None")
        pointcloud = np.asarray(pointcloud).reshape(-1, 3)
        colors = np.asarray(colors).reshape(-1, 3)
        ids = np.asarray(ids).reshape(-1)
        if not (pointcloud.shape[0] == colors.shape[0] == ids.shape[0]):
            raise ValueError(
                f"Input sizes differ: {pointcloud.shape[0]} points, "
                f"{colors.shape[0]} colors, {ids.shape[0]} ids")

        integrated = []
        for group in segment_by_id(pointcloud, colors, ids):
            if not submaps.submap_id_exists(group.id):
                print(f"Warning: Failed to integrate pointcloud to submap with ID "
                      f"'{group.id}': submap does not exist.")
                continue

            submap = submaps.get_submap(group.id)
            if self._tsdf_integrator is None:
                self._tsdf_integrator = create_tsdf_integrator(
                    self.config.integrator_type, self.config.integrator_config, submap.tsdf_layer)
            else:
                self._tsdf_integrator.set_layer(submap.tsdf_layer)

            self._tsdf_integrator.integrate_pointcloud(T_M_C, group.points, group.colors)
            submap.update_mesh()
            integrated.append(group.id)

        return integrated
