"""
TSDF Integration Backend

Fuses colored point clouds into a TsdfLayer with Open3D's tensor
VoxelBlockGrid. Every call projects the points into a virtual pinhole
camera, integrates the resulting RGB-D frame into a grid covering the
touched blocks, and merges the observed voxels into the layer as a
weighted running average.

Three variants are available, selected with IntegratorType:
    simple  - every point is projected, the nearest point per pixel wins
    merged  - points falling into the same voxel are replaced by their mean
    fast    - only the first point per start cell (voxel_size divided by
              start_voxel_subsampling_factor) is projected

Usage:
    integrator = create_tsdf_integrator(IntegratorType.SIMPLE, config, layer)
    integrator.integrate_pointcloud(T_G_C, points_C, colors)
    integrator.set_layer(other_layer)
"""

import numpy as np
import open3d as o3d
import open3d.core as o3c
from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional, Tuple, Union

from ..core.tsdf_layer import TsdfLayer


_EPSILON = 1e-6
_MAX_IMAGE_SIDE = 2048
# Keeps projected pixel coordinates away from integer boundaries.
_PIXEL_OFFSET = 0.25

_GRID_ATTRIBUTES = dict(
    attr_names=('tsdf', 'weight', 'color'),
    attr_dtypes=(o3c.float32, o3c.float32, o3c.float32),
    attr_channels=((1,), (1,), (3,)),
)


class IntegratorType(Enum):
    SIMPLE = "simple"
    MERGED = "merged"
    FAST = "fast"

    @classmethod
    def parse(cls, value: Union[str, 'IntegratorType']) -> 'IntegratorType':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown TSDF integrator type '{value}', expected one of: {valid}") from None


@dataclass
class TsdfIntegratorConfig:
    """
    Parameters shared by all integrator variants.

    Attributes:
        default_truncation_distance: Truncation band in meters; negative
            values are multiples of the layer's voxel size
        max_weight: Upper bound of the accumulated voxel weight
        min_ray_length_m: Points closer to the camera are ignored
        max_ray_length_m: Points further away are ignored
        start_voxel_subsampling_factor: Start cell refinement of the fast variant
    """
    default_truncation_distance: float = -2.0
    max_weight: float = 10000.0
    min_ray_length_m: float = 0.1
    max_ray_length_m: float = 5.0
    start_voxel_subsampling_factor: float = 2.0

    def __post_init__(self):
        if self.default_truncation_distance == 0:
            raise ValueError("default_truncation_distance must be non-zero")
        if self.max_weight <= 0:
            raise ValueError(f"max_weight must be positive, got {self.max_weight}")
        if self.min_ray_length_m < 0 or self.max_ray_length_m <= self.min_ray_length_m:
            raise ValueError(
                f"Invalid ray length range [{self.min_ray_length_m}, {self.max_ray_length_m}]")
        if self.start_voxel_subsampling_factor <= 0:
            raise ValueError("start_voxel_subsampling_factor must be positive")

    @classmethod
    def from_dict(cls, params: Optional[dict]) -> 'TsdfIntegratorConfig':
        params = dict(params or {})
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown TSDF integrator parameters: {sorted(unknown)}")
        return cls(**params)


def virtual_camera(points_C: np.ndarray, voxel_size: float) -> Tuple[np.ndarray, int, int]:
    """
    Pinhole camera that sees all points, with pixels about one voxel wide
    at the median depth.

    Args:
        points_C: (N, 3) points in camera frame, z > 0
        voxel_size: Target pixel footprint in meters

    Returns:
        K: 3x3 intrinsic matrix
        width, height: Image size in pixels
    """
    z = points_C[:, 2]
    tangents = points_C[:, :2] / z[:, None]
    low, high = tangents.min(axis=0), tangents.max(axis=0)

    focal = float(np.median(z)) / voxel_size
    span = float(np.max(high - low))
    if span > _EPSILON:
        focal = min(focal, (_MAX_IMAGE_SIDE - 3) / span)

    principal = np.floor(-low * focal) + 1.0 + _PIXEL_OFFSET
    width, height = (np.ceil(high * focal + principal).astype(int) + 2)
    K = np.array([
        [focal, 0.0, principal[0]],
        [0.0, focal, principal[1]],
        [0.0, 0.0, 1.0],
    ])
    return K, int(width), int(height)


class TsdfIntegrator:
    """
    Simple TSDF integrator, base of the other variants.

    The integrator holds a reference to exactly one target layer at a time;
    set_layer() rebinds it without touching the previous layer.

    Attributes:
        config: TsdfIntegratorConfig
        layer: Current target TsdfLayer
        frame_count: Number of integrated point clouds
    """

    integrator_type = IntegratorType.SIMPLE

    def __init__(self, config: TsdfIntegratorConfig, layer: TsdfLayer):
        self.config = config
        self.layer = layer
        self.frame_count = 0
        self.device = o3c.Device("CPU:0")

    def set_layer(self, layer: TsdfLayer):
        self.layer = layer

    @property
    def truncation_distance(self) -> float:
        trunc = self.config.default_truncation_distance
        if trunc < 0:
            return -trunc * self.layer.voxel_size
        return trunc

    def integrate_pointcloud(
        self,
        T_G_C: np.ndarray,
        points_C: np.ndarray,
        colors: np.ndarray
    ):
        """
        Integrate a colored point cloud observed from pose T_G_C.

        Repeated calls accumulate evidence in the current layer.

        Args:
            T_G_C: 4x4 camera pose in the layer's frame
            points_C: (N, 3) points in camera frame
            colors: (N, 3) RGB colors, 0-255
        """
        T_G_C = np.asarray(T_G_C, dtype=np.float64)
        points_C = np.asarray(points_C, dtype=np.float64).reshape(-1, 3)
        colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
        if points_C.shape[0] != colors.shape[0]:
            raise ValueError(
                f"Got {points_C.shape[0]} points but {colors.shape[0]} colors")
        if T_G_C.shape != (4, 4):
            raise ValueError(f"Expected a 4x4 pose, got shape {T_G_C.shape}")

        self.frame_count += 1

        ranges = np.linalg.norm(points_C, axis=1)
        valid = ((ranges >= self.config.min_ray_length_m)
                 & (ranges <= self.config.max_ray_length_m)
                 & (points_C[:, 2] > _EPSILON))
        points_C, colors = points_C[valid], colors[valid]
        if points_C.shape[0] == 0:
            return

        points_C, colors = self._select_points(points_C, colors, T_G_C)
        self._integrate_frame(T_G_C, points_C, colors)

    def _select_points(
        self,
        points_C: np.ndarray,
        colors: np.ndarray,
        T_G_C: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        return points_C, colors

    def _grid_to_layer(self) -> np.ndarray:
        """
        Layer frame to grid frame.

        The grid samples voxel g at g * voxel_size, the layer at its center
        (g + 0.5) * voxel_size.
        """
        T_O_G = np.eye(4)
        T_O_G[:3, 3] = -0.5 * self.layer.voxel_size
        return T_O_G

    def _create_grid(self, block_count: int) -> o3d.t.geometry.VoxelBlockGrid:
        return o3d.t.geometry.VoxelBlockGrid(
            voxel_size=self.layer.voxel_size,
            block_resolution=self.layer.voxels_per_side,
            block_count=max(int(block_count), 1),
            device=self.device,
            **_GRID_ATTRIBUTES,
        )

    def _integrate_frame(self, T_G_C: np.ndarray, points_C: np.ndarray, colors: np.ndarray):
        voxel_size = self.layer.voxel_size
        trunc = self.truncation_distance
        trunc_multiplier = trunc / voxel_size
        T_O_C = self._grid_to_layer() @ T_G_C

        # Render the points into a virtual RGB-D frame.
        K, width, height = virtual_camera(points_C, voxel_size)
        intrinsic = o3c.Tensor(K, dtype=o3c.float64, device=self.device)
        cloud_C = o3d.t.geometry.PointCloud(
            o3c.Tensor(points_C.astype(np.float32), device=self.device))
        cloud_C.point.colors = o3c.Tensor((colors / 255.0).astype(np.float32), device=self.device)
        rgbd = cloud_C.project_to_rgbd_image(
            width, height, intrinsic,
            depth_scale=1.0, depth_max=self.config.max_ray_length_m)

        # Blocks within the truncation band of any point.
        points_O = points_C @ T_O_C[:3, :3].T + T_O_C[:3, 3]
        cloud_O = o3d.t.geometry.PointCloud(
            o3c.Tensor(points_O.astype(np.float32), device=self.device))
        block_coords = self._create_grid(1).compute_unique_block_coordinates(
            cloud_O, trunc_voxel_multiplier=trunc_multiplier)

        grid = self._create_grid(block_coords.shape[0])
        grid.integrate(
            block_coords, rgbd.depth, rgbd.color, intrinsic,
            o3c.Tensor(np.linalg.inv(T_O_C), dtype=o3c.float64, device=self.device),
            depth_scale=1.0,
            depth_max=self.config.max_ray_length_m,
            trunc_voxel_multiplier=trunc_multiplier)

        self._merge_grid(grid, trunc)

    def _merge_grid(self, grid: o3d.t.geometry.VoxelBlockGrid, trunc: float):
        """Fold the voxels observed in grid into the layer."""
        coords, flat_indices = grid.voxel_coordinates_and_flattened_indices()
        flat_indices = flat_indices.numpy()
        weight = grid.attribute('weight').reshape((-1,)).numpy()[flat_indices]
        observed = weight > 0
        if not np.any(observed):
            return

        flat_indices, weight = flat_indices[observed], weight[observed].astype(np.float64)
        voxels = np.round(coords.numpy()[observed] / self.layer.voxel_size).astype(np.int64)
        sdf = grid.attribute('tsdf').reshape((-1,)).numpy()[flat_indices] * trunc
        color = grid.attribute('color').reshape((-1, 3)).numpy()[flat_indices] * 255.0

        self._update_voxels(voxels, weight, weight * sdf, weight[:, None] * color, trunc)

    def _update_voxels(
        self,
        voxels: np.ndarray,
        weight_sum: np.ndarray,
        sdf_sum: np.ndarray,
        color_sum: np.ndarray,
        trunc: float
    ):
        """Weighted-average update of unique voxels."""
        block_indices, linear_indices = self.layer.split_global_indices(voxels)
        keys, inverse = np.unique(block_indices, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)

        for k, key in enumerate(keys):
            selected = inverse == k
            block = self.layer.allocate_block(tuple(key))
            linear = linear_indices[selected]

            old_weight = block.weight[linear].astype(np.float64)
            old_distance = block.distance[linear].astype(np.float64)
            old_color = block.color[linear].astype(np.float64)
            new_weight = old_weight + weight_sum[selected]

            distance = (old_distance * old_weight + sdf_sum[selected]) / new_weight
            color = (old_color * old_weight[:, None] + color_sum[selected]) / new_weight[:, None]

            block.distance[linear] = np.clip(distance, -trunc, trunc)
            block.color[linear] = np.clip(np.round(color), 0, 255).astype(np.uint8)
            block.weight[linear] = np.minimum(new_weight, self.config.max_weight)
            block.updated = True


class MergedTsdfIntegrator(TsdfIntegrator):
    """Replaces all points of a voxel by their mean."""

    integrator_type = IntegratorType.MERGED

    def _select_points(self, points_C, colors, T_G_C):
        points_G = points_C @ T_G_C[:3, :3].T + T_G_C[:3, 3]
        voxels = self.layer.point_to_global_voxel_index(points_G)
        _, first, inverse = np.unique(voxels, axis=0, return_index=True, return_inverse=True)
        inverse = inverse.reshape(-1)

        # Keep bundles in first-seen order.
        order = np.argsort(first, kind='stable')
        rank = np.empty_like(order)
        rank[order] = np.arange(order.shape[0])
        bundle = rank[inverse]
        num_bundles = order.shape[0]

        counts = np.bincount(bundle, minlength=num_bundles).astype(np.float64)
        merged_points = np.stack([
            np.bincount(bundle, weights=points_C[:, c], minlength=num_bundles) / counts
            for c in range(3)
        ], axis=1)
        merged_colors = np.stack([
            np.bincount(bundle, weights=colors[:, c], minlength=num_bundles) / counts
            for c in range(3)
        ], axis=1)
        return merged_points, merged_colors


class FastTsdfIntegrator(TsdfIntegrator):
    """Drops every point whose start cell was already used in this cloud."""

    integrator_type = IntegratorType.FAST

    def _select_points(self, points_C, colors, T_G_C):
        points_G = points_C @ T_G_C[:3, :3].T + T_G_C[:3, 3]
        cell_size = self.layer.voxel_size / self.config.start_voxel_subsampling_factor
        cells = np.floor(points_G / cell_size).astype(np.int64)
        _, first = np.unique(cells, axis=0, return_index=True)
        first.sort()
        return points_C[first], colors[first]


_INTEGRATORS = {
    IntegratorType.SIMPLE: TsdfIntegrator,
    IntegratorType.MERGED: MergedTsdfIntegrator,
    IntegratorType.FAST: FastTsdfIntegrator,
}


def create_tsdf_integrator(
    integrator_type: Union[str, IntegratorType],
    config: TsdfIntegratorConfig,
    layer: TsdfLayer
) -> TsdfIntegrator:
    """
    Construct the backend selected by integrator_type, bound to layer.

    Raises:
        ValueError: For unknown integrator types
    """
    return _INTEGRATORS[IntegratorType.parse(integrator_type)](config, layer)
