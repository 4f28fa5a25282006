"""
Trilinear distance interpolation on a TsdfLayer.

A location is known if all eight surrounding voxel centers are observed
(weight > 0). Without interpolation the voxel containing the point is used.
"""

import numpy as np
from typing import Optional, Tuple

from .tsdf_layer import TsdfLayer


_WEIGHT_EPSILON = 1e-6

# Corner offsets of the interpolation cell, x varies fastest.
_CORNER_OFFSETS = np.array(
    [[x, y, z] for z in (0, 1) for y in (0, 1) for x in (0, 1)], dtype=np.int64
)


class Interpolator:
    """Distance queries on one layer."""

    def __init__(self, layer: TsdfLayer):
        self.layer = layer

    def get_distance(self, point: np.ndarray, interpolate: bool = True) -> Optional[float]:
        distances, known = self.get_distances(np.asarray(point).reshape(1, 3), interpolate)
        if not known[0]:
            return None
        return float(distances[0])

    def get_distances(
        self,
        points: np.ndarray,
        interpolate: bool = True
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Query distances at many points.

        Args:
            points: (N, 3) query positions in world frame
            interpolate: Trilinear interpolation if True, nearest voxel otherwise

        Returns:
            distances: (N,) float64, zero where unknown
            known: (N,) bool
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        num = points.shape[0]
        if num == 0:
            return np.zeros(0, dtype=np.float64), np.zeros(0, dtype=bool)

        if not interpolate:
            indices = self.layer.point_to_global_voxel_index(points)
            distance, weight, found = self.layer.lookup_voxels(indices)
            known = found & (weight > _WEIGHT_EPSILON)
            return np.where(known, distance, 0.0).astype(np.float64), known

        scaled = points / self.layer.voxel_size - 0.5
        base = np.floor(scaled).astype(np.int64)
        frac = scaled - base

        corners = (base[:, None, :] + _CORNER_OFFSETS[None, :, :]).reshape(-1, 3)
        distance, weight, found = self.layer.lookup_voxels(corners)
        distance = distance.reshape(num, 8).astype(np.float64)
        observed = (found & (weight > _WEIGHT_EPSILON)).reshape(num, 8)
        known = np.all(observed, axis=1)

        # (N, 8) trilinear coefficients
        coefficients = np.prod(
            np.where(_CORNER_OFFSETS[None, :, :] == 1, frac[:, None, :], 1.0 - frac[:, None, :]),
            axis=2,
        )
        distances = np.sum(coefficients * distance, axis=1)
        return np.where(known, distances, 0.0), known
