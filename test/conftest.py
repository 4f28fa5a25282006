import os
import sys

import numpy as np
import pytest

# Ensure local package import works for pytest collection.
_TEST_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_TEST_DIR, ".."))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from panoptic_mapping.core import SubmapCollection, SubmapConfig  # noqa: E402


def fill_submap(submaps, submap_id, distance, voxel_size=0.1, truncation_distance=1.0,
                voxels_per_side=8, blocks=((0, 0, 0),), weight=1.0):
    """Create a submap whose given blocks hold a constant distance and weight."""
    config = SubmapConfig(voxel_size=voxel_size, truncation_distance=truncation_distance,
                          voxels_per_side=voxels_per_side)
    submap = submaps.create_submap(config, submap_id=submap_id)
    for index in blocks:
        block = submap.tsdf_layer.allocate_block(index)
        block.distance[:] = distance
        block.weight[:] = weight
        block.color[:] = (10, 20, 30)
    return submap


@pytest.fixture
def constant_map():
    """Factory for single-block maps with a constant distance field."""
    def make(distance, **kwargs):
        submaps = SubmapCollection()
        fill_submap(submaps, 1, distance, **kwargs)
        return submaps
    return make


@pytest.fixture
def plane_cloud():
    """A 1m x 1m grid of points on the plane z = 1 in camera frame, with colors."""
    xs, ys = np.meshgrid(np.linspace(-0.5, 0.5, 21), np.linspace(-0.5, 0.5, 21))
    points = np.stack([xs.ravel(), ys.ravel(), np.ones(xs.size)], axis=1)
    colors = np.tile(np.array([200, 100, 50], dtype=np.uint8), (points.shape[0], 1))
    return points, colors


@pytest.fixture
def identity_pose():
    return np.eye(4)
