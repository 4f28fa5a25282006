"""
Error Coloring

Paints every surface voxel of a map by the local reconstruction error:
    gray   - unknown (out of bounds, no ground truth nearby, no map data)
    green  - zero error
    red    - maximum error
Errors at or above the maximum saturate red while green bottoms out.
"""

import numpy as np
from scipy.spatial import cKDTree
from typing import Optional

from tqdm import tqdm

from ..core.interpolator import Interpolator
from ..core.submap_collection import SubmapCollection
from .bounds import Bounds
from .request import EvaluationRequest


MAX_NUMBER_OF_NEIGHBORS = 100
UNKNOWN_COLOR = np.array([128, 128, 128], dtype=np.uint8)


def error_to_color(frac: np.ndarray) -> np.ndarray:
    """
    Map normalized errors in [0, 1] to RGB colors.

    Below 0.5 green decays from 255 towards 190 while red ramps up, above
    0.5 red is saturated and green falls to 0.

    Args:
        frac: (N,) normalized errors

    Returns:
        colors: (N, 3) uint8
    """
    frac = np.asarray(frac, dtype=np.float64).reshape(-1)
    r = np.minimum((frac - 0.5) * 2.0 + 1.0, 1.0) * 255.0
    g = np.where(frac <= 0.5, 190.0 + 130.0 * frac, (1.0 - frac) * 2.0 * 255.0)
    b = np.zeros_like(frac)
    return np.stack([r, g, b], axis=1).astype(np.uint8)


def _nearest_ground_truth(tree: cKDTree, centers: np.ndarray, k: int):
    distances, indices = tree.query(centers, k=k)
    return distances.reshape(centers.shape[0], k), indices.reshape(centers.shape[0], k)


def compute_error_coloring(
    request: EvaluationRequest,
    gt_points: np.ndarray,
    submaps: SubmapCollection,
    bounds: Optional[Bounds] = None
):
    """
    Recolor all surface voxels of all submaps in place by local error.

    For every voxel within the truncation band, the nearest ground-truth
    points (the closest one, plus others within one voxel size) are looked
    up and the submap's interpolated distance at those points is averaged.

    Args:
        request: Validated evaluation request (maximum_distance, verbosity)
        gt_points: (N, 3) ground-truth surface points
        submaps: Map to recolor
        bounds: Evaluation region (everything if None)
    """
    bounds = bounds if bounds is not None else Bounds()
    gt_points = np.asarray(gt_points, dtype=np.float64).reshape(-1, 3)
    max_distance = request.maximum_distance

    tree = cKDTree(gt_points) if gt_points.shape[0] > 0 else None
    k = min(MAX_NUMBER_OF_NEIGHBORS, gt_points.shape[0])

    submap_list = sorted(submaps, key=lambda s: s.id)
    total_blocks = sum(s.tsdf_layer.num_allocated_blocks for s in submap_list)

    with tqdm(total=total_blocks, desc="Error coloring", unit="blocks",
              disable=request.verbosity < 1) as bar:
        for submap in submap_list:
            layer = submap.tsdf_layer
            voxel_size_sqr = layer.voxel_size ** 2
            truncation_distance = submap.truncation_distance

            # Error of the submap at every ground-truth point, computed lazily.
            gt_distances = None
            gt_known = None

            for block_index in layer.get_all_allocated_blocks():
                block = layer.blocks[block_index]
                surface = np.abs(block.distance) <= truncation_distance
                if not np.any(surface):
                    bar.update(1)
                    continue

                voxel_ids = np.flatnonzero(surface)
                colors = np.tile(UNKNOWN_COLOR, (voxel_ids.shape[0], 1))
                centers = block.compute_voxel_centers()[voxel_ids]
                in_bounds = bounds.points_are_valid(centers)

                if tree is not None and np.any(in_bounds):
                    if gt_distances is None:
                        gt_distances, gt_known = Interpolator(layer).get_distances(gt_points)

                    query = np.flatnonzero(in_bounds)
                    nn_distances, nn_indices = _nearest_ground_truth(tree, centers[query], k)

                    # Nearest point always, the rest only within one voxel.
                    keep = nn_distances ** 2 <= voxel_size_sqr
                    keep[:, 0] = True
                    keep &= np.isfinite(nn_distances)

                    safe_indices = np.where(keep, nn_indices, 0)
                    counted = keep & gt_known[safe_indices]
                    error_sum = np.sum(np.where(counted, np.abs(gt_distances[safe_indices]), 0.0), axis=1)
                    count = np.count_nonzero(counted, axis=1)

                    has_error = count > 0
                    average = error_sum[has_error] / count[has_error]
                    frac = np.minimum(average, max_distance) / max_distance
                    colors[query[has_error]] = error_to_color(frac)

                block.color[voxel_ids] = colors
                block.updated = True
                bar.update(1)

            submap.update_mesh()
