"""
Integrator Interface

Integrators route labeled observations into the submaps of a
SubmapCollection. Subclasses implement process_pointcloud(); image input is
back-projected into a labeled point cloud and forwarded to it.
"""

import numpy as np
import open3d as o3d
from typing import List, Optional, Tuple

from ..core.submap_collection import SubmapCollection


def depth_to_pointcloud(
    depth: np.ndarray,
    color: np.ndarray,
    ids: np.ndarray,
    intrinsic: o3d.camera.PinholeCameraIntrinsic
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Back-project a depth image into a labeled, colored point cloud.

    Args:
        depth: Depth image (H, W) in meters
        color: BGR color image (H, W, 3) as loaded by OpenCV
        ids: Instance id image (H, W)
        intrinsic: Pinhole camera intrinsics

    Returns:
        points: (N, 3) points in camera frame
        colors: (N, 3) RGB colors
        point_ids: (N,) instance ids
    """
    depth = np.asarray(depth, dtype=np.float64)
    if depth.ndim != 2:
        raise ValueError(f"Expected a single-channel depth image, got shape {depth.shape}")
    if color.shape[:2] != depth.shape or ids.shape[:2] != depth.shape:
        raise ValueError(
            f"Image sizes differ: depth {depth.shape}, color {color.shape[:2]}, ids {ids.shape[:2]}")

    K = intrinsic.intrinsic_matrix
    fx, fy, cx, cy = K[0, 0], K[1, 1], K[0, 2], K[1, 2]

    v, u = np.nonzero(np.isfinite(depth) & (depth > 0))
    z = depth[v, u]
    points = np.stack([(u - cx) * z / fx, (v - cy) * z / fy, z], axis=1)

    # OpenCV images are BGR
    if color.ndim == 3 and color.shape[2] == 3:
        colors = color[v, u, ::-1]
    else:
        colors = np.repeat(color[v, u][:, None], 3, axis=1)

    return points, colors.astype(np.uint8), np.asarray(ids)[v, u].astype(np.int64)


class IntegratorBase:
    """
    Interface for point cloud integrators.

    Attributes:
        intrinsic: Camera intrinsics, required for process_images()
    """

    def __init__(self, intrinsic: Optional[o3d.camera.PinholeCameraIntrinsic] = None):
        self.intrinsic = intrinsic

    def process_pointcloud(
        self,
        submaps: SubmapCollection,
        T_M_C: np.ndarray,
        pointcloud: np.ndarray,
        colors: np.ndarray,
        ids: np.ndarray
    ) -> List[int]:
        raise NotImplementedError

    def process_images(
        self,
        submaps: SubmapCollection,
        T_M_C: np.ndarray,
        depth_image: np.ndarray,
        color_image: np.ndarray,
        id_image: np.ndarray
    ) -> List[int]:
        """
        Integrate a depth, color and instance id image triple.

        Args:
            submaps: Target submap collection
            T_M_C: 4x4 camera pose in map frame
            depth_image: Depth in meters (H, W)
            color_image: BGR color image (H, W, 3)
            id_image: Instance id per pixel (H, W)

        Returns:
            ids: Instance ids that were integrated
        """
        if self.intrinsic is None:
            raise ValueError("Camera intrinsics are required to integrate images")
        points, colors, ids = depth_to_pointcloud(depth_image, color_image, id_image, self.intrinsic)
        return self.process_pointcloud(submaps, T_M_C, points, colors, ids)
