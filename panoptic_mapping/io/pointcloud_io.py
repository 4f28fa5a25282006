"""
Point cloud loading for ground-truth surfaces.
"""

import numpy as np
import open3d as o3d
from pathlib import Path
from typing import Union


def load_pointcloud(filepath: Union[str, Path]) -> np.ndarray:
    """
    Load the points of a point cloud file (.ply, .pcd, .xyz, ...).

    Args:
        filepath: Path to the point cloud

    Returns:
        points: (N, 3) float64 array

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file holds no points
    """
    filepath = Path(filepath)
    if not filepath.is_file():
        raise FileNotFoundError(f"Point cloud not found: {filepath}")

    pcd = o3d.io.read_point_cloud(str(filepath))
    points = np.asarray(pcd.points, dtype=np.float64)
    if points.shape[0] == 0:
        raise ValueError(f"Point cloud '{filepath}' is empty or unreadable")
    return points
