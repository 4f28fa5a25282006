"""
Submap Visualization Module

Displays the surface of every submap as a colored point cloud.

Usage:
    vis = SubmapVisualizer()
    vis.visualize_all(submaps)
"""

import numpy as np
import open3d as o3d
from typing import Dict, List

from ..core.submap_collection import SubmapCollection


class SubmapVisualizer:
    """
    Viewer for panoptic maps.

    Surface clouds are cached per submap and rebuilt only when the submap's
    surface was marked stale.
    """

    def __init__(self, window_name: str = "Panoptic Map", coordinate_frame: bool = True):
        """
        Initialize the visualizer.

        Args:
            window_name: Name of the visualization window
            coordinate_frame: Whether to show the world coordinate frame
        """
        self.window_name = window_name
        self.coordinate_frame = coordinate_frame
        self._clouds: Dict[int, o3d.geometry.PointCloud] = {}

    def reset(self):
        """Drop all cached geometry."""
        self._clouds = {}

    def submap_to_pointcloud(self, submap) -> o3d.geometry.PointCloud:
        if submap.id in self._clouds and not submap.mesh_is_stale:
            return self._clouds[submap.id]

        points, colors = submap.get_surface_points()
        pcd = o3d.geometry.PointCloud()
        pcd.points = o3d.utility.Vector3dVector(points)
        pcd.colors = o3d.utility.Vector3dVector(colors.astype(np.float64) / 255.0)
        self._clouds[submap.id] = pcd
        return pcd

    def build_geometries(self, submaps: SubmapCollection) -> List[o3d.geometry.Geometry]:
        geometries = [self.submap_to_pointcloud(submap) for submap in submaps]
        if self.coordinate_frame:
            geometries.append(o3d.geometry.TriangleMesh.create_coordinate_frame(size=0.1))
        return geometries

    def visualize_all(self, submaps: SubmapCollection):
        """
        Display all submaps in one window.

        Args:
            submaps: Map to display
        """
        geometries = self.build_geometries(submaps)
        num_points = sum(len(g.points) for g in geometries if isinstance(g, o3d.geometry.PointCloud))
        print(f"Showing {len(submaps)} submaps ({num_points} surface points)")
        o3d.visualization.draw_geometries(geometries, window_name=self.window_name)
