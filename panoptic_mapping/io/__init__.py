# Map, point cloud and dataset I/O
from .map_io import MAP_FILE_EXTENSION, save_submap_collection, load_submap_collection
from .pointcloud_io import load_pointcloud
from .data_loader import DataLoader, load_poses

__all__ = [
    'MAP_FILE_EXTENSION', 'save_submap_collection', 'load_submap_collection',
    'load_pointcloud', 'DataLoader', 'load_poses'
]
