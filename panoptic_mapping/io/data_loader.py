"""
Panoptic Dataset Loader

Reads labeled RGB-D frames and their camera poses for offline integration.
Every frame needs a color, depth and id image plus a pose; the camera
intrinsics are shared by all frames.

Data Format:
    data_dir/
    ├── color/
    │   ├── 000000.png
    │   └── ...
    ├── depth/
    │   ├── 000000.png  (16-bit PNG, raw units scaled by depth_scale)
    │   └── ...
    ├── ids/
    │   ├── 000000.png  (16-bit PNG, instance id per pixel)
    │   └── ...
    ├── poses.txt       (T_world_cam of every frame, 4 rows of 4 values each;
    │                    '#' comment lines are ignored)
    └── intrinsics.json (fx, fy, cx, cy, width, height, depth_scale)
"""

import numpy as np
import cv2
import json
import open3d as o3d
from pathlib import Path
from typing import Tuple


INTRINSIC_KEYS = ("fx", "fy", "cx", "cy", "width", "height", "depth_scale")


def load_poses(pose_file: Path) -> np.ndarray:
    """
    Read the stacked 4x4 poses of a pose file.

    Returns:
        (N, 4, 4) array of T_world_cam

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the values do not form whole 4x4 matrices
    """
    if not pose_file.exists():
        raise FileNotFoundError(f"Pose file not found: {pose_file}")

    values = np.loadtxt(str(pose_file), comments='#', ndmin=2)
    if values.size == 0:
        return np.zeros((0, 4, 4))
    if values.shape[1] != 4 or values.shape[0] % 4 != 0:
        raise ValueError(
            f"Malformed pose file {pose_file}: expected rows of 4 values in groups of 4, "
            f"got a {values.shape[0]}x{values.shape[1]} table")
    return values.reshape(-1, 4, 4)


class DataLoader:
    """
    Frame access for a panoptic dataset.

    Frames are returned as (color, depth, ids, pose).
    """

    def __init__(self, data_dir: str):
        """
        Open a dataset directory.

        Args:
            data_dir: Path to the dataset directory

        Raises:
            FileNotFoundError: If the directory, intrinsics or poses are missing
            ValueError: If intrinsics or poses are malformed
        """
        self.data_dir = Path(data_dir)
        if not self.data_dir.is_dir():
            raise FileNotFoundError(f"Dataset directory not found: {self.data_dir}")

        self.color_dir = self.data_dir / "color"
        self.depth_dir = self.data_dir / "depth"
        self.id_dir = self.data_dir / "ids"

        self.intrinsics = self._load_intrinsics(self.data_dir / "intrinsics.json")
        self.poses = load_poses(self.data_dir / "poses.txt")
        self.num_frames = len(list(self.color_dir.glob("*.png")))

        if len(self.poses) < self.num_frames:
            print(f"Warning: {self.num_frames} frames but only {len(self.poses)} poses")
        print(f"Loaded dataset: {self.num_frames} frames")

    @staticmethod
    def _load_intrinsics(path: Path) -> dict:
        if not path.exists():
            raise FileNotFoundError(f"Camera intrinsics not found: {path}")

        with open(path, 'r') as f:
            intrinsics = json.load(f)

        missing = [key for key in INTRINSIC_KEYS if key not in intrinsics]
        if missing:
            raise ValueError(f"Camera intrinsics {path} lack {missing}")
        return intrinsics

    @staticmethod
    def _read_image(path: Path, flags: int) -> np.ndarray:
        image = cv2.imread(str(path), flags)
        if image is None:
            raise FileNotFoundError(f"Image not found: {path}")
        return image

    def get_pose(self, index: int) -> np.ndarray:
        """
        Camera pose of a frame.

        Raises:
            ValueError: If the pose file has no entry for the frame
        """
        if not 0 <= index < len(self.poses):
            raise ValueError(f"No pose for frame {index}, pose file holds {len(self.poses)}")
        return self.poses[index]

    def get_frame(self, index: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Get a single frame.

        Args:
            index: Frame index

        Returns:
            color: BGR color image
            depth: Depth image in meters (float32)
            ids: Instance id image (int64)
            pose: 4x4 camera pose matrix

        Raises:
            FileNotFoundError: If one of the frame's images is missing
            ValueError: If the frame has no pose
        """
        name = f"{index:06d}.png"
        color = self._read_image(self.color_dir / name, cv2.IMREAD_COLOR)
        depth = self._read_image(self.depth_dir / name, cv2.IMREAD_UNCHANGED)
        ids = self._read_image(self.id_dir / name, cv2.IMREAD_UNCHANGED)
        if ids.ndim == 3:
            ids = ids[:, :, 0]

        depth = depth.astype(np.float32) * self.intrinsics['depth_scale']
        return color, depth, ids.astype(np.int64), self.get_pose(index)

    def get_open3d_intrinsic(self) -> o3d.camera.PinholeCameraIntrinsic:
        """Get Open3D camera intrinsic object."""
        return o3d.camera.PinholeCameraIntrinsic(
            self.intrinsics['width'],
            self.intrinsics['height'],
            self.intrinsics['fx'],
            self.intrinsics['fy'],
            self.intrinsics['cx'],
            self.intrinsics['cy']
        )

    def __len__(self) -> int:
        return self.num_frames

    def __iter__(self):
        for i in range(self.num_frames):
            yield self.get_frame(i)
