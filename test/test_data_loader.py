import json

import cv2
import numpy as np
import pytest

from panoptic_mapping.io import DataLoader, load_poses


@pytest.fixture
def dataset(tmp_path):
    for name in ("color", "depth", "ids"):
        (tmp_path / name).mkdir()

    color = np.zeros((4, 5, 3), dtype=np.uint8)
    color[:, :] = (10, 20, 30)
    cv2.imwrite(str(tmp_path / "color" / "000000.png"), color)
    cv2.imwrite(str(tmp_path / "depth" / "000000.png"), np.full((4, 5), 1500, dtype=np.uint16))
    cv2.imwrite(str(tmp_path / "ids" / "000000.png"), np.full((4, 5), 3, dtype=np.uint16))

    pose = np.eye(4)
    pose[:3, 3] = (1.0, 2.0, 3.0)
    with open(tmp_path / "poses.txt", "w") as f:
        f.write("# frame 0\n")
        for row in pose:
            f.write(" ".join(str(v) for v in row) + "\n")

    intrinsics = {"fx": 4.0, "fy": 4.0, "cx": 2.0, "cy": 1.5,
                  "width": 5, "height": 4, "depth_scale": 0.001}
    with open(tmp_path / "intrinsics.json", "w") as f:
        json.dump(intrinsics, f)
    return tmp_path, pose


def test_get_frame(dataset):
    data_dir, pose = dataset
    loader = DataLoader(str(data_dir))
    assert len(loader) == 1

    color, depth, ids, frame_pose = loader.get_frame(0)
    assert color.shape == (4, 5, 3)
    np.testing.assert_allclose(depth, 1.5, rtol=1e-6)
    np.testing.assert_array_equal(ids, 3)
    assert ids.dtype == np.int64
    np.testing.assert_allclose(frame_pose, pose)


def test_intrinsic(dataset):
    intrinsic = DataLoader(str(dataset[0])).get_open3d_intrinsic()
    assert intrinsic.width == 5
    assert intrinsic.height == 4
    np.testing.assert_allclose(intrinsic.intrinsic_matrix[0], [4.0, 0.0, 2.0])


def test_iteration(dataset):
    frames = list(DataLoader(str(dataset[0])))
    assert len(frames) == 1
    assert frames[0][2][0, 0] == 3


def test_missing_frame(dataset):
    with pytest.raises(FileNotFoundError):
        DataLoader(str(dataset[0])).get_frame(1)


def test_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        DataLoader(str(tmp_path / "nowhere"))


def test_missing_pose(dataset):
    data_dir, _ = dataset
    cv2.imwrite(str(data_dir / "color" / "000001.png"), np.zeros((4, 5, 3), dtype=np.uint8))
    cv2.imwrite(str(data_dir / "depth" / "000001.png"), np.zeros((4, 5), dtype=np.uint16))
    cv2.imwrite(str(data_dir / "ids" / "000001.png"), np.zeros((4, 5), dtype=np.uint16))

    loader = DataLoader(str(data_dir))
    assert len(loader) == 2
    with pytest.raises(ValueError):
        loader.get_frame(1)
    with pytest.raises(ValueError):
        loader.get_pose(-1)


def test_missing_pose_file(dataset):
    data_dir, _ = dataset
    (data_dir / "poses.txt").unlink()
    with pytest.raises(FileNotFoundError):
        DataLoader(str(data_dir))


def test_missing_intrinsics(dataset):
    data_dir, _ = dataset
    (data_dir / "intrinsics.json").unlink()
    with pytest.raises(FileNotFoundError):
        DataLoader(str(data_dir))


def test_incomplete_intrinsics(dataset):
    data_dir, _ = dataset
    with open(data_dir / "intrinsics.json", "w") as f:
        json.dump({"fx": 4.0, "fy": 4.0}, f)
    with pytest.raises(ValueError):
        DataLoader(str(data_dir))


def test_load_poses(tmp_path):
    path = tmp_path / "poses.txt"
    poses = np.stack([np.eye(4), np.diag([2.0, 2.0, 2.0, 1.0])])
    with open(path, "w") as f:
        for i, pose in enumerate(poses):
            f.write(f"# frame {i}\n")
            np.savetxt(f, pose)
    np.testing.assert_allclose(load_poses(path), poses)


def test_malformed_poses(tmp_path):
    path = tmp_path / "poses.txt"
    np.savetxt(path, np.eye(4)[:3])
    with pytest.raises(ValueError):
        load_poses(path)
