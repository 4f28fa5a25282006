import numpy as np
import pytest

from panoptic_mapping.core import SubmapCollection
from panoptic_mapping.tracking import GroundTruthIdTracker


def test_allocates_missing_ids():
    submaps = SubmapCollection()
    tracker = GroundTruthIdTracker()

    assert tracker.process_ids(submaps, np.array([[0, 3], [3, 5]])) == [0, 3, 5]
    assert submaps.get_submap(0).voxel_size == pytest.approx(0.1)
    assert submaps.get_submap(3).voxel_size == pytest.approx(0.05)
    assert submaps.get_submap(3).truncation_distance == pytest.approx(0.1)

    assert tracker.process_ids(submaps, [0, 3, 3, 5]) == []
    assert tracker.process_ids(submaps, [5, 9]) == [9]
    assert len(submaps) == 4


def test_config_from_dict():
    config = GroundTruthIdTracker.Config.from_dict(
        {"instance_voxel_size": 0.02, "background_ids": [0, 1], "voxels_per_side": 8})
    tracker = GroundTruthIdTracker(config)
    assert tracker.submap_config_for(1).voxel_size == pytest.approx(0.1)
    assert tracker.submap_config_for(2).voxel_size == pytest.approx(0.02)
    assert tracker.submap_config_for(2).voxels_per_side == 8


def test_invalid_config():
    with pytest.raises(ValueError):
        GroundTruthIdTracker.Config(instance_voxel_size=0.0)
    with pytest.raises(TypeError):
        GroundTruthIdTracker.Config.from_dict({"voxel_size": 0.1})
