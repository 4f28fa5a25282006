import numpy as np
import open3d as o3d

from conftest import fill_submap
from panoptic_mapping.core import SubmapCollection
from panoptic_mapping.evaluation import EvaluationRequest, compute_error_coloring
from panoptic_mapping.visualization import SubmapVisualizer


def make_map():
    submaps = SubmapCollection()
    fill_submap(submaps, 1, 0.0)
    fill_submap(submaps, 2, 0.0, blocks=((1, 0, 0),))
    return submaps


def clouds(geometries):
    return [g for g in geometries if isinstance(g, o3d.geometry.PointCloud)]


def test_geometries_include_coordinate_frame():
    geometries = SubmapVisualizer().build_geometries(make_map())
    assert len(clouds(geometries)) == 2
    assert sum(isinstance(g, o3d.geometry.TriangleMesh) for g in geometries) == 1
    assert len(clouds(geometries)[0].points) == 8 ** 3
    np.testing.assert_allclose(np.asarray(clouds(geometries)[0].colors)[0],
                               np.array([10, 20, 30]) / 255.0)


def test_coordinate_frame_disabled():
    geometries = SubmapVisualizer(coordinate_frame=False).build_geometries(make_map())
    assert all(isinstance(g, o3d.geometry.PointCloud) for g in geometries)


def test_recoloring_rebuilds_clouds():
    submaps = make_map()
    visualizer = SubmapVisualizer()
    before = np.asarray(clouds(visualizer.build_geometries(submaps))[0].colors).copy()

    compute_error_coloring(EvaluationRequest(verbosity=0), [[0.4, 0.4, 0.4]], submaps)
    after = np.asarray(clouds(visualizer.build_geometries(submaps))[0].colors)

    assert not np.allclose(before, after)
    np.testing.assert_allclose(after[0], np.array([0, 190, 0]) / 255.0)


def test_cached_until_update_mesh():
    submaps = make_map()
    visualizer = SubmapVisualizer()
    first = clouds(visualizer.build_geometries(submaps))[0]

    block = submaps.get_submap(1).tsdf_layer.get_block((0, 0, 0))
    block.color[:] = (255, 0, 0)
    assert clouds(visualizer.build_geometries(submaps))[0] is first

    submaps.get_submap(1).update_mesh()
    rebuilt = clouds(visualizer.build_geometries(submaps))[0]
    assert rebuilt is not first
    np.testing.assert_allclose(np.asarray(rebuilt.colors)[0], [1.0, 0.0, 0.0])


def test_reset_drops_cache():
    submaps = make_map()
    visualizer = SubmapVisualizer()
    first = clouds(visualizer.build_geometries(submaps))[0]
    visualizer.reset()
    assert clouds(visualizer.build_geometries(submaps))[0] is not first


def test_visualize_all(monkeypatch):
    shown = []
    monkeypatch.setattr(o3d.visualization, "draw_geometries",
                        lambda geometries, window_name: shown.append((geometries, window_name)))
    SubmapVisualizer(window_name="Test Map").visualize_all(make_map())

    assert len(shown) == 1
    geometries, window_name = shown[0]
    assert window_name == "Test Map"
    assert len(clouds(geometries)) == 2
