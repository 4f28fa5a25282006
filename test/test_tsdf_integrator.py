"""
Tests for the TSDF integration backends.
"""

import numpy as np
import pytest

from panoptic_mapping.core import TsdfLayer
from panoptic_mapping.integration import (
    FastTsdfIntegrator, IntegratorType, MergedTsdfIntegrator, TsdfIntegrator,
    TsdfIntegratorConfig, create_tsdf_integrator
)
from panoptic_mapping.integration.tsdf_integrator import virtual_camera


VOXEL_SIZE = 0.05


def make_integrator(integrator_type="simple", **params):
    layer = TsdfLayer(voxel_size=VOXEL_SIZE, voxels_per_side=16)
    return create_tsdf_integrator(integrator_type, TsdfIntegratorConfig(**params), layer)


def voxel(layer, index):
    distance, weight, _ = layer.lookup_voxels(np.array([index]))
    return float(distance[0]), float(weight[0])


def layer_state(layer):
    return {index: (layer.get_block(index).distance.copy(), layer.get_block(index).weight.copy())
            for index in layer.get_all_allocated_blocks()}


def two_layer_cloud(near, far):
    """One column of points per voxel, each column holding a near and a far point."""
    offsets = (np.arange(-6, 6) + 0.5) * VOXEL_SIZE
    xs, ys = np.meshgrid(offsets, offsets)
    columns = np.stack([xs.ravel(), ys.ravel()], axis=1)
    points = np.vstack([
        np.column_stack([columns, np.full(len(columns), near)]),
        np.column_stack([columns, np.full(len(columns), far)]),
    ])
    colors = np.full((points.shape[0], 3), 120, dtype=np.uint8)
    return points, colors


class TestFactory:

    def test_types(self):
        assert isinstance(make_integrator("simple"), TsdfIntegrator)
        assert isinstance(make_integrator("merged"), MergedTsdfIntegrator)
        assert isinstance(make_integrator(IntegratorType.FAST), FastTsdfIntegrator)
        assert IntegratorType.parse("MERGED") is IntegratorType.MERGED

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            make_integrator("projective")

    def test_unknown_config_key(self):
        with pytest.raises(ValueError):
            TsdfIntegratorConfig.from_dict({"max_weight": 5.0, "voxel_carving": False})

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            TsdfIntegratorConfig(min_ray_length_m=2.0, max_ray_length_m=1.0)

    def test_truncation_in_voxel_sizes(self):
        assert make_integrator().truncation_distance == pytest.approx(2 * VOXEL_SIZE)
        assert make_integrator(default_truncation_distance=0.3).truncation_distance == pytest.approx(0.3)


class TestVirtualCamera:

    def test_points_project_inside_image(self, plane_cloud):
        points, _ = plane_cloud
        K, width, height = virtual_camera(points, VOXEL_SIZE)
        assert K[0, 0] == pytest.approx(1.0 / VOXEL_SIZE)
        pixels = points[:, :2] / points[:, 2:] * K[0, 0] + K[:2, 2]
        assert np.all(pixels >= 0)
        assert np.all(pixels[:, 0] < width)
        assert np.all(pixels[:, 1] < height)

    def test_image_size_is_bounded(self):
        points = np.array([[-50.0, -50.0, 1.0], [50.0, 50.0, 1.0]])
        _, width, height = virtual_camera(points, 0.001)
        assert width <= 2048 and height <= 2048


class TestSimpleIntegration:

    def test_surface_zero_crossing(self, plane_cloud, identity_pose):
        integrator = make_integrator()
        integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        layer = integrator.layer

        # Plane at z = 1 lies between voxel 19 (center 0.975) and 20 (center 1.025).
        front, front_weight = voxel(layer, (0, 0, 19))
        behind, behind_weight = voxel(layer, (0, 0, 20))
        assert front == pytest.approx(0.025, abs=1e-5)
        assert behind == pytest.approx(-0.025, abs=1e-5)
        assert front_weight == pytest.approx(1.0)
        assert behind_weight == pytest.approx(1.0)

        block_index, linear = layer.split_global_indices(np.array([[0, 0, 19]]))
        block = layer.get_block(tuple(block_index[0]))
        np.testing.assert_array_equal(block.color[linear[0]], [200, 100, 50])
        assert block.updated
        assert integrator.frame_count == 1

    def test_truncation_band(self, plane_cloud, identity_pose):
        integrator = make_integrator()
        integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        trunc = integrator.truncation_distance

        # In front of the band the distance saturates, far behind it nothing is observed.
        distance, weight = voxel(integrator.layer, (0, 0, 16))
        assert weight > 0
        assert distance == pytest.approx(trunc, abs=1e-6)
        assert voxel(integrator.layer, (0, 0, 23))[1] == 0.0
        assert voxel(integrator.layer, (0, 0, 5))[1] == 0.0

    def test_repeated_integration_accumulates(self, plane_cloud, identity_pose):
        integrator = make_integrator()
        integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        distance_once, weight_once = voxel(integrator.layer, (0, 0, 19))
        integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        distance_twice, weight_twice = voxel(integrator.layer, (0, 0, 19))
        assert weight_twice == pytest.approx(2 * weight_once)
        assert distance_twice == pytest.approx(distance_once, abs=1e-6)
        assert integrator.frame_count == 2

    def test_max_weight(self, plane_cloud, identity_pose):
        integrator = make_integrator(max_weight=1.5)
        for _ in range(3):
            integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        for index in integrator.layer.get_all_allocated_blocks():
            assert integrator.layer.get_block(index).weight.max() <= 1.5

    def test_short_rays_ignored(self, identity_pose):
        integrator = make_integrator(min_ray_length_m=0.1)
        integrator.integrate_pointcloud(identity_pose, [[0.0, 0.0, 0.05]], [[1, 2, 3]])
        assert integrator.layer.num_allocated_blocks == 0

    def test_long_rays_ignored(self, plane_cloud, identity_pose):
        integrator = make_integrator(max_ray_length_m=0.5)
        integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        assert integrator.layer.num_allocated_blocks == 0

    def test_points_behind_camera_ignored(self, plane_cloud, identity_pose):
        points, colors = plane_cloud
        integrator = make_integrator()
        integrator.integrate_pointcloud(identity_pose, points * [1.0, 1.0, -1.0], colors)
        assert integrator.layer.num_allocated_blocks == 0

    def test_pose_is_applied(self, plane_cloud):
        pose = np.eye(4)
        pose[2, 3] = 0.5
        integrator = make_integrator()
        integrator.integrate_pointcloud(pose, *plane_cloud)
        assert voxel(integrator.layer, (0, 0, 29))[0] == pytest.approx(0.025, abs=1e-5)
        assert voxel(integrator.layer, (0, 0, 30))[0] == pytest.approx(-0.025, abs=1e-5)

    def test_empty_cloud(self, identity_pose):
        integrator = make_integrator()
        integrator.integrate_pointcloud(identity_pose, np.zeros((0, 3)), np.zeros((0, 3)))
        assert integrator.layer.num_allocated_blocks == 0
        assert integrator.frame_count == 1

    def test_size_mismatch(self, plane_cloud, identity_pose):
        points, colors = plane_cloud
        with pytest.raises(ValueError):
            make_integrator().integrate_pointcloud(identity_pose, points, colors[:-1])

    def test_invalid_pose(self, plane_cloud):
        with pytest.raises(ValueError):
            make_integrator().integrate_pointcloud(np.eye(3), *plane_cloud)

    def test_set_layer(self, plane_cloud, identity_pose):
        integrator = make_integrator()
        first = integrator.layer
        second = TsdfLayer(voxel_size=VOXEL_SIZE, voxels_per_side=16)
        integrator.set_layer(second)
        integrator.integrate_pointcloud(identity_pose, *plane_cloud)
        assert first.num_allocated_blocks == 0
        assert second.num_allocated_blocks > 0


class TestIntegratorVariants:

    def test_simple_keeps_nearest_point_per_pixel(self, identity_pose):
        integrator = make_integrator("simple")
        integrator.integrate_pointcloud(identity_pose, *two_layer_cloud(1.01, 1.04))
        # Voxel 20 is centered at 1.025.
        assert voxel(integrator.layer, (0, 0, 20))[0] == pytest.approx(-0.015, abs=1e-4)

    def test_merged_averages_points_per_voxel(self, identity_pose):
        integrator = make_integrator("merged")
        integrator.integrate_pointcloud(identity_pose, *two_layer_cloud(1.01, 1.04))
        assert voxel(integrator.layer, (0, 0, 20))[0] == pytest.approx(0.0, abs=1e-4)

    def test_fast_keeps_first_point_per_start_cell(self, identity_pose):
        # Both layers share a start cell of 2.5 cm; the far one comes first.
        points, colors = two_layer_cloud(1.02, 1.01)
        integrator = make_integrator("fast")
        integrator.integrate_pointcloud(identity_pose, points, colors)
        assert voxel(integrator.layer, (0, 0, 20))[0] == pytest.approx(-0.005, abs=1e-4)

    def test_fast_ignores_duplicates(self, plane_cloud, identity_pose):
        points, colors = plane_cloud
        single = make_integrator("fast")
        single.integrate_pointcloud(identity_pose, points, colors)
        doubled = make_integrator("fast")
        doubled.integrate_pointcloud(identity_pose, np.vstack([points, points]),
                                     np.vstack([colors, colors]))

        expected = layer_state(single.layer)
        actual = layer_state(doubled.layer)
        assert expected.keys() == actual.keys()
        for index, (distance, weight) in expected.items():
            np.testing.assert_array_equal(actual[index][0], distance)
            np.testing.assert_array_equal(actual[index][1], weight)
