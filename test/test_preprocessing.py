from unittest import mock

import numpy as np
import pytest

from icp_object_tracker.clouds import make_cloud, point_count
from icp_object_tracker.config import TrackerConfig
from icp_object_tracker.exceptions import InsufficientDataError
from icp_object_tracker.preprocessing import Preprocessor
from icp_object_tracker.transforms import RigidTransform


def dense_block(n=400, center=(0.0, 0.0, 1.5), size=0.1, seed=1):
    rng = np.random.default_rng(seed)
    return np.asarray(center) + rng.uniform(-size / 2, size / 2, size=(n, 3))


def test_remove_non_finite_keeps_input_untouched():
    points = np.array([[0.0, 0.0, 1.0], [np.nan, 0.0, 1.0], [0.0, np.inf, 1.0], [1.0, 1.0, 1.0]])
    cloud = make_cloud(points)

    cleaned = Preprocessor(TrackerConfig()).remove_non_finite(cloud)

    assert point_count(cleaned) == 2
    assert np.isfinite(np.asarray(cleaned.points)).all()
    assert point_count(cloud) == 4


def test_crop_range_uses_configured_axis():
    points = np.array([[0.0, 0.0, 0.5], [0.0, 0.0, 1.5], [0.0, 0.0, 3.0], [2.0, 0.0, 1.0]])
    preprocessor = Preprocessor(TrackerConfig(min_range=1.0, max_range=2.5))

    cropped = np.asarray(preprocessor.crop_range(make_cloud(points)).points)
    np.testing.assert_allclose(cropped, [[0.0, 0.0, 1.5], [2.0, 0.0, 1.0]])

    by_x = Preprocessor(TrackerConfig(min_range=1.0, max_range=2.5, range_axis='x'))
    cropped = np.asarray(by_x.crop_range(make_cloud(points)).points)
    np.testing.assert_allclose(cropped, [[2.0, 0.0, 1.0]])


def test_downsample_averages_points_and_colours_per_voxel():
    points = np.array([[0.001, 0.001, 0.001], [0.003, 0.003, 0.003], [1.0, 1.0, 1.0]])
    colors = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 1.0], [0.0, 1.0, 0.0]])

    down = Preprocessor(TrackerConfig(voxel_size=0.01)).downsample(make_cloud(points, colors))

    down_points = np.asarray(down.points)
    down_colors = np.asarray(down.colors)
    assert len(down_points) == 2
    merged = np.argmin(np.linalg.norm(down_points, axis=1))
    np.testing.assert_allclose(down_points[merged], [0.002, 0.002, 0.002], atol=1e-9)
    np.testing.assert_allclose(down_colors[merged], [0.5, 0.0, 0.5], atol=1e-9)


def test_radius_outlier_removal_drops_isolated_points():
    points = np.vstack([dense_block(), [[3.0, 3.0, 3.0]]])
    preprocessor = Preprocessor(TrackerConfig(outlier_radius=0.2, outlier_min_neighbors=10))

    filtered = np.asarray(preprocessor.remove_radius_outliers(make_cloud(points)).points)

    assert len(filtered) == len(points) - 1
    assert not np.any(np.all(filtered == [3.0, 3.0, 3.0], axis=1))


def test_radius_outlier_removal_can_be_disabled():
    points = np.vstack([dense_block(), [[3.0, 3.0, 3.0]]])
    preprocessor = Preprocessor(TrackerConfig(outlier_min_neighbors=0))
    assert point_count(preprocessor.remove_radius_outliers(make_cloud(points))) == len(points)


def test_prepare_scan_rejects_small_input():
    config = TrackerConfig(min_points=100)
    with pytest.raises(InsufficientDataError) as info:
        Preprocessor(config).prepare_scan(make_cloud(dense_block(n=50)))
    assert info.value.stage == 'input'
    assert info.value.count == 50
    assert info.value.required == 100


def test_prepare_scan_rejects_cloud_emptied_by_range_crop():
    config = TrackerConfig(min_range=1.0, max_range=2.5, outlier_min_neighbors=0)
    far_away = dense_block(center=(0.0, 0.0, 4.0))
    with pytest.raises(InsufficientDataError) as info:
        Preprocessor(config).prepare_scan(make_cloud(far_away))
    assert info.value.stage == 'range_filter'


def test_prepare_scan_crops_in_sensor_frame_then_moves_to_robot_frame():
    config = TrackerConfig(min_range=1.0, max_range=2.5, voxel_size=0.005,
                           outlier_min_neighbors=0, min_points=10)
    points = np.vstack([dense_block(center=(0.0, 0.0, 1.5)), dense_block(center=(0.0, 0.0, 3.5))])
    sensor_to_robot = RigidTransform.from_translation([0.0, 0.0, -10.0])

    scan = Preprocessor(config).prepare_scan(make_cloud(points), sensor_to_robot)

    z = np.asarray(scan.points)[:, 2]
    assert np.all((z > -8.6) & (z < -8.4))


def test_prepare_model_skips_range_and_outlier_filters():
    config = TrackerConfig(min_range=1.0, max_range=2.5, voxel_size=0.001)
    points = np.array([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0], [np.nan, 0.0, 0.0]])
    model = Preprocessor(config).prepare_model(make_cloud(points))
    assert point_count(model) == 2


def test_prepare_scan_stops_when_downsampling_leaves_too_few_points():
    config = TrackerConfig(min_range=1.0, max_range=2.5, voxel_size=0.5, outlier_min_neighbors=5)
    preprocessor = Preprocessor(config)

    with mock.patch.object(preprocessor, 'remove_radius_outliers') as remove_outliers:
        with pytest.raises(InsufficientDataError) as info:
            preprocessor.prepare_scan(make_cloud(dense_block()))

    assert info.value.stage == 'downsample'
    assert info.value.count < config.min_points
    remove_outliers.assert_not_called()
