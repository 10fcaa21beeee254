"""Conditioning of raw scans and of the reference model before alignment."""

import logging

import numpy as np

from icp_object_tracker.clouds import copy_cloud, point_count, transform_cloud
from icp_object_tracker.exceptions import InsufficientDataError


AXIS_INDEX = {'x': 0, 'y': 1, 'z': 2}


class Preprocessor:
    """Denoise, range-limit and downsample point clouds."""

    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def remove_non_finite(self, cloud):
        cleaned = copy_cloud(cloud)
        cleaned.remove_non_finite_points(remove_nan=True, remove_infinite=True)
        return cleaned

    def crop_range(self, cloud):
        """Keep points whose coordinate along the sensor axis lies in [min_range, max_range]."""
        axis = AXIS_INDEX[self.config.range_axis]
        depth = np.asarray(cloud.points)[:, axis]
        keep = np.flatnonzero((depth >= self.config.min_range) & (depth <= self.config.max_range))
        return cloud.select_by_index(keep)

    def downsample(self, cloud):
        """One averaged point (and colour) per occupied voxel."""
        return cloud.voxel_down_sample(voxel_size=self.config.voxel_size)

    def remove_radius_outliers(self, cloud):
        if self.config.outlier_min_neighbors <= 0:
            return copy_cloud(cloud)
        filtered, _ = cloud.remove_radius_outlier(
            nb_points=self.config.outlier_min_neighbors,
            radius=self.config.outlier_radius)
        return filtered

    def require_points(self, cloud, stage):
        count = point_count(cloud)
        if count < self.config.min_points:
            raise InsufficientDataError(stage, count, self.config.min_points)
        return cloud

    def prepare_scan(self, cloud, sensor_to_robot=None):
        """
        Full conditioning of a live scan.

        The range crop runs in the sensor frame; everything after it runs in
        the robot frame so that ground removal sees a vertical z axis.
        Raises InsufficientDataError when a stage leaves fewer than
        ``min_points`` points.
        """
        raw_count = point_count(cloud)
        cloud = self.require_points(self.remove_non_finite(cloud), 'input')
        cloud = self.require_points(self.crop_range(cloud), 'range_filter')
        if sensor_to_robot is not None:
            cloud = transform_cloud(cloud, sensor_to_robot)
        cloud = self.require_points(self.downsample(cloud), 'downsample')
        cloud = self.remove_radius_outliers(cloud)
        self.require_points(cloud, 'filtering')

        self.logger.debug(f"Scan conditioned from {raw_count} to {point_count(cloud)} points")
        return cloud

    def prepare_model(self, cloud):
        cloud = self.remove_non_finite(cloud)
        return self.downsample(cloud)
