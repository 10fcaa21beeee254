"""Ground plane removal: RANSAC plane consensus followed by a height band filter."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import open3d as o3d

from icp_object_tracker.clouds import point_count, strip_colors
from icp_object_tracker.exceptions import InsufficientDataError


RANSAC_N = 3


@dataclass
class GroundSegmentation:
    ground: o3d.geometry.PointCloud
    objects: o3d.geometry.PointCloud
    plane_model: np.ndarray          # a, b, c, d with ax + by + cz + d = 0
    ground_height_mean: float
    ground_indices: Optional[np.ndarray] = None


class BackgroundRemover:
    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def fit_plane(self, cloud):
        """Return (plane_model, inlier indices) of the dominant plane."""
        count = point_count(cloud)
        required = max(RANSAC_N, self.config.min_ground_inliers)
        if count < required:
            raise InsufficientDataError('ground_removal', count, required)

        plane_model, inliers = cloud.segment_plane(
            distance_threshold=self.config.ground_height,
            ransac_n=RANSAC_N,
            num_iterations=self.config.ransac_iterations)
        inliers = np.asarray(inliers, dtype=np.int64)

        if len(inliers) < required:
            raise InsufficientDataError('ground_removal', len(inliers), required)
        return np.asarray(plane_model, dtype=float), inliers

    def segment(self, cloud):
        plane_model, inliers = self.fit_plane(cloud)
        points = np.asarray(cloud.points)

        is_ground = np.zeros(len(points), dtype=bool)
        is_ground[inliers] = True

        ground_z = points[is_ground, 2]
        ground_count = len(ground_z)
        if ground_count == 0:
            raise InsufficientDataError('ground_removal', 0, RANSAC_N)
        mean_z = float(ground_z.sum()) / ground_count

        # Sparse noise the plane model misses is cut by a band around the ground height
        in_band = np.abs(points[:, 2] - mean_z) < self.config.height_band
        object_indices = np.flatnonzero(~is_ground & in_band)

        ground = cloud.select_by_index(inliers)
        objects = cloud.select_by_index(object_indices)
        if not self.config.use_color:
            ground = strip_colors(ground)
            objects = strip_colors(objects)

        self.logger.debug(
            f"{ground_count} ground points, {len(object_indices)} object points kept "
            f"({len(points) - ground_count - len(object_indices)} outside height band)")

        return GroundSegmentation(
            ground=ground,
            objects=objects,
            plane_model=plane_model,
            ground_height_mean=float(mean_z),
            ground_indices=inliers,
        )

    def remove(self, cloud):
        return self.segment(cloud).objects
