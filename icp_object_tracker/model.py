"""Reference model of the tracked object."""

import logging
import os

import numpy as np
import open3d as o3d

from icp_object_tracker.clouds import make_cloud, point_count
from icp_object_tracker.exceptions import ModelLoadError
from icp_object_tracker.preprocessing import Preprocessor


class ReferenceModel:
    """Conditioned model geometry in the object's own frame. Read-only."""

    def __init__(self, cloud, path=None):
        points = np.asarray(cloud.points).copy()
        if len(points) == 0:
            raise ModelLoadError(path or '<memory>', 'model contains no points')
        points.setflags(write=False)
        self._points = points
        self._centroid = points.mean(axis=0)
        self._centroid.setflags(write=False)
        self.path = path

    @property
    def points(self):
        return self._points

    @property
    def centroid(self):
        return self._centroid

    def __len__(self):
        return len(self._points)

    def as_cloud(self):
        return make_cloud(self._points)


def load_reference_model(path, config, logger=None):
    """
    Read, scale and condition the reference model.

    Raises ModelLoadError when the file is missing, unreadable or empty.
    """
    logger = logger or logging.getLogger(__name__)

    if not os.path.isfile(path):
        raise ModelLoadError(path, 'file not found')

    try:
        original = o3d.io.read_point_cloud(path)
    except (RuntimeError, OSError) as e:
        raise ModelLoadError(path, str(e)) from e

    if not original.has_points():
        raise ModelLoadError(path, 'file loaded but contains no points')
    logger.info(f"Loaded model with {point_count(original)} points from {path}")

    if config.model_scale != 1.0:
        original.scale(config.model_scale, center=np.zeros(3))

    conditioned = Preprocessor(config, logger).prepare_model(original)
    if point_count(conditioned) == 0:
        raise ModelLoadError(path, 'no finite points left after filtering')

    logger.info(f"Reference model conditioned to {point_count(conditioned)} points")
    return ReferenceModel(conditioned, path)
