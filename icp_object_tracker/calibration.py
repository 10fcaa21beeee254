"""Lazily resolved, then fixed, sensor-to-robot calibration."""

import logging


class CalibrationCache:
    """
    Memoises the sensor-to-robot transform for a static sensor mount.

    ``resolver(sensor_frame_id)`` returns a RigidTransform, or None while the
    transform is not available yet. A None result is not cached, so the next
    frame retries the lookup. A frame from a different sensor frame drops the
    memo and resolves again.
    """

    def __init__(self, resolver, logger=None):
        self._resolver = resolver
        self._transform = None
        self._frame_id = None
        self.logger = logger or logging.getLogger(__name__)

    def get(self, sensor_frame_id):
        if self._transform is not None:
            if sensor_frame_id == self._frame_id:
                return self._transform
            self.logger.info(
                f"Sensor frame changed from '{self._frame_id}' to '{sensor_frame_id}', "
                f"resolving calibration again")
            self.invalidate()

        transform = self._resolver(sensor_frame_id)
        if transform is None:
            self.logger.warning(
                f"Sensor-to-robot transform for '{sensor_frame_id}' not available yet")
            return None

        self._transform = transform
        self._frame_id = sensor_frame_id
        self.logger.info(f"Resolved sensor-to-robot transform for '{sensor_frame_id}': {transform}")
        return transform

    def invalidate(self):
        self._transform = None
        self._frame_id = None


def static_calibration(transform):
    """Resolver for a calibration known up front."""
    def resolve(sensor_frame_id):
        return transform
    return resolve
