"""Starting pose of the reference model for each frame."""

import logging
from dataclasses import dataclass

from icp_object_tracker.clouds import centroid
from icp_object_tracker.transforms import RigidTransform


@dataclass(frozen=True)
class InitialGuess:
    pose: RigidTransform
    is_cold_start: bool


class PoseInitializer:
    """
    Cold start: put the model centroid on the scan centroid, identity rotation.
    Warm tracking: reuse the last accepted pose.

    ICP only converges from near the true alignment, so after losing the
    target for ``reset_timeout`` seconds the search restarts around the scan.
    """

    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def initial_pose(self, scan, model, state, now):
        elapsed = state.seconds_since_detection(now)
        if elapsed > self.config.reset_timeout:
            translation = centroid(scan) - model.centroid
            self.logger.info(
                f"No detection for {elapsed:.1f}s (timeout {self.config.reset_timeout:.1f}s), "
                f"re-centering model on scan")
            return InitialGuess(RigidTransform.from_translation(translation), True)
        return InitialGuess(state.last_pose, False)
