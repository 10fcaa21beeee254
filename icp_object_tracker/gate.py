"""Acceptance gate deciding whether an alignment result updates the track."""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from icp_object_tracker.state import TrackState
from icp_object_tracker.transforms import RigidTransform, TWO_PI, normalize_angle


def wrapped_yaw_difference(a, b):
    """Smallest angle between two yaws, in [0, pi]; (350°, 10°) -> 20°."""
    diff = abs(normalize_angle(a) - normalize_angle(b))
    return min(diff, TWO_PI - diff)


@dataclass(frozen=True)
class GateDecision:
    accepted: bool
    state: TrackState
    pose: Optional[RigidTransform] = None
    reason: str = ''


class AcceptanceGate:
    """
    Accepts an alignment only if it converged, stays within ``max_icp_dist`` of
    the initial pose, scores below ``max_icp_score`` and, while tracking warm,
    does not jump more than ``max_yaw_jump_deg`` in yaw.

    The returned decision carries the state to keep: a new TrackState on
    acceptance, the very same object on rejection.
    """

    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def evaluate(self, result, state, initial, now):
        new_pose = result.transform @ initial.pose
        dist = new_pose.distance_to(initial.pose)

        if result.converged:
            self.logger.info(f"ICP converged. Score: {result.fitness_score:.6g}. Dist: {dist:.3f}")

        if not result.converged:
            return self._reject(state, f"ICP did not converge after {result.iterations} iterations")
        if not dist < self.config.max_icp_dist:
            return self._reject(
                state, f"pose moved {dist:.3f} m, limit {self.config.max_icp_dist:.3f} m")
        if not result.fitness_score < self.config.max_icp_score:
            return self._reject(
                state, f"fitness score {result.fitness_score:.6g} above limit {self.config.max_icp_score:.6g}")

        yaw = normalize_angle(new_pose.yaw())
        if not initial.is_cold_start:
            diff = wrapped_yaw_difference(yaw, state.last_yaw)
            self.logger.info(f"Angle diff: {math.degrees(diff):.2f}dg.")
            if diff > self.config.max_yaw_jump:
                return self._reject(
                    state, f"yaw jumped {math.degrees(diff):.1f} deg, "
                           f"limit {self.config.max_yaw_jump_deg:.1f} deg")

        new_state = TrackState(
            last_pose=new_pose,
            last_detection_time=now,
            last_yaw=yaw,
            is_cold_start=initial.is_cold_start,
        )
        self.logger.info(f"Target found with score of {result.fitness_score:.6g}")
        return GateDecision(True, new_state, new_pose)

    def _reject(self, state, reason):
        return GateDecision(False, state, None, reason)
