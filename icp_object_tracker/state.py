"""Persistent tracking state carried from one accepted frame to the next."""

from dataclasses import dataclass

from icp_object_tracker.transforms import RigidTransform


# Far enough in the past that the first frame is always a cold start
NEVER = float('-inf')


@dataclass(frozen=True)
class TrackState:
    last_pose: RigidTransform
    last_detection_time: float
    last_yaw: float
    is_cold_start: bool

    @classmethod
    def initial(cls):
        return cls(
            last_pose=RigidTransform.identity(),
            last_detection_time=NEVER,
            last_yaw=0.0,
            is_cold_start=True,
        )

    def seconds_since_detection(self, now):
        return now - self.last_detection_time
