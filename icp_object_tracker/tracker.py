"""
Frame-by-frame object tracker.

Owns the single TrackState of one tracked object and runs every scan through
preprocessing, ground removal, initialisation, ICP and the acceptance gate.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np
import open3d as o3d

from icp_object_tracker.aligner import IcpAligner, AlignmentResult
from icp_object_tracker.calibration import CalibrationCache, static_calibration
from icp_object_tracker.clouds import point_count, transform_cloud
from icp_object_tracker.exceptions import InsufficientDataError
from icp_object_tracker.gate import AcceptanceGate
from icp_object_tracker.ground_removal import BackgroundRemover
from icp_object_tracker.initializer import PoseInitializer
from icp_object_tracker.preprocessing import Preprocessor
from icp_object_tracker.state import TrackState
from icp_object_tracker.transforms import RigidTransform


class FrameStatus(enum.Enum):
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    INSUFFICIENT_DATA = 'insufficient_data'
    CALIBRATION_UNAVAILABLE = 'calibration_unavailable'
    DISABLED = 'disabled'
    BUSY = 'busy'


@dataclass
class ScanFrame:
    cloud: o3d.geometry.PointCloud
    stamp: float
    frame_id: str


@dataclass(frozen=True)
class PoseEstimate:
    pose: RigidTransform
    stamp: float
    frame_id: str
    child_frame_id: str
    fitness_score: float

    def in_world(self, world_to_robot):
        """Same estimate expressed in the world frame."""
        return world_to_robot @ self.pose


@dataclass
class FrameResult:
    status: FrameStatus
    estimate: Optional[PoseEstimate] = None
    alignment: Optional[AlignmentResult] = None
    message: str = ''
    # Debug clouds in the robot frame, filled as far as the pipeline got
    scan: Optional[o3d.geometry.PointCloud] = None
    ground: Optional[o3d.geometry.PointCloud] = None
    objects: Optional[o3d.geometry.PointCloud] = None
    aligned_model: Optional[o3d.geometry.PointCloud] = None

    @property
    def accepted(self):
        return self.status is FrameStatus.ACCEPTED


class Tracker:
    """
    Usage:
        tracker = Tracker(config, model, calibration_resolver)
        tracker.enable()
        result = tracker.process_frame(ScanFrame(cloud, stamp, 'camera_link'))
        if result.accepted:
            publish(result.estimate)
    """

    def __init__(self, config, model, calibration_resolver=None, clock=time.monotonic, logger=None):
        self.config = config
        self.model = model
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

        if calibration_resolver is None:
            calibration_resolver = static_calibration(RigidTransform.identity())
        self.calibration = CalibrationCache(calibration_resolver, self.logger)

        self.preprocessor = Preprocessor(config, self.logger)
        self.background_remover = BackgroundRemover(config, self.logger)
        self.initializer = PoseInitializer(config, self.logger)
        self.aligner = IcpAligner(config, self.logger)
        self.gate = AcceptanceGate(config, self.logger)

        self._state = TrackState.initial()
        self._enabled = config.start_enabled
        self._lock = threading.Lock()

    @property
    def state(self):
        return self._state

    @property
    def enabled(self):
        return self._enabled

    def enable(self):
        if not self._enabled:
            self.logger.info("Enabled!")
        self._enabled = True

    def disable(self):
        if self._enabled:
            self.logger.info("Disabled!")
        self._enabled = False

    def reset(self):
        with self._lock:
            self._state = TrackState.initial()

    def process_frame(self, frame, now=None):
        if not self._enabled:
            self.logger.debug("Not enabled, dropping frame")
            return FrameResult(FrameStatus.DISABLED, message='tracker disabled')

        if not self._lock.acquire(blocking=False):
            self.logger.warning("Previous frame still processing, dropping frame")
            return FrameResult(FrameStatus.BUSY, message='previous frame still processing')

        try:
            return self._process(frame, self.clock() if now is None else now)
        finally:
            self._lock.release()

    def _process(self, frame, now):
        sensor_to_robot = self.calibration.get(frame.frame_id)
        if sensor_to_robot is None:
            return FrameResult(
                FrameStatus.CALIBRATION_UNAVAILABLE,
                message=f"no transform between {self.config.robot_frame_id} and {frame.frame_id}")

        result = FrameResult(FrameStatus.INSUFFICIENT_DATA)
        try:
            scan = self.preprocessor.prepare_scan(frame.cloud, sensor_to_robot)
            result.scan = scan

            if self.config.remove_ground:
                segmentation = self.background_remover.segment(scan)
                result.ground = segmentation.ground
                scan = segmentation.objects
                self.logger.debug(
                    f"Ground plane {np.round(segmentation.plane_model, 4).tolist()} "
                    f"at mean height {segmentation.ground_height_mean:.3f} m, "
                    f"{point_count(scan)} object points above it")
                self.preprocessor.require_points(scan, 'ground_removal')
            result.objects = scan
        except InsufficientDataError as e:
            self.logger.warning(f"Not enough points after {e.stage}: {e.count} < {e.required}")
            result.message = str(e)
            return result

        initial = self.initializer.initial_pose(scan, self.model, self._state, now)
        alignment = self.aligner.align(initial.pose.apply(self.model.points), scan.points)
        result.alignment = alignment

        decision = self.gate.evaluate(alignment, self._state, initial, now)
        if not decision.accepted:
            self.logger.warning(
                f"Target not found in the input pointcloud ({decision.reason}). Trying again...")
            result.status = FrameStatus.REJECTED
            result.message = decision.reason
            return result

        self._state = decision.state

        published = decision.pose.yaw_only() if self.config.publish_yaw_only else decision.pose
        result.status = FrameStatus.ACCEPTED
        result.estimate = PoseEstimate(
            pose=published,
            stamp=frame.stamp,
            frame_id=self.config.robot_frame_id,
            child_frame_id=self.config.target_frame_id,
            fitness_score=alignment.fitness_score,
        )
        result.aligned_model = transform_cloud(self.model.as_cloud(), decision.pose)
        self.logger.debug(
            f"Accepted pose {decision.pose} from {point_count(scan)} object points")
        return result
