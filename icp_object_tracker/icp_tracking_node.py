#!/usr/bin/env python3

import sys
from dataclasses import fields

import numpy as np
import rclpy
from rclpy.duration import Duration
from rclpy.logging import get_logger
from rclpy.node import Node
from rclpy.qos import QoSProfile, ReliabilityPolicy, HistoryPolicy
from rclpy.time import Time
from sensor_msgs.msg import PointCloud2, PointField
import sensor_msgs_py.point_cloud2 as pc2
from geometry_msgs.msg import Pose, TransformStamped
from std_msgs.msg import Header
from std_srvs.srv import Trigger
from tf2_ros import Buffer, TransformBroadcaster, TransformException, TransformListener

from icp_object_tracker.clouds import cloud_from_arrays, pack_rgb, painted
from icp_object_tracker.config import TrackerConfig
from icp_object_tracker.exceptions import ConfigError, ModelLoadError
from icp_object_tracker.model import load_reference_model
from icp_object_tracker.tracker import ScanFrame, Tracker
from icp_object_tracker.transforms import RigidTransform


FIELDS_XYZRGB = [
    PointField(name='x', offset=0, datatype=PointField.FLOAT32, count=1),
    PointField(name='y', offset=4, datatype=PointField.FLOAT32, count=1),
    PointField(name='z', offset=8, datatype=PointField.FLOAT32, count=1),
    PointField(name='rgb', offset=12, datatype=PointField.UINT32, count=1),
]

LOOKUP_TIMEOUT = Duration(seconds=1.0)


class IcpTrackingNode(Node):
    def __init__(self):
        super().__init__('icp_tracking_node')

        # Declare parameters, one per configuration field
        for field in fields(TrackerConfig):
            self.declare_parameter(field.name, field.default)
        self.config = TrackerConfig.from_dict({
            field.name: self.get_parameter(field.name).value for field in fields(TrackerConfig)
        })

        # Load reference model, without it no frame can be processed
        self.model = load_reference_model(
            self.config.reference_model_path, self.config, self.get_logger())

        # TF
        self.tf_buffer = Buffer()
        self.tf_listener = TransformListener(self.tf_buffer, self, spin_thread=True)
        self.tf_broadcaster = TransformBroadcaster(self)

        self.tracker = Tracker(
            self.config,
            self.model,
            calibration_resolver=self.lookup_robot_to_sensor,
            clock=lambda: self.get_clock().now().nanoseconds * 1e-9,
            logger=self.get_logger(),
        )

        # Publishers
        self.pose_publisher = self.create_publisher(Pose, self.config.target_tf_topic, 1)
        self.dbg_reg_cloud_publisher = self.create_publisher(PointCloud2, '~/dbg_reg_cloud', 1)
        self.dbg_obj_cloud_publisher = self.create_publisher(PointCloud2, '~/dbg_obj_cloud', 1)

        # Services
        self.create_service(Trigger, '~/enable', self.enable_callback)
        self.create_service(Trigger, '~/disable', self.disable_callback)

        # Keep only the newest scan, late frames are dropped
        qos_profile = QoSProfile(
            reliability=ReliabilityPolicy.BEST_EFFORT,
            history=HistoryPolicy.KEEP_LAST,
            depth=1
        )
        self.create_subscription(PointCloud2, 'input_cloud', self.point_cloud_callback, qos_profile)

        self.get_logger().info(
            f"ICP tracking node initialized (enabled: {self.tracker.enabled}), "
            f"tracking {self.config.target_frame_id} in {self.config.robot_frame_id}")

    def enable_callback(self, request, response):
        self.tracker.enable()
        response.success = True
        response.message = 'enabled'
        return response

    def disable_callback(self, request, response):
        self.tracker.disable()
        response.success = True
        response.message = 'disabled'
        return response

    def lookup_transform(self, target_frame, source_frame):
        """Return the target <- source transform, or None if tf cannot provide it."""
        try:
            stamped = self.tf_buffer.lookup_transform(
                target_frame, source_frame, Time(), timeout=LOOKUP_TIMEOUT)
        except TransformException as e:
            self.get_logger().warn(
                f"Cannot find the tf between {target_frame} and {source_frame}. {e}")
            return None

        t = stamped.transform.translation
        q = stamped.transform.rotation
        return RigidTransform.from_quaternion([q.x, q.y, q.z, q.w], [t.x, t.y, t.z])

    def lookup_robot_to_sensor(self, sensor_frame_id):
        return self.lookup_transform(self.config.robot_frame_id, sensor_frame_id)

    def msg_to_cloud(self, msg):
        field_types = {f.name: f.datatype for f in msg.fields}
        use_rgb = self.config.use_color and 'rgb' in field_types
        field_names = ('x', 'y', 'z', 'rgb') if use_rgb else ('x', 'y', 'z')

        rows = [list(p) for p in pc2.read_points(msg, field_names=field_names, skip_nans=False)]
        if not rows:
            return cloud_from_arrays(np.empty((0, 3)))

        xyz = np.array([row[:3] for row in rows], dtype=np.float64)
        rgb = None
        if use_rgb:
            rgb_dtype = np.uint32 if field_types['rgb'] == PointField.UINT32 else np.float32
            rgb = np.array([row[3] for row in rows], dtype=rgb_dtype)
        return cloud_from_arrays(xyz, rgb)

    def point_cloud_callback(self, msg):
        if not self.tracker.enabled:
            self.get_logger().info("Not enabled.", throttle_duration_sec=15.0)
            return

        try:
            cloud = self.msg_to_cloud(msg)
        except (ValueError, AssertionError) as e:
            self.get_logger().error(f"Cannot read input point cloud: {e}")
            return

        stamp = msg.header.stamp.sec + msg.header.stamp.nanosec * 1e-9
        result = self.tracker.process_frame(ScanFrame(cloud, stamp, msg.header.frame_id))

        if result.objects is not None and result.ground is not None:
            self.publish_debug_objects(result, msg.header.stamp)
        if result.scan is not None:
            self.publish_debug_registration(result, msg.header.stamp)

        if result.accepted:
            self.publish(result.estimate, msg.header.stamp)

    def publish(self, estimate, stamp):
        position = estimate.pose.translation
        quat = estimate.pose.as_quaternion()  # x, y, z, w

        transform = TransformStamped()
        transform.header.stamp = stamp
        transform.header.frame_id = estimate.frame_id
        transform.child_frame_id = estimate.child_frame_id
        transform.transform.translation.x = float(position[0])
        transform.transform.translation.y = float(position[1])
        transform.transform.translation.z = float(position[2])
        transform.transform.rotation.x = float(quat[0])
        transform.transform.rotation.y = float(quat[1])
        transform.transform.rotation.z = float(quat[2])
        transform.transform.rotation.w = float(quat[3])
        self.tf_broadcaster.sendTransform(transform)

        self.get_logger().info(f"Object pose: Position[{position[0]:.3f}, {position[1]:.3f}, {position[2]:.3f}] "
                               f"Orientation(quat)[{quat[0]:.3f}, {quat[1]:.3f}, {quat[2]:.3f}, {quat[3]:.3f}]")

        # Pose message in the world frame
        if self.pose_publisher.get_subscription_count() == 0:
            return
        world_to_robot = self.lookup_transform(self.config.world_frame_id, estimate.frame_id)
        if world_to_robot is None:
            return
        world_pose = estimate.in_world(world_to_robot)
        world_position = world_pose.translation
        world_quat = world_pose.as_quaternion()

        pose_msg = Pose()
        pose_msg.position.x = float(world_position[0])
        pose_msg.position.y = float(world_position[1])
        pose_msg.position.z = float(world_position[2])
        pose_msg.orientation.x = float(world_quat[0])
        pose_msg.orientation.y = float(world_quat[1])
        pose_msg.orientation.z = float(world_quat[2])
        pose_msg.orientation.w = float(world_quat[3])
        self.pose_publisher.publish(pose_msg)

    def publish_debug_objects(self, result, stamp):
        if self.dbg_obj_cloud_publisher.get_subscription_count() == 0:
            return
        # Ground keeps its colours, object points in red
        self.publish_cloud(
            self.dbg_obj_cloud_publisher, [result.ground, painted(result.objects, [1, 0, 0])], stamp)

    def publish_debug_registration(self, result, stamp):
        if self.dbg_reg_cloud_publisher.get_subscription_count() == 0:
            return
        clouds = [result.scan]
        if result.aligned_model is not None:
            clouds.append(painted(result.aligned_model, [0, 1, 0]))
        self.publish_cloud(self.dbg_reg_cloud_publisher, clouds, stamp)

    def publish_cloud(self, publisher, clouds, stamp):
        rows = []
        for cloud in clouds:
            points = np.asarray(cloud.points)
            if len(points) == 0:
                continue
            colors = np.asarray(cloud.colors) if cloud.has_colors() else np.ones_like(points)
            rgb = pack_rgb(colors)
            rows.extend([float(p[0]), float(p[1]), float(p[2]), int(c)] for p, c in zip(points, rgb))

        header = Header()
        header.stamp = stamp
        header.frame_id = self.config.robot_frame_id
        publisher.publish(pc2.create_cloud(header, FIELDS_XYZRGB, rows))


def main(args=None):
    rclpy.init(args=args)
    try:
        node = IcpTrackingNode()
    except (ModelLoadError, ConfigError) as e:
        get_logger('icp_tracking_node').fatal(str(e))
        rclpy.shutdown()
        sys.exit(1)

    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        pass
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == '__main__':
    main()
