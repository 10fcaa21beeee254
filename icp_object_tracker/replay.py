#!/usr/bin/env python3
"""
Run the tracker offline over a directory of recorded point clouds.

    icp_track_replay --config config/icp_tracking.yaml --model target.pcd recordings/
"""

import argparse
import glob
import logging
import os
import sys

import numpy as np
import open3d as o3d
import yaml

from icp_object_tracker.calibration import static_calibration
from icp_object_tracker.clouds import painted
from icp_object_tracker.config import TrackerConfig
from icp_object_tracker.exceptions import ConfigError, ModelLoadError
from icp_object_tracker.model import load_reference_model
from icp_object_tracker.tracker import ScanFrame, Tracker
from icp_object_tracker.transforms import RigidTransform


CLOUD_EXTENSIONS = ('.pcd', '.ply', '.xyz', '.xyzrgb', '.pts')


def load_calibration(path):
    """Read a 4x4 sensor-to-robot matrix stored under ``sensor_to_robot`` in a YAML file."""
    with open(path, 'r') as file:
        matrix = np.array(yaml.safe_load(file)['sensor_to_robot'], dtype=float)
    return RigidTransform.from_matrix(matrix)


def list_frames(directory):
    paths = []
    for extension in CLOUD_EXTENSIONS:
        paths.extend(glob.glob(os.path.join(directory, f'*{extension}')))
    return sorted(paths)


def visualize_alignment(result, title="ICP Alignment Result"):
    geometries = [o3d.geometry.TriangleMesh.create_coordinate_frame(size=0.1)]
    if result.objects is not None:
        geometries.append(painted(result.objects, [1, 0, 0]))  # Red
    if result.aligned_model is not None:
        geometries.append(painted(result.aligned_model, [0, 1, 0]))  # Green
    o3d.visualization.draw_geometries(geometries, window_name=title)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Replay recorded point clouds through the ICP tracker")
    parser.add_argument('frames', help="Directory with one point cloud file per frame")
    parser.add_argument('--config', help="Flat YAML or ROS2 parameter file")
    parser.add_argument('--model', help="Reference model, overrides reference_model_path")
    parser.add_argument('--calibration', help="YAML file with a 4x4 'sensor_to_robot' matrix")
    parser.add_argument('--frame-id', default='sensor', help="Frame id given to every scan")
    parser.add_argument('--period', type=float, default=0.1, help="Seconds between frames")
    parser.add_argument('--visualize', action='store_true', help="Show the last accepted alignment")
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='[%(levelname)s] [%(name)s]: %(message)s')
    logger = logging.getLogger('icp_track_replay')

    try:
        values = TrackerConfig.from_yaml(args.config).as_dict() if args.config else {}
        values['start_enabled'] = True
        if args.model:
            values['reference_model_path'] = args.model
        config = TrackerConfig.from_dict(values)
        model = load_reference_model(config.reference_model_path, config, logger)
    except (ConfigError, ModelLoadError) as e:
        logger.error(str(e))
        return 1

    calibration = load_calibration(args.calibration) if args.calibration else RigidTransform.identity()
    tracker = Tracker(config, model, static_calibration(calibration), logger=logger)

    paths = list_frames(args.frames)
    if not paths:
        logger.error(f"No point cloud files found in {args.frames}")
        return 1

    last_accepted = None
    accepted = 0
    for index, path in enumerate(paths):
        stamp = index * args.period
        cloud = o3d.io.read_point_cloud(path)
        result = tracker.process_frame(ScanFrame(cloud, stamp, args.frame_id), now=stamp)

        line = f"{os.path.basename(path)}: {result.status.value}"
        if result.accepted:
            accepted += 1
            last_accepted = result
            pose = result.estimate.pose
            t = pose.translation
            line += (f" t=[{t[0]:.3f}, {t[1]:.3f}, {t[2]:.3f}] yaw={np.degrees(pose.yaw()):.1f}"
                     f" score={result.estimate.fitness_score:.6g}")
        elif result.message:
            line += f" ({result.message})"
        print(line)

    print(f"{accepted}/{len(paths)} frames accepted")

    if args.visualize and last_accepted is not None:
        visualize_alignment(last_accepted)
    return 0


if __name__ == '__main__':
    sys.exit(main())
