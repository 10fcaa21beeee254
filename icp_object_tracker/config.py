"""
Tracker configuration.

A single immutable record built once at startup and handed to every stage.
Values can come from a flat YAML mapping, a ROS2 parameter file or the node's
declared parameters.
"""

import math
from dataclasses import dataclass, fields, asdict

import yaml

from icp_object_tracker.exceptions import ConfigError


@dataclass(frozen=True)
class TrackerConfig:
    # Preprocessing
    min_range: float = 1.0
    max_range: float = 2.5
    range_axis: str = 'z'
    voxel_size: float = 0.02
    min_points: int = 100
    outlier_radius: float = 0.2
    outlier_min_neighbors: int = 100

    # Reference model
    reference_model_path: str = 'target.pcd'
    model_scale: float = 1.0

    # Frames and topics
    robot_frame_id: str = 'robot'
    world_frame_id: str = 'world'
    target_frame_id: str = 'target'
    target_tf_topic: str = 'target'

    # Ground removal
    remove_ground: bool = True
    ground_height: float = 0.09
    height_band: float = 0.35
    ransac_iterations: int = 1000
    min_ground_inliers: int = 50
    use_color: bool = True

    # ICP
    max_correspondence_distance: float = 0.07
    max_iterations: int = 100
    transformation_epsilon: float = 1e-5
    fitness_epsilon: float = 1e-3
    nn_workers: int = 1

    # Acceptance gate
    max_icp_dist: float = 2.0
    max_icp_score: float = 1e-4
    max_yaw_jump_deg: float = 20.0
    reset_timeout: float = 6.0

    # Output and control
    publish_yaw_only: bool = True
    start_enabled: bool = False

    def __post_init__(self):
        self.validate()

    @property
    def max_yaw_jump(self):
        """Maximum accepted yaw change between frames, in radians."""
        return math.radians(self.max_yaw_jump_deg)

    def validate(self):
        positive = ('voxel_size', 'ground_height', 'height_band',
                    'max_correspondence_distance', 'max_icp_dist',
                    'max_icp_score', 'reset_timeout', 'model_scale',
                    'transformation_epsilon', 'fitness_epsilon')
        for name in positive:
            value = getattr(self, name)
            if not value > 0:
                raise ConfigError(f"{name} must be positive, got {value}")
        if self.min_range >= self.max_range:
            raise ConfigError(
                f"min_range ({self.min_range}) must be below max_range ({self.max_range})")
        if self.range_axis not in ('x', 'y', 'z'):
            raise ConfigError(f"range_axis must be one of x, y, z, got {self.range_axis!r}")
        if self.min_points < 1:
            raise ConfigError(f"min_points must be at least 1, got {self.min_points}")
        if self.max_iterations < 1:
            raise ConfigError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if self.ransac_iterations < 1:
            raise ConfigError(f"ransac_iterations must be at least 1, got {self.ransac_iterations}")
        if not 0 < self.max_yaw_jump_deg <= 180:
            raise ConfigError(
                f"max_yaw_jump_deg must be in (0, 180], got {self.max_yaw_jump_deg}")

    @classmethod
    def from_dict(cls, values):
        """Build a config from a mapping, coercing each value to the field type."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        kwargs = {}
        for name, value in values.items():
            kwargs[name] = _coerce(name, value, type(getattr(cls, name)))
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path):
        """Load a flat YAML mapping or a ROS2 parameter file."""
        try:
            with open(path, 'r') as file:
                data = yaml.safe_load(file) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

        # ROS2 parameter files nest values under <node_name>: ros__parameters:
        if len(data) == 1:
            section = next(iter(data.values()))
            if isinstance(section, dict) and 'ros__parameters' in section:
                data = section['ros__parameters'] or {}
        return cls.from_dict(data)

    def as_dict(self):
        return asdict(self)


def _coerce(name, value, field_type):
    if field_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ('true', 'false'):
            return value.lower() == 'true'
        raise ConfigError(f"{name} must be a boolean, got {value!r}")
    try:
        if field_type is int and isinstance(value, float) and not value.is_integer():
            raise ValueError("not an integer")
        return field_type(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(
            f"{name} must be {field_type.__name__}, got {value!r}") from e
