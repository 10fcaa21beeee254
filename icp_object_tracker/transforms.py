"""Rigid transforms used for poses, calibrations and ICP increments."""

import numpy as np
from scipy.spatial.transform import Rotation


TWO_PI = 2.0 * np.pi


class RigidTransform:
    """
    Rotation + translation, immutable.

    ``a @ b`` (or ``a.compose(b)``) applies ``b`` first and then ``a``.
    """

    __slots__ = ('_rotation', '_translation')

    def __init__(self, rotation=None, translation=None):
        rotation = np.eye(3) if rotation is None else np.array(rotation, dtype=float)
        translation = np.zeros(3) if translation is None else np.array(translation, dtype=float)
        if rotation.shape != (3, 3):
            raise ValueError(f"rotation must be 3x3, got shape {rotation.shape}")
        if translation.shape != (3,):
            raise ValueError(f"translation must have 3 elements, got shape {translation.shape}")
        rotation.setflags(write=False)
        translation.setflags(write=False)
        self._rotation = rotation
        self._translation = translation

    @classmethod
    def identity(cls):
        return cls()

    @classmethod
    def from_translation(cls, translation):
        return cls(np.eye(3), translation)

    @classmethod
    def from_matrix(cls, matrix):
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape != (4, 4):
            raise ValueError(f"expected a 4x4 matrix, got shape {matrix.shape}")
        return cls(matrix[:3, :3], matrix[:3, 3])

    @classmethod
    def from_quaternion(cls, quaternion, translation=None):
        """Quaternion in scipy/ROS order (x, y, z, w)."""
        return cls(Rotation.from_quat(quaternion).as_matrix(), translation)

    @classmethod
    def from_yaw(cls, yaw, translation=None):
        return cls(Rotation.from_euler('z', yaw).as_matrix(), translation)

    @property
    def rotation(self):
        return self._rotation

    @property
    def translation(self):
        return self._translation

    def as_matrix(self):
        matrix = np.eye(4)
        matrix[:3, :3] = self._rotation
        matrix[:3, 3] = self._translation
        return matrix

    def as_quaternion(self):
        """Return the rotation as (x, y, z, w)."""
        return Rotation.from_matrix(self._rotation).as_quat()

    def compose(self, other):
        """Return ``self ∘ other``."""
        return RigidTransform(
            self._rotation @ other.rotation,
            self._rotation @ other.translation + self._translation)

    def __matmul__(self, other):
        if not isinstance(other, RigidTransform):
            return NotImplemented
        return self.compose(other)

    def inverse(self):
        rotation_t = self._rotation.T
        return RigidTransform(rotation_t, -rotation_t @ self._translation)

    def apply(self, points):
        """Transform an (N, 3) array of points."""
        points = np.asarray(points, dtype=float)
        return points @ self._rotation.T + self._translation

    def rpy(self):
        """Roll, pitch, yaw with the fixed-axis XYZ convention used by tf."""
        return Rotation.from_matrix(self._rotation).as_euler('xyz')

    def yaw(self):
        return float(self.rpy()[2])

    def yaw_only(self):
        """Same translation, rotation reduced to its yaw component."""
        return RigidTransform.from_yaw(self.yaw(), self._translation)

    def distance_to(self, other):
        """Euclidean distance between the two translations."""
        return float(np.linalg.norm(self._translation - other.translation))

    def rotation_angle(self):
        """Angle of the rotation part, in radians."""
        cos_angle = np.clip(0.5 * (np.trace(self._rotation) - 1.0), -1.0, 1.0)
        return float(np.arccos(cos_angle))

    def __eq__(self, other):
        if not isinstance(other, RigidTransform):
            return NotImplemented
        return (np.array_equal(self._rotation, other.rotation)
                and np.array_equal(self._translation, other.translation))

    def __hash__(self):
        return hash((self._rotation.tobytes(), self._translation.tobytes()))

    def __repr__(self):
        t = self._translation
        return (f"RigidTransform(t=[{t[0]:.4f}, {t[1]:.4f}, {t[2]:.4f}], "
                f"yaw={np.degrees(self.yaw()):.2f}deg)")


def normalize_angle(angle):
    """Wrap an angle into [0, 2*pi)."""
    wrapped = float(np.mod(angle, TWO_PI))
    # np.mod can return exactly 2*pi for tiny negative inputs
    if wrapped >= TWO_PI:
        wrapped -= TWO_PI
    return wrapped
