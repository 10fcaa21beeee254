"""Helpers for building and copying open3d point clouds."""

import numpy as np
import open3d as o3d


def make_cloud(points, colors=None):
    """Create an open3d cloud from an (N, 3) array and optional (N, 3) colours in [0, 1]."""
    cloud = o3d.geometry.PointCloud()
    cloud.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64).reshape(-1, 3))
    if colors is not None:
        colors = np.asarray(colors, dtype=np.float64).reshape(-1, 3)
        if len(colors) != len(cloud.points):
            raise ValueError(
                f"Got {len(colors)} colours for {len(cloud.points)} points")
        cloud.colors = o3d.utility.Vector3dVector(colors)
    return cloud


def copy_cloud(cloud):
    return o3d.geometry.PointCloud(cloud)


def point_count(cloud):
    return len(cloud.points)


def points_of(cloud):
    """Copy of the cloud's coordinates as an (N, 3) float array."""
    return np.asarray(cloud.points).copy()


def transform_cloud(cloud, transform):
    """Return a transformed copy of ``cloud``; the input is left untouched."""
    moved = copy_cloud(cloud)
    moved.transform(transform.as_matrix())
    return moved


def strip_colors(cloud):
    stripped = o3d.geometry.PointCloud()
    stripped.points = o3d.utility.Vector3dVector(np.asarray(cloud.points).copy())
    return stripped


def painted(cloud, color):
    """Copy of ``cloud`` with every point set to ``color``."""
    result = copy_cloud(cloud)
    result.paint_uniform_color(color)
    return result


def centroid(cloud):
    points = np.asarray(cloud.points)
    if len(points) == 0:
        raise ValueError("Cannot compute the centroid of an empty cloud")
    return points.mean(axis=0)


def unpack_rgb(packed):
    """
    Decode PCL/ROS packed colours into an (N, 3) array in [0, 1].

    ``packed`` may hold float32 values (the usual PointCloud2 ``rgb`` field)
    or uint32 values; both carry 0x00RRGGBB in their bits.
    """
    packed = np.ascontiguousarray(packed)
    if packed.dtype != np.uint32:
        packed = packed.astype(np.float32).view(np.uint32)
    r = (packed >> 16) & 0xFF
    g = (packed >> 8) & 0xFF
    b = packed & 0xFF
    return np.stack([r, g, b], axis=-1).astype(np.float64) / 255.0


def pack_rgb(colors):
    """Encode (N, 3) colours in [0, 1] as packed uint32 0x00RRGGBB values."""
    rgb = np.clip(np.round(np.asarray(colors) * 255.0), 0, 255).astype(np.uint32)
    return (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]


def cloud_from_arrays(xyz, rgb=None):
    """Build a cloud from raw sensor columns, keeping non-finite points for the preprocessor."""
    colors = unpack_rgb(rgb) if rgb is not None else None
    return make_cloud(xyz, colors)
