import numpy as np
import pytest

from icp_object_tracker.clouds import make_cloud
from icp_object_tracker.config import TrackerConfig
from icp_object_tracker.model import ReferenceModel
from icp_object_tracker.preprocessing import Preprocessor
from icp_object_tracker.transforms import RigidTransform


def grid(u_range, v_range, spacing):
    u = np.arange(u_range[0], u_range[1] + 1e-9, spacing)
    v = np.arange(v_range[0], v_range[1] + 1e-9, spacing)
    uu, vv = np.meshgrid(u, v)
    return uu.ravel(), vv.ravel()


def object_points(spacing=0.01):
    """
    Open box 0.30 x 0.20 x 0.12 (top face and four walls) with a fin on one
    side, in the object frame: bottom centre at the origin.
    """
    lx, ly, h = 0.15, 0.10, 0.12
    faces = []

    x, y = grid((-lx, lx), (-ly, ly), spacing)
    faces.append(np.column_stack([x, y, np.full_like(x, h)]))

    x, z = grid((-lx, lx), (0.0, h), spacing)
    faces.append(np.column_stack([x, np.full_like(x, -ly), z]))
    faces.append(np.column_stack([x, np.full_like(x, ly), z]))

    y, z = grid((-ly, ly), (0.0, h), spacing)
    faces.append(np.column_stack([np.full_like(y, -lx), y, z]))
    faces.append(np.column_stack([np.full_like(y, lx), y, z]))

    # Fin sticking out of the +x wall, off-centre, breaks the box symmetry
    x, z = grid((lx, lx + 0.08), (0.0, h), spacing)
    faces.append(np.column_stack([x, np.full_like(x, 0.05), z]))

    return np.unique(np.round(np.vstack(faces), 6), axis=0)


def ground_points(extent=0.6, spacing=0.02, z=0.0, noise=0.0, seed=0):
    x, y = grid((-extent, extent), (-extent, extent), spacing)
    z_values = np.full_like(x, z)
    if noise > 0:
        z_values = z_values + np.random.default_rng(seed).uniform(-noise, noise, len(x))
    return np.column_stack([x, y, z_values])


def scene_points(pose, ground_offset=(0.3, 0.0), lift=0.06):
    """Ground plane plus the object placed at ``pose`` lifted above the ground."""
    ground = ground_points()
    ground[:, 0] += ground_offset[0]
    ground[:, 1] += ground_offset[1]
    lifted = RigidTransform.from_translation([0, 0, lift]) @ pose
    return np.vstack([ground, lifted.apply(object_points())])


@pytest.fixture
def tracking_config():
    return TrackerConfig(
        min_range=-5.0,
        max_range=5.0,
        voxel_size=0.01,
        outlier_min_neighbors=0,
        ground_height=0.02,
        max_icp_score=1e-3,
        start_enabled=True,
    )


@pytest.fixture
def reference_model(tracking_config):
    cloud = Preprocessor(tracking_config).prepare_model(make_cloud(object_points()))
    return ReferenceModel(cloud)
