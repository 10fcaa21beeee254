import numpy as np
import pytest

from icp_object_tracker.aligner import IcpAligner, estimate_rigid_transform
from icp_object_tracker.clouds import make_cloud
from icp_object_tracker.config import TrackerConfig
from icp_object_tracker.transforms import RigidTransform

from conftest import object_points


def test_estimate_rigid_transform_is_exact_for_paired_points():
    rng = np.random.default_rng(11)
    source = rng.uniform(-1, 1, size=(50, 3))
    expected = RigidTransform.from_quaternion([0.3, -0.1, 0.2, 0.9], [0.5, 0.2, -0.3])

    estimated = estimate_rigid_transform(source, expected.apply(source))

    np.testing.assert_allclose(estimated.as_matrix(), expected.as_matrix(), atol=1e-9)
    assert np.linalg.det(estimated.rotation) == pytest.approx(1.0)


def test_estimate_rigid_transform_never_returns_a_reflection():
    source = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
    mirrored = source * np.array([1.0, 1.0, -1.0])

    estimated = estimate_rigid_transform(source, mirrored)
    assert np.linalg.det(estimated.rotation) == pytest.approx(1.0)


def test_icp_recovers_known_transform():
    model = object_points()
    expected = RigidTransform.from_yaw(np.radians(5.0), [0.02, -0.015, 0.01])
    noise = np.random.default_rng(5).uniform(-0.001, 0.001, size=model.shape)
    scan = expected.apply(model) + noise

    result = IcpAligner(TrackerConfig()).align(model, scan)

    assert result.converged
    assert result.iterations < TrackerConfig().max_iterations
    assert result.fitness_score < 1e-5
    assert result.overlap > 0.99
    assert result.transform.distance_to(expected) < 0.005
    assert abs(np.degrees(result.transform.yaw() - expected.yaw())) < 1.0
    assert (result.transform.inverse() @ expected).rotation_angle() < np.radians(1.0)


def test_icp_ignores_colours():
    model = object_points()
    expected = RigidTransform.from_yaw(np.radians(4.0), [0.012, -0.006, 0.004])
    source = make_cloud(model, np.zeros_like(model))
    target = make_cloud(expected.apply(model), np.ones_like(model))

    result = IcpAligner(TrackerConfig()).align_clouds(source, target)

    assert result.converged
    assert result.transform.distance_to(expected) < 0.005


def test_align_clouds_applies_initial_pose_first():
    model = object_points()
    initial = RigidTransform.from_translation([1.0, 0.0, 0.0])
    moved = RigidTransform.from_yaw(np.radians(3.0), [1.012, -0.006, 0.003])
    target = make_cloud(moved.apply(model))

    result = IcpAligner(TrackerConfig()).align_clouds(make_cloud(model), target, initial)

    assert (result.transform @ initial).distance_to(moved) < 0.005
    assert abs(np.degrees((result.transform @ initial).yaw()) - 3.0) < 0.5


def test_no_correspondences_within_distance_does_not_converge():
    model = object_points()
    far = RigidTransform.from_translation([5.0, 0.0, 0.0]).apply(model)

    result = IcpAligner(TrackerConfig()).align(model, far)

    assert not result.converged
    assert result.fitness_score == float('inf')
    assert result.correspondences == 0
    assert result.transform == RigidTransform.identity()


def test_iteration_cap_is_not_convergence():
    model = object_points()
    scan = RigidTransform.from_yaw(np.radians(5.0), [0.03, 0.0, 0.0]).apply(model)

    result = IcpAligner(TrackerConfig(max_iterations=1)).align(model, scan)

    assert result.iterations == 1
    assert not result.converged


def test_too_few_points_does_not_converge():
    result = IcpAligner(TrackerConfig()).align(np.zeros((2, 3)), np.zeros((10, 3)))
    assert not result.converged


def test_fitness_change_is_compared_in_absolute_terms():
    aligner = IcpAligner(TrackerConfig())

    assert aligner._mse_is_stable(1.0e-5, 1.2e-5)
    assert aligner._mse_is_stable(0.0, 0.0)
    assert not aligner._mse_is_stable(float('inf'), 1.0e-5)
    assert not aligner._mse_is_stable(3.0e-3, 1.0e-3)
