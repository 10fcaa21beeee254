"""
Point-to-point ICP.

Each iteration matches every source point to its nearest target point within
``max_correspondence_distance``, solves the least-squares rigid motion of the
matched pairs with an SVD, and moves the source. Colours are never used.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.spatial import cKDTree

from icp_object_tracker.clouds import points_of
from icp_object_tracker.transforms import RigidTransform


MIN_CORRESPONDENCES = 3


@dataclass(frozen=True)
class AlignmentResult:
    transform: RigidTransform
    converged: bool
    fitness_score: float
    iterations: int = 0
    correspondences: int = 0
    overlap: float = 0.0


def estimate_rigid_transform(source, target):
    """
    Least-squares rotation and translation mapping ``source`` onto ``target``
    (Kabsch). Both are (N, 3) arrays of paired points.
    """
    source_mean = source.mean(axis=0)
    target_mean = target.mean(axis=0)
    covariance = (source - source_mean).T @ (target - target_mean)
    u, _, vt = np.linalg.svd(covariance)

    # Flip the last axis when the best orthogonal fit is a reflection
    d = np.sign(np.linalg.det(vt.T @ u.T))
    if d == 0:
        d = 1.0
    correction = np.diag([1.0, 1.0, d])
    rotation = vt.T @ correction @ u.T
    translation = target_mean - rotation @ source_mean
    return RigidTransform(rotation, translation)


class IcpAligner:
    def __init__(self, config, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def _match(self, tree, source):
        distances, indices = tree.query(
            source,
            k=1,
            distance_upper_bound=self.config.max_correspondence_distance,
            workers=self.config.nn_workers)
        valid = np.isfinite(distances)
        return valid, indices, distances

    def _increment_is_small(self, increment):
        translation_sq = float(np.dot(increment.translation, increment.translation))
        one_minus_cos = 1.0 - np.cos(increment.rotation_angle())
        eps = self.config.transformation_epsilon
        return translation_sq <= eps and one_minus_cos <= eps

    def _mse_is_stable(self, previous_mse, mse):
        return abs(previous_mse - mse) <= self.config.fitness_epsilon

    def align(self, source_points, target_points):
        """Estimate the transform that moves ``source_points`` onto ``target_points``."""
        source = np.asarray(source_points, dtype=float).reshape(-1, 3)
        target = np.asarray(target_points, dtype=float).reshape(-1, 3)

        self.logger.info(
            f"Aligning model with {len(source)} points to scene with {len(target)} points")

        if len(source) < MIN_CORRESPONDENCES or len(target) < MIN_CORRESPONDENCES:
            return AlignmentResult(RigidTransform.identity(), False, float('inf'))

        tree = cKDTree(target)
        total = RigidTransform.identity()
        current = source.copy()
        previous_mse = float('inf')
        converged = False
        iterations = 0

        while iterations < self.config.max_iterations:
            valid, indices, distances = self._match(tree, current)
            matched = int(valid.sum())
            if matched < MIN_CORRESPONDENCES:
                self.logger.warning(
                    f"ICP stopped at iteration {iterations}: only {matched} correspondences "
                    f"within {self.config.max_correspondence_distance} m")
                break

            increment = estimate_rigid_transform(current[valid], target[indices[valid]])
            current = increment.apply(current)
            total = increment @ total
            iterations += 1

            mse = float(np.mean(distances[valid] ** 2))
            if self._increment_is_small(increment) and self._mse_is_stable(previous_mse, mse):
                converged = True
                break
            previous_mse = mse

        valid, _, distances = self._match(tree, current)
        matched = int(valid.sum())
        fitness = float(np.mean(distances[valid] ** 2)) if matched else float('inf')

        result = AlignmentResult(
            transform=total,
            converged=converged,
            fitness_score=fitness,
            iterations=iterations,
            correspondences=matched,
            overlap=matched / len(source),
        )
        self.logger.debug(
            f"ICP {'converged' if converged else 'did not converge'} after {iterations} "
            f"iterations, fitness {fitness:.6g}, overlap {result.overlap:.2f}")
        return result

    def align_clouds(self, source_cloud, target_cloud, initial=None):
        """Align open3d clouds; the returned transform applies on top of ``initial``."""
        source = points_of(source_cloud)
        if initial is not None:
            source = initial.apply(source)
        return self.align(source, points_of(target_cloud))
