"""Camera pose from 3D-2D correspondences by Gauss-Newton bundle adjustment."""

from __future__ import annotations

import logging

import numpy as np

from .se3 import SE3

_log = logging.getLogger(__name__)

# Intrinsics of the TUM Freiburg2 camera.
TUM_K = np.array([[520.9, 0.0, 325.1], [0.0, 521.0, 249.7], [0.0, 0.0, 1.0]])

GAUSS_NEWTON_ITERATIONS = 10
CONVERGENCE_NORM = 1e-6


def pixel_to_cam(p, K) -> np.ndarray:
    """Normalised camera coordinates of a pixel."""
    k = np.asarray(K, dtype=float)
    u, v = np.asarray(p, dtype=float).ravel()[:2]
    return np.array([(u - k[0, 2]) / k[0, 0], (v - k[1, 2]) / k[1, 1]])


def backproject(pixel, depth: float, K) -> np.ndarray:
    """3D point in the camera frame seen at a pixel with the given depth."""
    x, y = pixel_to_cam(pixel, K)
    d = float(depth)
    return np.array([x * d, y * d, d])


def bundle_adjustment_gauss_newton(points_3d, points_2d, K, pose: SE3 | None = None) -> SE3:
    """Refine the pose mapping points_3d onto the pixels points_2d.

    Runs at most ten Gauss-Newton steps with left-multiplied SE(3) updates,
    stopping when the cost stops decreasing or the step becomes tiny.
    """
    pts3 = np.asarray(points_3d, dtype=float).reshape(-1, 3)
    pts2 = np.asarray(points_2d, dtype=float).reshape(-1, 2)
    if len(pts3) != len(pts2):
        raise ValueError("points_3d and points_2d must have the same length")
    if len(pts3) == 0:
        raise ValueError("at least one correspondence is needed")

    k = np.asarray(K, dtype=float)
    fx, fy, cx, cy = k[0, 0], k[1, 1], k[0, 2], k[1, 2]
    pose = pose if pose is not None else SE3()
    last_cost = 0.0

    for iteration in range(GAUSS_NEWTON_ITERATIONS):
        H = np.zeros((6, 6))
        b = np.zeros(6)
        cost = 0.0

        for pc, observed in zip(pose.act(pts3), pts2):
            X, Y, Z = pc
            inv_z = 1.0 / Z
            inv_z2 = inv_z * inv_z
            proj = np.array([fx * X / Z + cx, fy * Y / Z + cy])
            e = observed - proj
            cost += float(e @ e)
            J = np.array(
                [
                    [
                        -fx * inv_z,
                        0.0,
                        fx * X * inv_z2,
                        fx * X * Y * inv_z2,
                        -fx - fx * X * X * inv_z2,
                        fx * Y * inv_z,
                    ],
                    [
                        0.0,
                        -fy * inv_z,
                        fy * Y * inv_z2,
                        fy + fy * Y * Y * inv_z2,
                        -fy * X * Y * inv_z2,
                        -fy * X * inv_z,
                    ],
                ]
            )
            H += J.T @ J
            b += -J.T @ e

        try:
            dx = np.linalg.solve(H, b)
        except np.linalg.LinAlgError:
            _log.warning("normal equations are singular")
            break

        if np.isnan(dx[0]):
            _log.warning("result is nan")
            break

        if iteration > 0 and cost >= last_cost:
            _log.debug("cost: %s, last cost: %s", cost, last_cost)
            break

        pose = SE3.exp(dx) @ pose
        last_cost = cost
        _log.debug("iteration %d cost=%.12g", iteration, cost)
        if np.linalg.norm(dx) < CONVERGENCE_NORM:
            break

    return pose