"""Rigid alignment of matched 3D point sets (ICP with known correspondences)."""

from __future__ import annotations

import logging

import numpy as np

from .se3 import SE3, hat

_log = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 10
_INITIAL_LAMBDA_FACTOR = 1e-5
_MAX_TRIALS = 10


def _point_arrays(pts1, pts2) -> tuple[np.ndarray, np.ndarray]:
    a = np.asarray(pts1, dtype=float).reshape(-1, 3)
    b = np.asarray(pts2, dtype=float).reshape(-1, 3)
    if len(a) != len(b):
        raise ValueError("pts1 and pts2 must have the same length")
    if len(a) == 0:
        raise ValueError("at least one point pair is needed")
    return a, b


def pose_estimation_3d3d(pts1, pts2) -> tuple[np.ndarray, np.ndarray]:
    """Closed-form R, t with pts1 ~= R @ pts2 + t, from the SVD of the cross-covariance."""
    a, b = _point_arrays(pts1, pts2)
    c1 = a.mean(axis=0)
    c2 = b.mean(axis=0)
    q1 = a - c1
    q2 = b - c2

    W = q1.T @ q2
    _log.debug("W=%s", W)

    U, _, Vt = np.linalg.svd(W)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        R = -R
    t = c1 - R @ c2
    return R, t


def _residuals(a: np.ndarray, b: np.ndarray, pose: SE3) -> tuple[np.ndarray, np.ndarray]:
    transformed = pose.act(b)
    return a - transformed, transformed


def _cost(errors: np.ndarray) -> float:
    return float(np.sum(errors * errors))


def refine_pose_3d3d(pts1, pts2, pose: SE3 | None = None, iterations: int = DEFAULT_ITERATIONS) -> SE3:
    """Levenberg-Marquardt refinement of the pose mapping pts2 onto pts1.

    The error of each pair is p1 - T p2; updates are left-multiplied twists
    with the translation part first.
    """
    a, b = _point_arrays(pts1, pts2)
    if iterations < 0:
        raise ValueError("iterations must be non-negative")
    pose = pose if pose is not None else SE3()

    errors, transformed = _residuals(a, b, pose)
    cost = _cost(errors)
    lam: float | None = None
    nu = 2.0

    for iteration in range(iterations):
        jac = np.zeros((len(a), 3, 6))
        jac[:, :, :3] = -np.eye(3)
        jac[:, :, 3:] = np.array([hat(q) for q in transformed])
        H = np.einsum("nij,nik->jk", jac, jac)
        g = np.einsum("nij,ni->j", jac, errors)

        if lam is None:
            lam = _INITIAL_LAMBDA_FACTOR * float(np.max(np.diag(H)))

        accepted = False
        for _ in range(_MAX_TRIALS):
            try:
                dx = np.linalg.solve(H + lam * np.eye(6), -g)
            except np.linalg.LinAlgError:
                lam *= nu
                nu *= 2.0
                continue
            candidate = SE3.exp(dx) @ pose
            new_errors, new_transformed = _residuals(a, b, candidate)
            new_cost = _cost(new_errors)
            predicted = float(dx @ (lam * dx - g))
            rho = (cost - new_cost) / predicted if predicted > 0 else -1.0
            if new_cost < cost and rho > 0:
                pose, errors, transformed, cost = candidate, new_errors, new_transformed, new_cost
                lam *= max(1.0 / 3.0, 1.0 - (2.0 * rho - 1.0) ** 3)
                nu = 2.0
                accepted = True
                break
            lam *= nu
            nu *= 2.0

        _log.debug("iteration %d cost=%.12g lambda=%g", iteration, cost, lam)
        if not accepted:
            break

    return pose