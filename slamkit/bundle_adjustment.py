"""Bundle adjustment of BAL problems with a robust (Huber) least-squares solver."""

from __future__ import annotations

import logging
import sys

import numpy as np
from scipy.optimize import OptimizeResult, least_squares
from scipy.sparse import lil_matrix

from .bal import BALProblem

_log = logging.getLogger(__name__)

CAMERA_SIZE = 9
POINT_SIZE = 3
DEFAULT_MAX_ITERATIONS = 40
HUBER_DELTA = 1.0
ROTATION_SIGMA = 0.1
TRANSLATION_SIGMA = 0.5
POINT_SIGMA = 0.5

_EPSILON = sys.float_info.epsilon


def _check_problem(problem: BALProblem) -> None:
    if problem.use_quaternions:
        raise ValueError("bundle adjustment needs angle-axis cameras (9 parameters)")


def _rotate(angle_axis: np.ndarray, pts: np.ndarray) -> np.ndarray:
    """Rotate each point by its angle-axis vector, row by row."""
    theta2 = np.einsum("ij,ij->i", angle_axis, angle_axis)
    large = theta2 > _EPSILON
    theta = np.sqrt(np.where(large, theta2, 1.0))
    w = angle_axis / theta[:, np.newaxis]
    cos_t = np.cos(theta)[:, np.newaxis]
    sin_t = np.sin(theta)[:, np.newaxis]
    dot = np.einsum("ij,ij->i", w, pts)[:, np.newaxis]
    rodrigues = pts * cos_t + np.cross(w, pts) * sin_t + w * dot * (1.0 - cos_t)
    first_order = pts + np.cross(angle_axis, pts)
    return np.where(large[:, np.newaxis], rodrigues, first_order)


def _project(cameras: np.ndarray, points: np.ndarray) -> np.ndarray:
    p = _rotate(cameras[:, 0:3], points) + cameras[:, 3:6]
    xp = -p[:, 0] / p[:, 2]
    yp = -p[:, 1] / p[:, 2]
    r2 = xp * xp + yp * yp
    distortion = 1.0 + r2 * (cameras[:, 7] + cameras[:, 8] * r2)
    factor = cameras[:, 6] * distortion
    return np.column_stack([factor * xp, factor * yp])


def residuals(problem: BALProblem, parameters) -> np.ndarray:
    """Reprojection residuals (predicted - observed) for every observation, flattened.

    parameters follows the problem's layout: all cameras, then all points.
    """
    _check_problem(problem)
    params = np.asarray(parameters, dtype=float).ravel()
    expected = CAMERA_SIZE * problem.num_cameras + POINT_SIZE * problem.num_points
    if params.size != expected:
        raise ValueError(f"expected {expected} parameters, got {params.size}")
    split = CAMERA_SIZE * problem.num_cameras
    cameras = params[:split].reshape(problem.num_cameras, CAMERA_SIZE)
    points = params[split:].reshape(problem.num_points, POINT_SIZE)
    predicted = _project(cameras[problem.camera_index], points[problem.point_index])
    return (predicted - problem.observations).ravel()


def _jacobian_sparsity(problem: BALProblem) -> lil_matrix:
    n_obs = problem.num_observations
    n_params = CAMERA_SIZE * problem.num_cameras + POINT_SIZE * problem.num_points
    pattern = lil_matrix((2 * n_obs, n_params), dtype=int)
    point_start = CAMERA_SIZE * problem.num_cameras
    for i, (cam, pt) in enumerate(zip(problem.camera_index, problem.point_index)):
        rows = slice(2 * i, 2 * i + 2)
        c0 = CAMERA_SIZE * int(cam)
        p0 = point_start + POINT_SIZE * int(pt)
        pattern[rows, c0 : c0 + CAMERA_SIZE] = 1
        pattern[rows, p0 : p0 + POINT_SIZE] = 1
    return pattern


def solve_ba(problem: BALProblem, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> OptimizeResult:
    """Optimise cameras and points with a Huber loss; writes the result into the problem."""
    _check_problem(problem)
    if problem.num_observations == 0:
        raise ValueError("problem has no observations")
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")

    _log.info(
        "bal problem have %d cameras and %d points, forming %d observations",
        problem.num_cameras,
        problem.num_points,
        problem.num_observations,
    )
    result = least_squares(
        lambda x: residuals(problem, x),
        problem.parameters.copy(),
        jac_sparsity=_jacobian_sparsity(problem),
        method="trf",
        loss="huber",
        f_scale=HUBER_DELTA,
        x_scale="jac",
        max_nfev=max_iterations,
    )
    problem.parameters[:] = result.x
    _log.info("final cost %g after %d evaluations", result.cost, result.nfev)
    return result


def main(argv=None) -> int:
    """Load a BAL file, condition it, solve it and write initial/final PLY clouds."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) != 1:
        print("usage: bundle_adjustment bal_data.txt")
        return 1

    problem = BALProblem.load(args[0])
    problem.normalize()
    problem.perturb(ROTATION_SIGMA, TRANSLATION_SIGMA, POINT_SIGMA)
    problem.write_to_ply_file("initial.ply")

    print("bal problem file loaded...")
    print(
        f"bal problem have {problem.num_cameras} cameras and "
        f"{problem.num_points} points. "
    )
    print(f"Forming {problem.num_observations} observations. ")
    print("Solving BA ... ")
    result = solve_ba(problem)
    print(result.message)
    print(f"final cost: {result.cost:g}")

    problem.write_to_ply_file("final.ply")
    return 0