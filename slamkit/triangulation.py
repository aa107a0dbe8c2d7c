"""Triangulation of matched features from two calibrated views."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from .orb import DMatch, KeyPoint
from .pnp import TUM_K, pixel_to_cam

DEPTH_UPPER = 50.0
DEPTH_LOWER = 10.0


def _projection(matrix, name: str) -> np.ndarray:
    m = np.asarray(matrix, dtype=float)
    if m.shape != (3, 4):
        raise ValueError(f"{name} must be a 3x4 matrix, got shape {m.shape}")
    return m


def triangulate_points(T1, T2, pts1, pts2) -> np.ndarray:
    """Linear (DLT) triangulation; returns homogeneous points as an (N, 4) array."""
    P1 = _projection(T1, "T1")
    P2 = _projection(T2, "T2")
    a = np.asarray(pts1, dtype=float).reshape(-1, 2)
    b = np.asarray(pts2, dtype=float).reshape(-1, 2)
    if len(a) != len(b):
        raise ValueError("pts1 and pts2 must have the same length")

    result = np.empty((len(a), 4))
    for n, ((x1, y1), (x2, y2)) in enumerate(zip(a, b)):
        A = np.array(
            [
                x1 * P1[2] - P1[0],
                y1 * P1[2] - P1[1],
                x2 * P2[2] - P2[0],
                y2 * P2[2] - P2[1],
            ]
        )
        _, _, vt = np.linalg.svd(A)
        result[n] = vt[-1]
    return result


def triangulation(
    keypoints_1: Sequence[KeyPoint],
    keypoints_2: Sequence[KeyPoint],
    matches: Sequence[DMatch],
    R,
    t,
    K=TUM_K,
) -> np.ndarray:
    """3D points in the first camera frame for each match, as an (N, 3) array.

    The second camera is related to the first by x2 = R x1 + t.
    """
    rot = np.asarray(R, dtype=float).reshape(3, 3)
    trans = np.asarray(t, dtype=float).reshape(3)
    T1 = np.hstack([np.eye(3), np.zeros((3, 1))])
    T2 = np.hstack([rot, trans[:, np.newaxis]])

    pts_1 = [pixel_to_cam((keypoints_1[m.query_idx].x, keypoints_1[m.query_idx].y), K) for m in matches]
    pts_2 = [pixel_to_cam((keypoints_2[m.train_idx].x, keypoints_2[m.train_idx].y), K) for m in matches]
    if not matches:
        return np.empty((0, 3))

    homogeneous = triangulate_points(T1, T2, pts_1, pts_2)
    return homogeneous[:, :3] / homogeneous[:, 3:4]


def depth_color(depth: float) -> tuple[float, float, float]:
    """BGR colour for a depth, clamped to [10, 50], going from red to blue."""
    th_range = DEPTH_UPPER - DEPTH_LOWER
    d = min(max(float(depth), DEPTH_LOWER), DEPTH_UPPER)
    return (255.0 * d / th_range, 0.0, 255.0 * (1.0 - d / th_range))