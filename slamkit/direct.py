"""Sparse direct method: camera pose from photometric error at known depths."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .image import build_pyramid, pixel_value_clamped
from .se3 import SE3

_log = logging.getLogger(__name__)

HALF_PATCH_SIZE = 1
ITERATIONS = 10
CONVERGENCE_NORM = 1e-3
PYRAMIDS = 4
PYRAMID_SCALE = 0.5
BASELINE = 0.573


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole camera intrinsics (defaults: KITTI left camera)."""

    fx: float = 718.856
    fy: float = 718.856
    cx: float = 607.1928
    cy: float = 185.2157

    def scaled(self, factor: float) -> "Intrinsics":
        """Intrinsics of the image resized by factor."""
        return Intrinsics(
            self.fx * factor, self.fy * factor, self.cx * factor, self.cy * factor
        )


@dataclass
class JacobianResult:
    """Normal equations and cost of one linearisation."""

    hessian: np.ndarray
    bias: np.ndarray
    cost: float
    projection: np.ndarray
    valid: np.ndarray


def _inputs(px_ref, depth_ref) -> tuple[np.ndarray, np.ndarray]:
    px = np.asarray(px_ref, dtype=float).reshape(-1, 2)
    depth = np.asarray(depth_ref, dtype=float).ravel()
    if len(px) != len(depth):
        raise ValueError("px_ref and depth_ref must have the same length")
    return px, depth


def accumulate_jacobian(
    img1, img2, px_ref, depth_ref, T21: SE3, intrinsics: Intrinsics = Intrinsics()
) -> JacobianResult:
    """Build H, b and the mean patch cost for the pose T21 over all points."""
    px, depths = _inputs(px_ref, depth_ref)
    img2_arr = np.asarray(img2)
    rows, cols = img2_arr.shape[:2]
    fx, fy, cx, cy = intrinsics.fx, intrinsics.fy, intrinsics.cx, intrinsics.cy

    hessian = np.zeros((6, 6))
    bias = np.zeros(6)
    cost = 0.0
    cnt_good = 0
    projection = np.zeros((len(px), 2))
    valid = np.zeros(len(px), dtype=bool)
    h = HALF_PATCH_SIZE

    for i, ((pu, pv), depth) in enumerate(zip(px, depths)):
        point_ref = depth * np.array([(pu - cx) / fx, (pv - cy) / fy, 1.0])
        X, Y, Z = T21.act(point_ref)
        if Z < 0 or Z == 0:
            continue
        u = fx * X / Z + cx
        v = fy * Y / Z + cy
        if not (np.isfinite(u) and np.isfinite(v)):
            continue
        if u < h or u > cols - h or v < h or v > rows - h:
            continue

        projection[i] = (u, v)
        valid[i] = True
        cnt_good += 1

        z_inv = 1.0 / Z
        z2_inv = z_inv * z_inv
        j_pixel_xi = np.array(
            [
                [fx * z_inv, 0.0, -fx * X * z2_inv, -fx * X * Y * z2_inv,
                 fx + fx * X * X * z2_inv, -fx * Y * z_inv],
                [0.0, fy * z_inv, -fy * Y * z2_inv, -fy - fy * Y * Y * z2_inv,
                 fy * X * Y * z2_inv, fy * X * z_inv],
            ]
        )

        for x in range(-h, h + 1):
            for y in range(-h, h + 1):
                error = pixel_value_clamped(img1, pu + x, pv + y) - pixel_value_clamped(
                    img2_arr, u + x, v + y
                )
                j_img_pixel = np.array(
                    [
                        0.5 * (pixel_value_clamped(img2_arr, u + 1 + x, v + y)
                               - pixel_value_clamped(img2_arr, u - 1 + x, v + y)),
                        0.5 * (pixel_value_clamped(img2_arr, u + x, v + 1 + y)
                               - pixel_value_clamped(img2_arr, u + x, v - 1 + y)),
                    ]
                )
                J = -(j_img_pixel @ j_pixel_xi)
                hessian += np.outer(J, J)
                bias += -error * J
                cost += error * error

    if cnt_good:
        cost /= cnt_good
    else:
        hessian[:] = 0.0
        bias[:] = 0.0
        cost = 0.0
    return JacobianResult(hessian, bias, cost, projection, valid)


def direct_pose_estimation_single_layer(
    img1,
    img2,
    px_ref,
    depth_ref,
    T21: SE3 | None = None,
    intrinsics: Intrinsics = Intrinsics(),
) -> tuple[SE3, np.ndarray]:
    """Gauss-Newton on one image level; returns the pose and projected pixels.

    Points never projected inside the second image keep a projection of (0, 0).
    """
    px, depths = _inputs(px_ref, depth_ref)
    pose = T21 if T21 is not None else SE3()
    projection = np.zeros((len(px), 2))
    last_cost = 0.0

    for iteration in range(ITERATIONS):
        result = accumulate_jacobian(img1, img2, px, depths, pose, intrinsics)
        projection[result.valid] = result.projection[result.valid]
        try:
            update = np.linalg.solve(result.hessian, result.bias)
        except np.linalg.LinAlgError:
            _log.debug("update is nan")
            break
        if not np.all(np.isfinite(update)):
            _log.debug("update is nan")
            break

        pose = SE3.exp(update) @ pose
        cost = result.cost

        if iteration > 0 and cost > last_cost:
            _log.debug("cost increased: %s, %s", cost, last_cost)
            break
        if np.linalg.norm(update) < CONVERGENCE_NORM:
            break

        last_cost = cost
        _log.debug("iteration: %d, cost: %s", iteration, cost)

    return pose, projection


def direct_pose_estimation_multi_layer(
    img1,
    img2,
    px_ref,
    depth_ref,
    T21: SE3 | None = None,
    intrinsics: Intrinsics = Intrinsics(),
) -> tuple[SE3, np.ndarray]:
    """Coarse-to-fine direct pose estimation over a four-level pyramid."""
    px, depths = _inputs(px_ref, depth_ref)
    pyr1 = build_pyramid(img1, PYRAMIDS, PYRAMID_SCALE)
    pyr2 = build_pyramid(img2, PYRAMIDS, PYRAMID_SCALE)
    pose = T21 if T21 is not None else SE3()
    projection = np.zeros((len(px), 2))

    for level in range(PYRAMIDS - 1, -1, -1):
        scale = PYRAMID_SCALE**level
        pose, projection = direct_pose_estimation_single_layer(
            pyr1[level], pyr2[level], px * scale, depths, pose, intrinsics.scaled(scale)
        )
    return pose, projection