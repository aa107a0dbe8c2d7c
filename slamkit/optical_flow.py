"""Lucas-Kanade sparse optical flow, single level and coarse-to-fine."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from .image import build_pyramid, pixel_value
from .orb import KeyPoint

_log = logging.getLogger(__name__)

HALF_PATCH_SIZE = 4
ITERATIONS = 10
CONVERGENCE_NORM = 1e-2
PYRAMIDS = 4
PYRAMID_SCALE = 0.5

_OFFSETS = [
    (x, y)
    for x in range(-HALF_PATCH_SIZE, HALF_PATCH_SIZE)
    for y in range(-HALF_PATCH_SIZE, HALF_PATCH_SIZE)
]


def _gradient(img, x: float, y: float) -> np.ndarray:
    return np.array(
        [
            0.5 * (pixel_value(img, x + 1, y) - pixel_value(img, x - 1, y)),
            0.5 * (pixel_value(img, x, y + 1) - pixel_value(img, x, y - 1)),
        ]
    )


def _track(img1, img2, kp: KeyPoint, dx: float, dy: float, inverse: bool):
    H = np.zeros((2, 2))
    last_cost = 0.0
    succ = True
    # In inverse mode the Jacobians depend on the first image only.
    inverse_jacobians = None

    for iteration in range(ITERATIONS):
        if not inverse:
            H = np.zeros((2, 2))
        elif inverse_jacobians is None:
            inverse_jacobians = [-_gradient(img1, kp.x + x, kp.y + y) for x, y in _OFFSETS]
            H = sum(np.outer(J, J) for J in inverse_jacobians)
        b = np.zeros(2)
        cost = 0.0

        for n, (x, y) in enumerate(_OFFSETS):
            error = pixel_value(img1, kp.x + x, kp.y + y) - pixel_value(
                img2, kp.x + x + dx, kp.y + y + dy
            )
            if inverse:
                J = inverse_jacobians[n]
            else:
                J = -_gradient(img2, kp.x + dx + x, kp.y + dy + y)
                H += np.outer(J, J)
            b += -error * J
            cost += error * error

        try:
            update = np.linalg.solve(H, b)
        except np.linalg.LinAlgError:
            _log.debug("update is nan")
            succ = False
            break
        if not np.all(np.isfinite(update)):
            _log.debug("update is nan")
            succ = False
            break

        if iteration > 0 and cost > last_cost:
            break

        dx += float(update[0])
        dy += float(update[1])
        last_cost = cost
        succ = True

        if np.linalg.norm(update) < CONVERGENCE_NORM:
            break

    return dx, dy, succ


def optical_flow_single_level(
    img1,
    img2,
    kp1: Sequence[KeyPoint],
    kp2: Sequence[KeyPoint] | None = None,
    inverse: bool = False,
    has_initial: bool = False,
) -> tuple[list[KeyPoint], list[bool]]:
    """Track kp1 from img1 into img2 with Gauss-Newton on 8x8 patches.

    With has_initial, kp2 gives the starting guesses. Returns the tracked
    keypoints and a success flag for each.
    """
    if has_initial and (kp2 is None or len(kp2) != len(kp1)):
        raise ValueError("kp2 must hold one initial guess per keypoint")
    tracked: list[KeyPoint] = []
    success: list[bool] = []
    for i, kp in enumerate(kp1):
        dx = dy = 0.0
        if has_initial:
            dx = kp2[i].x - kp.x
            dy = kp2[i].y - kp.y
        dx, dy, succ = _track(img1, img2, kp, dx, dy, inverse)
        tracked.append(KeyPoint(kp.x + dx, kp.y + dy))
        success.append(succ)
    return tracked, success


def optical_flow_multi_level(
    img1, img2, kp1: Sequence[KeyPoint], inverse: bool = False
) -> tuple[list[KeyPoint], list[bool]]:
    """Coarse-to-fine tracking over a four-level pyramid with scale 0.5."""
    pyr1 = build_pyramid(img1, PYRAMIDS, PYRAMID_SCALE)
    pyr2 = build_pyramid(img2, PYRAMIDS, PYRAMID_SCALE)
    top_scale = PYRAMID_SCALE ** (PYRAMIDS - 1)

    kp1_pyr = [KeyPoint(kp.x * top_scale, kp.y * top_scale) for kp in kp1]
    kp2_pyr = list(kp1_pyr)
    success: list[bool] = []

    for level in range(PYRAMIDS - 1, -1, -1):
        kp2_pyr, success = optical_flow_single_level(
            pyr1[level], pyr2[level], kp1_pyr, kp2_pyr, inverse, True
        )
        if level > 0:
            kp1_pyr = [KeyPoint(kp.x / PYRAMID_SCALE, kp.y / PYRAMID_SCALE) for kp in kp1_pyr]
            kp2_pyr = [KeyPoint(kp.x / PYRAMID_SCALE, kp.y / PYRAMID_SCALE) for kp in kp2_pyr]

    return kp2_pyr, success