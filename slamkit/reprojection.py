"""Reprojection of BAL points through a camera with radial distortion."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .rotation import angle_axis_rotate_point


def cam_projection_with_distortion(camera, point) -> np.ndarray:
    """Project a 3D point through a 9-parameter BAL camera.

    The camera holds angle-axis rotation [0:3], translation [3:6], focal
    length [6] and second and fourth order radial distortion [7:9].
    """
    cam = np.asarray(camera, dtype=float).ravel()
    if cam.size < 9:
        raise ValueError("camera needs 9 parameters")
    p = angle_axis_rotate_point(cam[0:3], point) + cam[3:6]

    xp = -p[0] / p[2]
    yp = -p[1] / p[2]

    l1, l2 = cam[7], cam[8]
    r2 = xp * xp + yp * yp
    distortion = 1.0 + r2 * (l1 + l2 * r2)

    focal = cam[6]
    return np.array([focal * distortion * xp, focal * distortion * yp])


@dataclass(frozen=True)
class SnavelyReprojectionError:
    """Residual between an observed pixel and the projected point."""

    observed_x: float
    observed_y: float

    def __call__(self, camera, point) -> np.ndarray:
        prediction = cam_projection_with_distortion(camera, point)
        return prediction - np.array([self.observed_x, self.observed_y])