"""Rigid-body transformations: SO(3) helpers and the SE(3) group."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial.transform import Rotation

_SMALL_ANGLE = 1e-10


def _vec3(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    if arr.size != 3:
        raise ValueError(f"{name} must have 3 components, got {arr.size}")
    return arr


def hat(v) -> np.ndarray:
    """Skew-symmetric matrix such that hat(v) @ w == v x w."""
    x, y, z = _vec3(v, "vector")
    return np.array(
        [
            [0.0, -z, y],
            [z, 0.0, -x],
            [-y, x, 0.0],
        ]
    )


def so3_exp(omega) -> np.ndarray:
    """Rotation matrix of a rotation vector (Rodrigues' formula)."""
    w = _vec3(omega, "rotation vector")
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + k + 0.5 * (k @ k)
    return (
        np.eye(3)
        + (math.sin(theta) / theta) * k
        + ((1.0 - math.cos(theta)) / (theta * theta)) * (k @ k)
    )


def so3_log(rotation) -> np.ndarray:
    """Rotation vector of a rotation matrix."""
    r = np.asarray(rotation, dtype=float)
    if r.shape != (3, 3):
        raise ValueError(f"rotation must be a 3x3 matrix, got shape {r.shape}")
    return Rotation.from_matrix(r).as_rotvec()


def _left_jacobian(omega: np.ndarray) -> np.ndarray:
    theta = float(np.linalg.norm(omega))
    k = hat(omega)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + 0.5 * k + (k @ k) / 6.0
    theta2 = theta * theta
    return (
        np.eye(3)
        + ((1.0 - math.cos(theta)) / theta2) * k
        + ((theta - math.sin(theta)) / (theta2 * theta)) * (k @ k)
    )


@dataclass(frozen=True, eq=False)
class SE3:
    """A rigid transformation p' = R p + t."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        r = np.array(self.rotation, dtype=float)
        if r.shape != (3, 3):
            raise ValueError(f"rotation must be a 3x3 matrix, got shape {r.shape}")
        t = _vec3(self.translation, "translation").copy()
        object.__setattr__(self, "rotation", r)
        object.__setattr__(self, "translation", t)

    @classmethod
    def exp(cls, xi) -> "SE3":
        """Exponential map of a twist (translation part first, rotation part last)."""
        arr = np.asarray(xi, dtype=float).ravel()
        if arr.size != 6:
            raise ValueError(f"twist must have 6 components, got {arr.size}")
        rho, phi = arr[:3], arr[3:]
        return cls(so3_exp(phi), _left_jacobian(phi) @ rho)

    def __matmul__(self, other):
        if not isinstance(other, SE3):
            return NotImplemented
        return SE3(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def act(self, point) -> np.ndarray:
        """Transform a point, or an (N, 3) array of points."""
        p = np.asarray(point, dtype=float)
        if p.shape == (3,):
            return self.rotation @ p + self.translation
        if p.ndim == 2 and p.shape[1] == 3:
            return p @ self.rotation.T + self.translation
        raise ValueError(f"expected a 3-vector or an (N, 3) array, got shape {p.shape}")

    def matrix(self) -> np.ndarray:
        """Homogeneous 4x4 matrix."""
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def inverse(self) -> "SE3":
        rt = self.rotation.T
        return SE3(rt, -rt @ self.translation)