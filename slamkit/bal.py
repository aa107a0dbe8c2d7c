"""Bundle Adjustment in the Large (BAL) problems: loading, saving and conditioning."""

from __future__ import annotations

import random
from dataclasses import dataclass

import numpy as np

from .noise import rand_normal
from .rotation import (
    angle_axis_rotate_point,
    angle_axis_to_quaternion,
    quaternion_to_angle_axis,
)

_ANGLE_AXIS_CAMERA_SIZE = 9
_QUATERNION_CAMERA_SIZE = 10
_POINT_SIZE = 3


def median(data) -> float:
    """Element at position n // 2 of the sorted data (upper median for even n)."""
    values = np.asarray(data, dtype=float).ravel()
    if values.size == 0:
        raise ValueError("median of empty data")
    k = values.size // 2
    return float(np.partition(values, k)[k])


def perturb_point3(sigma: float, point, rng: random.Random | None = None) -> np.ndarray:
    """Return the point with Gaussian noise of the given sigma added to each coordinate."""
    base = np.asarray(point, dtype=float)[:3]
    noise = np.array([rand_normal(rng) for _ in range(3)])
    return base + noise * sigma


class _TokenReader:
    def __init__(self, text: str) -> None:
        self._tokens = iter(text.split())

    def take(self, kind, what: str):
        try:
            token = next(self._tokens)
        except StopIteration:
            raise ValueError(f"Invalid BAL data file: missing {what}") from None
        try:
            return kind(token)
        except ValueError:
            raise ValueError(f"Invalid BAL data file: bad {what} {token!r}") from None


@dataclass
class BALProblem:
    """A BAL dataset: cameras, points and their 2D observations."""

    num_cameras: int
    num_points: int
    camera_index: np.ndarray
    point_index: np.ndarray
    observations: np.ndarray
    parameters: np.ndarray
    use_quaternions: bool = False

    @classmethod
    def load(cls, filename, use_quaternions: bool = False) -> "BALProblem":
        """Read a BAL text file; optionally store rotations as quaternions."""
        with open(filename, encoding="utf-8") as fh:
            reader = _TokenReader(fh.read())

        num_cameras = reader.take(int, "camera count")
        num_points = reader.take(int, "point count")
        num_observations = reader.take(int, "observation count")
        if min(num_cameras, num_points, num_observations) < 0:
            raise ValueError("Invalid BAL data file: negative count in header")

        camera_index = np.empty(num_observations, dtype=int)
        point_index = np.empty(num_observations, dtype=int)
        observations = np.empty((num_observations, 2), dtype=float)
        for i in range(num_observations):
            camera_index[i] = reader.take(int, "camera index")
            point_index[i] = reader.take(int, "point index")
            observations[i, 0] = reader.take(float, "observation")
            observations[i, 1] = reader.take(float, "observation")

        num_parameters = _ANGLE_AXIS_CAMERA_SIZE * num_cameras + _POINT_SIZE * num_points
        parameters = np.array(
            [reader.take(float, "parameter") for _ in range(num_parameters)], dtype=float
        )

        if use_quaternions:
            split = _ANGLE_AXIS_CAMERA_SIZE * num_cameras
            cams = parameters[:split].reshape(num_cameras, _ANGLE_AXIS_CAMERA_SIZE)
            converted = [
                np.concatenate([angle_axis_to_quaternion(cam[:3]), cam[3:]]) for cam in cams
            ]
            cam_block = (
                np.concatenate(converted) if converted else np.empty(0, dtype=float)
            )
            parameters = np.concatenate([cam_block, parameters[split:]])

        return cls(
            num_cameras=num_cameras,
            num_points=num_points,
            camera_index=camera_index,
            point_index=point_index,
            observations=observations,
            parameters=parameters,
            use_quaternions=use_quaternions,
        )

    @property
    def camera_block_size(self) -> int:
        return _QUATERNION_CAMERA_SIZE if self.use_quaternions else _ANGLE_AXIS_CAMERA_SIZE

    @property
    def point_block_size(self) -> int:
        return _POINT_SIZE

    @property
    def num_observations(self) -> int:
        return int(self.camera_index.size)

    @property
    def num_parameters(self) -> int:
        return int(self.parameters.size)

    def cameras(self) -> np.ndarray:
        """Writable view of the camera blocks, one row per camera."""
        end = self.camera_block_size * self.num_cameras
        return self.parameters[:end].reshape(self.num_cameras, self.camera_block_size)

    def points(self) -> np.ndarray:
        """Writable view of the points, one row per point."""
        start = self.camera_block_size * self.num_cameras
        return self.parameters[start:].reshape(self.num_points, _POINT_SIZE)

    def camera_for_observation(self, i: int) -> np.ndarray:
        return self.cameras()[self.camera_index[i]]

    def point_for_observation(self, i: int) -> np.ndarray:
        return self.points()[self.point_index[i]]

    def write_to_file(self, filename) -> None:
        """Write the problem in BAL text format with angle-axis rotations."""
        with open(filename, "w", encoding="utf-8") as fh:
            fh.write(f"{self.num_cameras} {self.num_points} {self.num_observations}\n")
            for cam, pt, (x, y) in zip(self.camera_index, self.point_index, self.observations):
                fh.write(f"{cam} {pt} {x:g} {y:g}\n")
            for camera in self.cameras():
                if self.use_quaternions:
                    values = np.concatenate([quaternion_to_angle_axis(camera[:4]), camera[4:10]])
                else:
                    values = camera[:9]
                fh.writelines(f"{v:.16g}\n" for v in values)
            for point in self.points():
                fh.writelines(f"{v:.16g}\n" for v in point)

    def write_to_ply_file(self, filename) -> None:
        """Write camera centres (green) and points (white) as an ASCII PLY cloud."""
        header = [
            "ply",
            "format ascii 1.0",
            f"element vertex {self.num_cameras + self.num_points}",
            "property float x",
            "property float y",
            "property float z",
            "property uchar red",
            "property uchar green",
            "property uchar blue",
            "end_header",
        ]
        with open(filename, "w", encoding="utf-8") as fh:
            fh.write("\n".join(header) + "\n")
            for camera in self.cameras():
                _, center = self.camera_to_angle_axis_and_center(camera)
                fh.write(f"{center[0]:g} {center[1]:g} {center[2]:g} 0 255 0\n")
            for point in self.points():
                fh.write("".join(f"{v:g} " for v in point) + " 255 255 255\n")

    def camera_to_angle_axis_and_center(self, camera) -> tuple[np.ndarray, np.ndarray]:
        """Return the camera's angle-axis rotation and its centre c = -R^T t."""
        cam = np.asarray(camera, dtype=float)
        if self.use_quaternions:
            angle_axis = quaternion_to_angle_axis(cam[:4])
        else:
            angle_axis = cam[:3].copy()
        b = self.camera_block_size
        center = -angle_axis_rotate_point(-angle_axis, cam[b - 6 : b - 3])
        return angle_axis, center

    def angle_axis_and_center_to_camera(self, angle_axis, center) -> np.ndarray:
        """Return the rotation and translation part of a camera block (t = -R c).

        The result covers the leading camera_block_size - 3 entries; the
        intrinsics are not part of it.
        """
        aa = np.asarray(angle_axis, dtype=float)[:3]
        rotation = angle_axis_to_quaternion(aa) if self.use_quaternions else aa.copy()
        translation = -angle_axis_rotate_point(aa, center)
        return np.concatenate([rotation, translation])

    def normalize(self) -> None:
        """Centre the points on their median and scale the median deviation to 100."""
        if self.num_points == 0:
            raise ValueError("cannot normalize a problem without points")
        points = self.points()
        med = np.array([median(points[:, i]) for i in range(3)])
        deviation = median(np.abs(points - med).sum(axis=1))
        if deviation == 0.0:
            raise ValueError("cannot normalize: median absolute deviation is zero")
        scale = 100.0 / deviation

        points[:] = scale * (points - med)

        b = self.camera_block_size
        for camera in self.cameras():
            angle_axis, center = self.camera_to_angle_axis_and_center(camera)
            camera[: b - 3] = self.angle_axis_and_center_to_camera(
                angle_axis, scale * (center - med)
            )

    def perturb(
        self,
        rotation_sigma: float,
        translation_sigma: float,
        point_sigma: float,
        rng: random.Random | None = None,
    ) -> None:
        """Add Gaussian noise to points, camera rotations and translations."""
        for name, sigma in (
            ("point_sigma", point_sigma),
            ("rotation_sigma", rotation_sigma),
            ("translation_sigma", translation_sigma),
        ):
            if sigma < 0.0:
                raise ValueError(f"{name} must be non-negative")

        if point_sigma > 0:
            for point in self.points():
                point[:] = perturb_point3(point_sigma, point, rng)

        b = self.camera_block_size
        for camera in self.cameras():
            angle_axis, center = self.camera_to_angle_axis_and_center(camera)
            if rotation_sigma > 0.0:
                angle_axis = perturb_point3(rotation_sigma, angle_axis, rng)
            camera[: b - 3] = self.angle_axis_and_center_to_camera(angle_axis, center)
            if translation_sigma > 0.0:
                camera[b - 6 : b - 3] = perturb_point3(
                    translation_sigma, camera[b - 6 : b - 3], rng
                )