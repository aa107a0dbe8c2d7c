import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from slamkit.rotation import (
    angle_axis_rotate_point,
    angle_axis_to_quaternion,
    cross_product,
    dot_product,
    quaternion_to_angle_axis,
)

ANGLE_AXES = [
    [0.1, -0.2, 0.3],
    [1.0, 0.5, -0.25],
    [0.0, 0.0, 2.5],
    [-1.2, 0.7, 0.9],
]


def test_dot_product_matches_numpy():
    x, y = [1.0, 2.0, 3.0], [-4.0, 0.5, 2.0]
    assert dot_product(x, y) == pytest.approx(float(np.dot(x, y)))


def test_cross_product_matches_numpy():
    x, y = [1.0, 2.0, 3.0], [-4.0, 0.5, 2.0]
    np.testing.assert_allclose(cross_product(x, y), np.cross(x, y))


def test_cross_product_is_orthogonal():
    x, y = [0.3, -1.0, 2.0], [1.5, 0.2, -0.7]
    c = cross_product(x, y)
    assert dot_product(c, x) == pytest.approx(0.0, abs=1e-12)
    assert dot_product(c, y) == pytest.approx(0.0, abs=1e-12)


def test_rotate_quarter_turn_about_z():
    result = angle_axis_rotate_point([0.0, 0.0, math.pi / 2], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(result, [0.0, 1.0, 0.0], atol=1e-12)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_rotate_matches_scipy(aa):
    pt = np.array([0.4, -1.3, 2.2])
    expected = Rotation.from_rotvec(aa).apply(pt)
    np.testing.assert_allclose(angle_axis_rotate_point(aa, pt), expected, atol=1e-12)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_rotation_preserves_norm(aa):
    pt = np.array([3.0, -2.0, 1.0])
    rotated = angle_axis_rotate_point(aa, pt)
    assert np.linalg.norm(rotated) == pytest.approx(np.linalg.norm(pt))


def test_zero_rotation_is_identity():
    pt = [1.0, 2.0, 3.0]
    np.testing.assert_allclose(angle_axis_rotate_point([0.0, 0.0, 0.0], pt), pt)


def test_zero_angle_axis_gives_identity_quaternion():
    np.testing.assert_allclose(angle_axis_to_quaternion([0.0, 0.0, 0.0]), [1.0, 0.0, 0.0, 0.0])


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_quaternion_matches_scipy(aa):
    x, y, z, w = Rotation.from_rotvec(aa).as_quat()
    np.testing.assert_allclose(angle_axis_to_quaternion(aa), [w, x, y, z], atol=1e-12)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_quaternion_round_trip(aa):
    q = angle_axis_to_quaternion(aa)
    np.testing.assert_allclose(quaternion_to_angle_axis(q), aa, atol=1e-12)


@pytest.mark.parametrize("aa", ANGLE_AXES)
def test_negated_quaternion_gives_same_angle_axis(aa):
    q = angle_axis_to_quaternion(aa)
    np.testing.assert_allclose(quaternion_to_angle_axis(-q), quaternion_to_angle_axis(q), atol=1e-12)


def test_quaternion_is_unit():
    q = angle_axis_to_quaternion([0.5, -0.4, 1.1])
    assert np.linalg.norm(q) == pytest.approx(1.0)


def test_short_vector_rejected():
    with pytest.raises(ValueError):
        angle_axis_rotate_point([1.0, 2.0], [1.0, 2.0, 3.0])