import numpy as np
import pytest

from slamkit.reprojection import SnavelyReprojectionError, cam_projection_with_distortion
from slamkit.rotation import angle_axis_rotate_point


def _camera(rotation=(0.0, 0.0, 0.0), translation=(0.0, 0.0, 0.0), focal=2.0, k1=0.0, k2=0.0):
    return np.array([*rotation, *translation, focal, k1, k2])


def test_identity_camera_projection():
    result = cam_projection_with_distortion(_camera(), [1.0, 2.0, 4.0])
    np.testing.assert_allclose(result, [-0.5, -1.0])


def test_projection_scales_with_focal():
    point = [0.3, -0.2, 5.0]
    small = cam_projection_with_distortion(_camera(focal=100.0, k1=0.1), point)
    large = cam_projection_with_distortion(_camera(focal=300.0, k1=0.1), point)
    np.testing.assert_allclose(large, 3.0 * small)


def test_distortion_keeps_direction_and_grows_radius():
    point = [1.0, 0.5, 2.0]
    plain = cam_projection_with_distortion(_camera(), point)
    distorted = cam_projection_with_distortion(_camera(k1=0.2, k2=0.05), point)
    assert plain[0] * distorted[1] - plain[1] * distorted[0] == pytest.approx(0.0, abs=1e-12)
    assert np.linalg.norm(distorted) > np.linalg.norm(plain)


def test_rotation_and_translation_applied_before_projection():
    aa = [0.1, -0.3, 0.2]
    t = [0.5, -0.2, 1.0]
    point = np.array([0.4, 0.8, 3.0])
    transformed = angle_axis_rotate_point(aa, point) + t
    full = cam_projection_with_distortion(_camera(rotation=aa, translation=t, k1=0.01), point)
    plain = cam_projection_with_distortion(_camera(k1=0.01), transformed)
    np.testing.assert_allclose(full, plain)


def test_residual_zero_at_prediction():
    camera = _camera(rotation=(0.2, 0.1, -0.1), translation=(0.0, 0.1, -2.0), focal=500.0, k1=0.01)
    point = [0.1, 0.2, 3.0]
    pred = cam_projection_with_distortion(camera, point)
    cost = SnavelyReprojectionError(float(pred[0]), float(pred[1]))
    np.testing.assert_allclose(cost(camera, point), [0.0, 0.0], atol=1e-12)


def test_residual_is_prediction_minus_observation():
    camera = _camera()
    point = [1.0, 2.0, 4.0]
    pred = cam_projection_with_distortion(camera, point)
    residual = SnavelyReprojectionError(1.0, -1.0)(camera, point)
    np.testing.assert_allclose(residual, pred - np.array([1.0, -1.0]))


def test_short_camera_rejected():
    with pytest.raises(ValueError):
        cam_projection_with_distortion([0.0] * 6, [1.0, 1.0, 1.0])