import numpy as np
import pytest

from slamkit.direct import (
    Intrinsics,
    accumulate_jacobian,
    direct_pose_estimation_multi_layer,
    direct_pose_estimation_single_layer,
)
from slamkit.se3 import SE3

WIDTH, HEIGHT = 160, 120
INTR = Intrinsics(200.0, 200.0, 80.0, 60.0)
DEPTH = 2.0


def texture(X, Y):
    return 128 + 50 * np.sin(6 * X + 2 * Y) + 50 * np.cos(1.5 * X + 5 * Y)


def render(pose):
    """Image of a textured plane at Z = DEPTH (reference frame) seen from pose."""
    v, u = np.mgrid[0:HEIGHT, 0:WIDTH].astype(float)
    d = np.stack([(u - INTR.cx) / INTR.fx, (v - INTR.cy) / INTR.fy, np.ones_like(u)], -1)
    rt = pose.rotation.T
    rd = d @ rt.T
    rt_t = rt @ pose.translation
    s = (DEPTH + rt_t[2]) / rd[..., 2]
    p1 = s[..., None] * rd - rt_t
    return texture(p1[..., 0], p1[..., 1])


def reference_points(n=40):
    rng = np.random.default_rng(0)
    xs = rng.integers(20, WIDTH - 20, size=n)
    ys = rng.integers(20, HEIGHT - 20, size=n)
    return np.stack([xs, ys], axis=1).astype(float), np.full(n, DEPTH)


def true_projection(pose, px, depths):
    out = []
    for (u, v), d in zip(px, depths):
        p = d * np.array([(u - INTR.cx) / INTR.fx, (v - INTR.cy) / INTR.fy, 1.0])
        X, Y, Z = pose.act(p)
        out.append((INTR.fx * X / Z + INTR.cx, INTR.fy * Y / Z + INTR.cy))
    return np.array(out)


TRUTH = SE3.exp([0.01, 0.005, 0.0, 0.0, 0.002, 0.0])


def test_intrinsics_scaled():
    assert Intrinsics(2.0, 4.0, 6.0, 8.0).scaled(0.5) == Intrinsics(1.0, 2.0, 3.0, 4.0)


def test_identical_images_have_zero_cost():
    img = render(SE3())
    px, depths = reference_points(10)
    result = accumulate_jacobian(img, img, px, depths, SE3(), INTR)
    assert result.valid.all()
    assert result.cost == pytest.approx(0.0)
    np.testing.assert_allclose(result.bias, 0.0, atol=1e-9)
    np.testing.assert_allclose(result.hessian, result.hessian.T)
    assert np.linalg.eigvalsh(result.hessian).min() > -1e-6
    np.testing.assert_allclose(result.projection, px)


def test_negative_depth_points_are_skipped():
    img = render(SE3())
    px, _ = reference_points(5)
    result = accumulate_jacobian(img, img, px, -np.ones(5), SE3(), INTR)
    assert not result.valid.any()
    assert result.cost == 0.0
    assert np.all(result.hessian == 0.0)


def test_length_mismatch_raises():
    img = render(SE3())
    with pytest.raises(ValueError):
        accumulate_jacobian(img, img, [[30.0, 30.0]], [1.0, 2.0], SE3(), INTR)


def test_single_layer_recovers_projection():
    img1 = render(SE3())
    img2 = render(TRUTH)
    px, depths = reference_points()
    pose, projection = direct_pose_estimation_single_layer(img1, img2, px, depths, SE3(), INTR)
    expected = true_projection(TRUTH, px, depths)
    assert np.abs(projection - expected).max() < 0.3

    before = accumulate_jacobian(img1, img2, px, depths, SE3(), INTR).cost
    after = accumulate_jacobian(img1, img2, px, depths, pose, INTR).cost
    assert after < before


def test_multi_layer_recovers_projection():
    img1 = render(SE3())
    img2 = render(TRUTH)
    px, depths = reference_points()
    _, projection = direct_pose_estimation_multi_layer(img1, img2, px, depths, SE3(), INTR)
    expected = true_projection(TRUTH, px, depths)
    assert np.abs(projection - expected).max() < 0.3