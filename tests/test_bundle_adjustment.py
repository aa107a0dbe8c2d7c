import numpy as np
import pytest

from slamkit.bal import BALProblem
from slamkit.bundle_adjustment import main, residuals, solve_ba
from slamkit.reprojection import cam_projection_with_distortion


def _synthetic_problem(num_cameras=3, num_points=10, seed=0):
    rng = np.random.default_rng(seed)
    cameras = []
    for c in range(num_cameras):
        aa = np.array([0.05 * c, -0.03 * c, 0.02])
        t = np.array([0.1 * c, -0.2, -10.0])
        cameras.append(np.concatenate([aa, t, [500.0, 1e-3, 1e-5]]))
    cameras = np.array(cameras)
    points = rng.uniform(-1.0, 1.0, size=(num_points, 3))

    cam_idx, pt_idx, obs = [], [], []
    for c in range(num_cameras):
        for p in range(num_points):
            cam_idx.append(c)
            pt_idx.append(p)
            obs.append(cam_projection_with_distortion(cameras[c], points[p]))
    return BALProblem(
        num_cameras=num_cameras,
        num_points=num_points,
        camera_index=np.array(cam_idx),
        point_index=np.array(pt_idx),
        observations=np.array(obs),
        parameters=np.concatenate([cameras.ravel(), points.ravel()]),
    )


def _write_bal(problem, path):
    problem.write_to_file(path)


def test_residuals_zero_at_ground_truth():
    problem = _synthetic_problem()
    r = residuals(problem, problem.parameters)
    assert r.shape == (2 * problem.num_observations,)
    assert np.allclose(r, 0.0, atol=1e-9)


def test_residuals_match_single_projection():
    problem = _synthetic_problem()
    params = problem.parameters.copy()
    params[9 * problem.num_cameras :] += 0.05
    r = residuals(problem, params).reshape(-1, 2)
    cams = params[: 9 * problem.num_cameras].reshape(-1, 9)
    pts = params[9 * problem.num_cameras :].reshape(-1, 3)
    for i, (c, p) in enumerate(zip(problem.camera_index, problem.point_index)):
        expected = cam_projection_with_distortion(cams[c], pts[p]) - problem.observations[i]
        assert np.allclose(r[i], expected)


def test_residuals_small_rotation_branch():
    problem = _synthetic_problem(num_cameras=1, num_points=3)
    params = problem.parameters.copy()
    params[0:3] = 0.0
    r = residuals(problem, params).reshape(-1, 2)
    cam = params[:9]
    pts = params[9:].reshape(-1, 3)
    for i, p in enumerate(problem.point_index):
        expected = cam_projection_with_distortion(cam, pts[p]) - problem.observations[i]
        assert np.allclose(r[i], expected)


def test_residuals_wrong_size_raises():
    problem = _synthetic_problem()
    with pytest.raises(ValueError):
        residuals(problem, problem.parameters[:-1])


def test_quaternion_problem_rejected():
    problem = _synthetic_problem()
    problem.use_quaternions = True
    with pytest.raises(ValueError):
        solve_ba(problem)


def test_solve_reduces_cost_and_updates_problem():
    problem = _synthetic_problem()
    rng = np.random.default_rng(1)
    start = 9 * problem.num_cameras
    problem.parameters[start:] += rng.normal(0.0, 0.02, size=problem.parameters[start:].shape)
    initial = float(np.sum(residuals(problem, problem.parameters) ** 2))

    result = solve_ba(problem, max_iterations=40)
    final = float(np.sum(residuals(problem, problem.parameters) ** 2))

    assert final < 0.01 * initial
    assert np.allclose(problem.parameters, result.x)


def test_solve_without_observations_raises():
    problem = BALProblem(
        num_cameras=0,
        num_points=0,
        camera_index=np.empty(0, dtype=int),
        point_index=np.empty(0, dtype=int),
        observations=np.empty((0, 2)),
        parameters=np.empty(0),
    )
    with pytest.raises(ValueError):
        solve_ba(problem)


def test_solve_rejects_non_positive_iterations():
    problem = _synthetic_problem()
    with pytest.raises(ValueError):
        solve_ba(problem, max_iterations=0)


def test_main_usage_returns_one(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_main_writes_ply_files(tmp_path, monkeypatch):
    problem = _synthetic_problem()
    data = tmp_path / "bal.txt"
    _write_bal(problem, data)
    monkeypatch.chdir(tmp_path)

    assert main([str(data)]) == 0
    for name in ("initial.ply", "final.ply"):
        lines = (tmp_path / name).read_text().splitlines()
        assert lines[0] == "ply"
        assert lines[2] == f"element vertex {problem.num_cameras + problem.num_points}"
        assert len(lines) == 10 + problem.num_cameras + problem.num_points