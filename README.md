# slamkit

Building blocks for visual odometry and structure from motion, written on
NumPy and SciPy. Images are plain 2D NumPy arrays (single-channel grey),
points and pixels are NumPy arrays, and poses are `slamkit.se3.SE3` objects.

## Modules

- `slamkit.rotation`: `dot_product`, `cross_product`,
  `angle_axis_to_quaternion`, `quaternion_to_angle_axis` (quaternions as
  `(w, x, y, z)`) and `angle_axis_rotate_point` (Rodrigues' formula, with a
  first-order form near the identity).
- `slamkit.noise`: `rand_double` (uniform in [0, 1)) and `rand_normal`
  (Marsaglia polar method). Both take an optional `random.Random`.
- `slamkit.reprojection`: `cam_projection_with_distortion` projects a point
  through a 9-parameter BAL camera (angle-axis rotation, translation, focal
  length, two radial distortion terms); `SnavelyReprojectionError(observed_x,
  observed_y)` is callable as `(camera, point)` and returns predicted minus
  observed.
- `slamkit.bal`: `BALProblem` reads a BAL text file (`BALProblem.load`,
  optionally storing rotations as quaternions), exposes `cameras()` and
  `points()` as writable views, and offers `normalize()` (centre on the median,
  scale the median absolute deviation to 100), `perturb(rotation_sigma,
  translation_sigma, point_sigma, rng)`, `write_to_file` and
  `write_to_ply_file`. Malformed files raise `ValueError`. Also `median` and
  `perturb_point3`.
- `slamkit.orb`: `KeyPoint(x, y)`, `DMatch(query_idx, train_idx, distance)`,
  `compute_orb` (256-bit rotated BRIEF descriptors as eight 32-bit words;
  keypoints within 16 pixels of the border get `None`), `hamming_distance`,
  `bf_match` (brute-force nearest neighbour, keeping distances below 40) and
  `select_good_matches` (keep distances up to twice the minimum, at least 30).
- `slamkit.se3`: `hat`, `so3_exp`, `so3_log` and `SE3` with `SE3.exp(xi)`
  (translation part first, rotation part last), composition with `@`,
  `act(point)` for a point or an `(N, 3)` array, `matrix()` and `inverse()`.
- `slamkit.pnp`: `pixel_to_cam`, `backproject`, the TUM camera matrix
  `TUM_K`, and `bundle_adjustment_gauss_newton(points_3d, points_2d, K, pose)`,
  which refines a pose from 3D–2D correspondences in at most ten Gauss–Newton
  steps.
- `slamkit.icp`: `pose_estimation_3d3d(pts1, pts2)` returns `(R, t)` with
  `pts1 ≈ R @ pts2 + t` from an SVD; `refine_pose_3d3d(pts1, pts2, pose,
  iterations)` refines that pose by Levenberg–Marquardt.
- `slamkit.triangulation`: `triangulate_points` (linear DLT, homogeneous
  `(N, 4)` output), `triangulation(keypoints_1, keypoints_2, matches, R, t, K)`
  (3D points in the first camera frame) and `depth_color` (a BGR colour for a
  depth clamped to [10, 50]).
- `slamkit.image`: `pixel_value` and `pixel_value_clamped` (bilinear
  sampling), `resize_bilinear` and `build_pyramid`.
- `slamkit.optical_flow`: `optical_flow_single_level` and
  `optical_flow_multi_level` (Lucas–Kanade on 8×8 patches, forward or inverse
  formulation, four-level pyramid). Both return the tracked keypoints and a
  success flag per keypoint.
- `slamkit.direct`: `Intrinsics` (defaults to the KITTI left camera) with
  `scaled`, `accumulate_jacobian` returning a `JacobianResult`, and
  `direct_pose_estimation_single_layer` / `direct_pose_estimation_multi_layer`,
  which return the pose and the projected pixels.
- `slamkit.bundle_adjustment`: `residuals(problem, parameters)` and
  `solve_ba(problem, max_iterations)`, which optimises all cameras and points
  with SciPy's `least_squares` and a Huber loss, writes the result back into the
  problem and returns the SciPy result. Only angle-axis (9-parameter) cameras
  are accepted.

Progress messages go to the standard `logging` module under the `slamkit`
logger names.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Bundle adjustment from the command line

Given a dataset in the BAL text format:

```
slamkit-ba problem.txt
```

The problem is normalised, perturbed (rotation sigma 0.1, translation and
point sigma 0.5, unseeded), written to `initial.ply` in the current directory,
solved with at most 40 evaluations, and written to `final.ply`. Both PLY files
hold camera centres as green points and the structure as white points.

## Library use

```python
import random
from slamkit.bal import BALProblem
from slamkit.bundle_adjustment import solve_ba

problem = BALProblem.load("problem.txt", False)
problem.normalize()
problem.perturb(0.1, 0.5, 0.5, random.Random(0))
result = solve_ba(problem, 40)
print(result.cost)
problem.write_to_ply_file("final.ply")
```

Estimating a camera pose from 3D–2D correspondences:

```python
import numpy as np
from slamkit.pnp import TUM_K, bundle_adjustment_gauss_newton
from slamkit.se3 import SE3

true_pose = SE3.exp([0.05, -0.02, 0.1, 0.01, 0.02, -0.01])
rng = np.random.default_rng(1)
points_3d = rng.uniform([-1, -1, 4], [1, 1, 8], size=(50, 3))
cam = true_pose.act(points_3d)
points_2d = cam[:, :2] / cam[:, 2:] * [TUM_K[0, 0], TUM_K[1, 1]] + [TUM_K[0, 2], TUM_K[1, 2]]

pose = bundle_adjustment_gauss_newton(points_3d, points_2d, TUM_K, SE3())
print(pose.matrix())
```

## What the package does not do

- It does not read, write or display image files; pass images in as NumPy
  arrays and draw results yourself.
- It does not detect features: keypoints for `compute_orb` and the optical
  flow functions must come from elsewhere.
- It does not estimate fundamental, essential or homography matrices, nor
  recover a relative pose from two views; `triangulation` expects `R` and `t`
  to be given.
- The only command is `slamkit-ba`; the other algorithms are library
  functions.