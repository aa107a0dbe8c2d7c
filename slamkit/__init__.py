"""Visual odometry building blocks: rotations, ORB descriptors, SE(3) poses,
PnP, ICP, triangulation, optical flow, direct method and BAL bundle adjustment."""

__version__ = "0.1.0"