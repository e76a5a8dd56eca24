"""Direct visual odometry building blocks: image operations, ORB features, poses, settings, frames, keyframes and loop detection."""

__version__ = "0.1.0"