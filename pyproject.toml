[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dedvo"
version = "0.1.0"
description = "Building blocks for direct visual odometry with camera-lidar input: image pyramids, ORB features, keyframes and bag-of-words loop detection"
requires-python = ">=3.10"
keywords = ["visual odometry", "slam", "orb", "fast", "keyframe", "loop detection", "computer vision"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["dedvo"]

[tool.pytest.ini_options]
addopts = "-ra"
