"""Conversions between rotation/translation pairs and homogeneous rigid transforms."""

from __future__ import annotations

import numpy as np


def _check_pose(pose) -> np.ndarray:
    mat = np.asarray(pose, dtype=np.float64)
    if mat.shape != (4, 4):
        raise ValueError("a pose must be a 4x4 matrix")
    return mat


def pose_to_isometry(rotation, translation) -> np.ndarray:
    """Build a 4x4 homogeneous transform from a 3x3 rotation and a 3-vector."""
    rot = np.asarray(rotation, dtype=np.float64)
    trans = np.asarray(translation, dtype=np.float64).reshape(-1)
    if rot.shape != (3, 3):
        raise ValueError("rotation must be a 3x3 matrix")
    if trans.shape != (3,):
        raise ValueError("translation must have three components")
    iso = np.eye(4)
    iso[:3, :3] = rot
    iso[:3, 3] = trans
    return iso


def invert_pose(pose) -> np.ndarray:
    """Invert a rigid transform using the transpose of its rotation."""
    mat = _check_pose(pose)
    rot_t = mat[:3, :3].T
    return pose_to_isometry(rot_t, -rot_t @ mat[:3, 3])


def transform_points(pose, points) -> np.ndarray:
    """Apply a rigid transform to an (N, 3) array of points."""
    mat = _check_pose(pose)
    pts = np.asarray(points, dtype=np.float64)
    single = pts.ndim == 1
    pts = np.atleast_2d(pts)
    if pts.shape[1] != 3:
        raise ValueError("points must have three coordinates")
    out = pts @ mat[:3, :3].T + mat[:3, 3]
    return out[0] if single else out