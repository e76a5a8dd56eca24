"""Image-processing primitives used for feature extraction on grayscale images."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

# Bresenham circle of radius 3 as (dx, dy) offsets, in the order used by FAST-9.
_CIRCLE = (
    (0, 3), (1, 3), (2, 2), (3, 1), (3, 0), (3, -1), (2, -2), (1, -3),
    (0, -3), (-1, -3), (-2, -2), (-3, -1), (-3, 0), (-3, 1), (-2, 2), (-1, 3),
)
_ARC = 9
_FAST_KEYPOINT_SIZE = 7.0


@dataclass
class KeyPoint:
    """A detected image feature."""

    x: float
    y: float
    size: float = _FAST_KEYPOINT_SIZE
    angle: float = -1.0
    response: float = 0.0
    octave: int = 0


def _as_gray(image) -> np.ndarray:
    img = np.asarray(image)
    if img.ndim != 2:
        raise ValueError("expected a single-channel 2-D image")
    return img


def _fast_scores(img: np.ndarray) -> np.ndarray:
    """Corner score of every interior pixel (largest threshold that still passes)."""
    h, w = img.shape
    center = img[3:h - 3, 3:w - 3]
    diffs = np.stack(
        [img[3 + dy:h - 3 + dy, 3 + dx:w - 3 + dx] - center for dx, dy in _CIRCLE]
    )
    ext = np.concatenate([diffs, diffs[: _ARC - 1]])
    arc_min = ext[0:16].copy()
    arc_max = ext[0:16].copy()
    for j in range(1, _ARC):
        np.minimum(arc_min, ext[j:j + 16], out=arc_min)
        np.maximum(arc_max, ext[j:j + 16], out=arc_max)
    bright = arc_min.max(axis=0)
    dark = -arc_max.min(axis=0)
    return np.maximum(bright, dark) - 1


def fast_detect(image, threshold, nonmax_suppression=True) -> list[KeyPoint]:
    """Detect FAST-9 corners on an 8-bit grayscale image, in row-major order."""
    img = _as_gray(image).astype(np.int32)
    threshold = min(max(int(threshold), 0), 255)
    h, w = img.shape
    if h < 7 or w < 7:
        return []

    scores = _fast_scores(img)
    corners = scores >= threshold

    if nonmax_suppression:
        full = np.zeros((h + 2, w + 2), dtype=np.int32)
        full[4:h - 2, 4:w - 2] = np.where(corners, scores, 0)
        core = full[4:h - 2, 4:w - 2]
        keep = corners.copy()
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dx == 0 and dy == 0:
                    continue
                neighbour = full[4 + dy:h - 2 + dy, 4 + dx:w - 2 + dx]
                keep &= core > neighbour
        corners = keep

    ys, xs = np.nonzero(corners)
    return [
        KeyPoint(x=float(x + 3), y=float(y + 3), response=float(scores[y, x]))
        for y, x in zip(ys, xs)
    ]


def _finish(values: np.ndarray, dtype: np.dtype) -> np.ndarray:
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return np.clip(np.rint(values), info.min, info.max).astype(dtype)
    return values.astype(dtype)


def _linear_coords(n_out: int, n_in: int):
    scale = n_in / n_out
    f = np.clip((np.arange(n_out) + 0.5) * scale - 0.5, 0.0, n_in - 1)
    i0 = np.floor(f).astype(np.intp)
    i1 = np.minimum(i0 + 1, n_in - 1)
    return i0, i1, f - i0


def resize_bilinear(image, width, height) -> np.ndarray:
    """Resize with bilinear interpolation on half-pixel centred coordinates."""
    src = np.asarray(image)
    if src.ndim not in (2, 3):
        raise ValueError("expected a 2-D or 3-D image")
    if width <= 0 or height <= 0:
        raise ValueError("target size must be positive")
    h, w = src.shape[:2]
    if h == 0 or w == 0:
        raise ValueError("cannot resize an empty image")

    data = src.astype(np.float64)
    y0, y1, ay = _linear_coords(int(height), h)
    x0, x1, ax = _linear_coords(int(width), w)
    extra = (1,) * (src.ndim - 2)
    ay = ay.reshape((-1, 1) + extra)
    ax = ax.reshape((1, -1) + extra)

    rows = data[y0] * (1.0 - ay) + data[y1] * ay
    out = rows[:, x0] * (1.0 - ax) + rows[:, x1] * ax
    return _finish(out, src.dtype)


def _gaussian_kernel(ksize: int, sigma: float) -> np.ndarray:
    if sigma <= 0:
        sigma = 0.3 * ((ksize - 1) * 0.5 - 1) + 0.8
    offsets = np.arange(ksize) - (ksize - 1) / 2.0
    kernel = np.exp(-(offsets ** 2) / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def gaussian_blur(image, ksize, sigma) -> np.ndarray:
    """Separable Gaussian blur with reflect-101 borders."""
    src = np.asarray(image)
    if src.ndim not in (2, 3):
        raise ValueError("expected a 2-D or 3-D image")
    if ksize <= 0 or ksize % 2 == 0:
        raise ValueError("kernel size must be a positive odd number")

    kernel = _gaussian_kernel(int(ksize), float(sigma))
    radius = ksize // 2
    data = src.astype(np.float64)
    for axis in (0, 1):
        pad = [(0, 0)] * data.ndim
        pad[axis] = (radius, radius)
        padded = np.pad(data, pad, mode="reflect") if data.shape[axis] > 1 else np.pad(data, pad, mode="edge")
        n = data.shape[axis]
        acc = np.zeros_like(data)
        for i, weight in enumerate(kernel):
            acc += weight * np.take(padded, np.arange(i, i + n), axis=axis)
        data = acc
    return _finish(data, src.dtype)


def copy_make_border(image, border) -> np.ndarray:
    """Surround an image with a reflect-101 border of the given width."""
    src = np.asarray(image)
    if src.ndim not in (2, 3):
        raise ValueError("expected a 2-D or 3-D image")
    if border < 0:
        raise ValueError("border must not be negative")
    pad = [(border, border), (border, border)] + [(0, 0)] * (src.ndim - 2)
    mode = "reflect" if min(src.shape[:2]) > 1 else "edge"
    return np.pad(src, pad, mode=mode)


def fast_atan2(y, x) -> float:
    """Angle of the vector (x, y) in degrees, in the range [0, 360)."""
    angle = math.degrees(math.atan2(float(y), float(x)))
    if angle < 0.0:
        angle += 360.0
    return 0.0 if angle >= 360.0 else angle