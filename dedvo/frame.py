"""A camera image with its image pyramid, its pose and the lidar points seen in it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

import numpy as np

from .config import get_config

_BORDER = 4


@dataclass
class Point:
    """A coloured 3-D point in the camera frame; ``a == 0`` marks a point outside the image."""

    x: float
    y: float
    z: float
    r: int = 0
    g: int = 0
    b: int = 0
    a: int = 255

    @property
    def xyz(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)


def _gray_u8_or_float(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        if img.dtype != np.uint8:
            raise ValueError("a single-channel image must be 8-bit")
        return img
    if img.ndim == 3 and img.shape[2] in (3, 4):
        data = img[..., :3].astype(np.float64)
        gray = 0.114 * data[..., 0] + 0.587 * data[..., 1] + 0.299 * data[..., 2]
        if img.dtype == np.uint8:
            return np.clip(np.rint(gray), 0, 255).astype(np.uint8)
        return gray.astype(np.float32)
    raise ValueError("expected a grayscale or BGR image")


def to_gray_float(image) -> np.ndarray:
    """Grayscale version of an 8-bit gray or BGR image as float32 scaled by 1/255."""
    img = np.asarray(image)
    if img.size == 0:
        raise ValueError("input image is empty")
    gray = _gray_u8_or_float(img)
    return (gray.astype(np.float64) / 255.0).astype(np.float32)


def _to_color_float(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        color = np.repeat(img[..., None], 3, axis=2)
    else:
        color = img[..., :3]
    return (color.astype(np.float64) / 255.0).astype(np.float32)


def pyr_down_mean(image) -> np.ndarray:
    """Halve an image by averaging each 2x2 block; odd trailing rows and columns are dropped."""
    img = np.asarray(image)
    if img.ndim != 2:
        raise ValueError("expected a single-channel 2-D image")
    h, w = img.shape[0] // 2, img.shape[1] // 2
    src = img[: 2 * h, : 2 * w].astype(np.float32)
    out = (src[0::2, 0::2] + src[0::2, 1::2] + src[1::2, 0::2] + src[1::2, 1::2]) / np.float32(4.0)
    return out.astype(img.dtype) if np.issubdtype(img.dtype, np.floating) else out


def create_image_pyramid(image, n_levels) -> list[np.ndarray]:
    """Pyramid whose level 0 is the image and every further level is half the previous one."""
    if n_levels < 1:
        raise ValueError("a pyramid needs at least one level")
    pyramid = [np.asarray(image)]
    for _ in range(1, int(n_levels)):
        pyramid.append(pyr_down_mean(pyramid[-1]).astype(np.float32))
    return pyramid


def depth_color(depth, v_min=1.0, v_max=50.0) -> tuple[float, float, float]:
    """Jet-like (r, g, b) colour in [0, 1] for a depth clamped to [v_min, v_max]."""
    dv = v_max - v_min
    v = min(max(float(depth), v_min), v_max)
    r = g = b = 1.0
    if v < v_min + 0.25 * dv:
        r = 0.0
        g = 4 * (v - v_min) / dv
    elif v < v_min + 0.5 * dv:
        r = 0.0
        b = 1 + 4 * (v_min + 0.25 * dv - v) / dv
    elif v < v_min + 0.75 * dv:
        r = 4 * (v - v_min - 0.5 * dv) / dv
        b = 0.0
    else:
        g = 1 + 4 * (v_min + 0.75 * dv - v) / dv
        b = 0.0
    return (r, g, b)


def _canvas(image) -> np.ndarray:
    img = np.asarray(image)
    if img.ndim == 2:
        return np.repeat(img[..., None], 3, axis=2).astype(np.float32)
    return img.astype(np.float32, copy=True)


def _draw_disk(canvas: np.ndarray, u: int, v: int, radius: int, color: Sequence[float]) -> None:
    h, w = canvas.shape[:2]
    y0, y1 = max(v - radius, 0), min(v + radius, h - 1)
    x0, x1 = max(u - radius, 0), min(u + radius, w - 1)
    if y0 > y1 or x0 > x1:
        return
    yy, xx = np.mgrid[y0:y1 + 1, x0:x1 + 1]
    mask = (yy - v) ** 2 + (xx - u) ** 2 <= radius * radius
    value = np.zeros(canvas.shape[2], dtype=canvas.dtype)
    value[:3] = color[: min(3, canvas.shape[2])]
    canvas[y0:y1 + 1, x0:x1 + 1][mask] = value


def _draw_points(image, points: Iterable[Point], camera, num_level: int, *,
                 every: int = 5, radius: int = 3, v_min: float = 1.0,
                 v_max: float = 50.0) -> np.ndarray:
    canvas = _canvas(image)
    scale = 1.0 / (1 << int(num_level))
    for n, point in enumerate(points, start=1):
        if n % every:
            continue
        uv = np.asarray(camera.xyz_to_uv(point.xyz), dtype=np.float64) * scale
        _draw_disk(canvas, int(uv[0]), int(uv[1]), radius, depth_color(point.z, v_min, v_max))
    return canvas


class Frame:
    """An image frame: intensity pyramid, coloured point cloud and world pose ``twc``.

    ``camera`` must provide ``xyz_to_uv(xyz)`` and ``is_in_image(uv, border, scale)``.
    """

    def __init__(self, image, pointcloud=(), camera=None, timestamp=0, num_levels=None, max_level=None):
        if num_levels is None or max_level is None:
            cfg = get_config()
            num_levels = cfg.num_levels if num_levels is None else num_levels
            max_level = cfg.max_level if max_level is None else max_level
        self.timestamp = int(timestamp)
        self.camera = camera
        self.num_levels = int(num_levels)
        self.max_level = int(max_level)
        self._twc = np.eye(4)
        self._twc_lock = threading.Lock()

        points = [replace(p) for p in pointcloud]
        if points and camera is None:
            raise ValueError("a camera model is required to colour the point cloud")

        img = np.asarray(image)
        if img.size == 0:
            raise ValueError("input image is empty")
        gray = to_gray_float(img)
        color = _to_color_float(img)
        self.pyramid = create_image_pyramid(gray, self.num_levels)
        self.pointcloud = self._colorize(points, color)

    def _colorize(self, points: list[Point], color: np.ndarray) -> list[Point]:
        scale = 1.0 / (1 << self.max_level)
        kept = []
        for point in points:
            uv = np.asarray(self.camera.xyz_to_uv(point.xyz), dtype=np.float64)
            if self.camera.is_in_image(uv, _BORDER, scale):
                bgr = color[int(uv[1]), int(uv[0])]
                point.r = int(bgr[2] * 255.0)
                point.g = int(bgr[1] * 255.0)
                point.b = int(bgr[0] * 255.0)
            else:
                point.r, point.g, point.b, point.a = 0, 255, 0, 0
            if point.z > 0.0:
                kept.append(point)
        return kept

    @property
    def twc(self) -> np.ndarray:
        with self._twc_lock:
            return self._twc.copy()

    @twc.setter
    def twc(self, pose) -> None:
        mat = np.asarray(pose, dtype=np.float64)
        if mat.shape != (4, 4):
            raise ValueError("a pose must be a 4x4 matrix")
        with self._twc_lock:
            self._twc = mat.copy()

    def level(self, idx) -> np.ndarray:
        """Pyramid image at level ``idx``."""
        if idx < 0:
            raise IndexError("pyramid level must not be negative")
        return self.pyramid[idx]

    def render_points(self, image, num_level) -> np.ndarray:
        """Copy of ``image`` with every fifth point drawn in a depth colour."""
        return _draw_points(image, self.pointcloud, self.camera, num_level,
                            every=5, radius=3, v_min=1.0, v_max=50.0)