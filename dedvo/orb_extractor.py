"""Oriented FAST keypoints with rotated BRIEF descriptors over a scale pyramid."""

from __future__ import annotations

import math
from collections import OrderedDict
from dataclasses import dataclass, field

import numpy as np

from .imgproc import KeyPoint, fast_atan2, fast_detect, gaussian_blur, resize_bilinear
from .orb_pattern import pattern_points

PATCH_SIZE = 31
HALF_PATCH_SIZE = 15
EDGE_THRESHOLD = 19
DESCRIPTOR_BYTES = 32
_CELL_SIZE = 30.0


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _circular_umax() -> list[int]:
    """End column of each row of the circular orientation patch."""
    umax = [0] * (HALF_PATCH_SIZE + 1)
    vmax = math.floor(HALF_PATCH_SIZE * math.sqrt(2.0) / 2 + 1)
    vmin = math.ceil(HALF_PATCH_SIZE * math.sqrt(2.0) / 2)
    hp2 = HALF_PATCH_SIZE * HALF_PATCH_SIZE
    for v in range(vmax + 1):
        umax[v] = round(math.sqrt(hp2 - v * v))
    # Make the patch symmetric about the diagonal.
    v0 = 0
    for v in range(HALF_PATCH_SIZE, vmin - 1, -1):
        while umax[v0] == umax[v0 + 1]:
            v0 += 1
        umax[v] = v0
        v0 += 1
    return umax


def _retain_best(keypoints: list[KeyPoint], n: int) -> list[KeyPoint]:
    if n <= 0:
        return []
    return sorted(keypoints, key=lambda kp: -kp.response)[:n]


def ic_angle(image, x, y, u_max) -> float:
    """Orientation in degrees of the intensity centroid of a circular patch."""
    img = np.asarray(image)
    if img.ndim != 2:
        raise ValueError("expected a single-channel 2-D image")
    half = len(u_max) - 1
    cx = int(round(float(x)))
    cy = int(round(float(y)))
    h, w = img.shape
    if cx - half < 0 or cx + half >= w or cy - half < 0 or cy + half >= h:
        raise ValueError("orientation patch reaches outside the image")

    data = img.astype(np.int64)
    u = np.arange(-half, half + 1)
    m_10 = int(np.dot(u, data[cy, cx - half:cx + half + 1]))
    m_01 = 0
    for v in range(1, half + 1):
        d = int(u_max[v])
        cols = slice(cx - d, cx + d + 1)
        plus = data[cy + v, cols]
        minus = data[cy - v, cols]
        m_10 += int(np.dot(np.arange(-d, d + 1), plus + minus))
        m_01 += v * int((plus - minus).sum())
    return fast_atan2(m_01, m_10)


def compute_orb_descriptor(keypoint, image, pattern) -> np.ndarray:
    """Binary descriptor of one keypoint, steered by its angle, as uint8 bytes."""
    img = np.asarray(image)
    if img.ndim != 2:
        raise ValueError("expected a single-channel 2-D image")
    pts = np.asarray(pattern)
    if pts.ndim != 2 or pts.shape[1] != 2 or pts.shape[0] % 16 != 0:
        raise ValueError("pattern must be an (16*k, 2) array of offsets")

    angle = np.float32(keypoint.angle) * np.float32(math.pi / 180.0)
    a = np.float32(math.cos(angle))
    b = np.float32(math.sin(angle))
    px = pts[:, 0].astype(np.float32)
    py = pts[:, 1].astype(np.float32)
    rows = np.rint(px * b + py * a).astype(np.intp) + int(round(float(keypoint.y)))
    cols = np.rint(px * a - py * b).astype(np.intp) + int(round(float(keypoint.x)))

    h, w = img.shape
    if rows.min() < 0 or rows.max() >= h or cols.min() < 0 or cols.max() >= w:
        raise ValueError("descriptor pattern reaches outside the image")

    values = img[rows, cols].astype(np.int32)
    bits = (values[0::2] < values[1::2]).reshape(-1, 8)
    return np.packbits(bits, axis=1, bitorder="little").ravel().astype(np.uint8)


def compute_descriptors(image, keypoints, pattern) -> np.ndarray:
    """Descriptors of all keypoints, one row of bytes per keypoint."""
    n_bytes = len(pattern) // 16
    if not keypoints:
        return np.zeros((0, n_bytes), dtype=np.uint8)
    return np.vstack([compute_orb_descriptor(kp, image, pattern) for kp in keypoints])


def compute_orientation(image, keypoints, umax) -> None:
    """Set the angle of every keypoint in place."""
    for kp in keypoints:
        kp.angle = ic_angle(image, kp.x, kp.y, umax)


@dataclass(eq=False)
class ExtractorNode:
    """A rectangular cell of the quadtree used to spread keypoints evenly."""

    ul: tuple[int, int] = (0, 0)
    ur: tuple[int, int] = (0, 0)
    bl: tuple[int, int] = (0, 0)
    br: tuple[int, int] = (0, 0)
    keys: list[KeyPoint] = field(default_factory=list)
    no_more: bool = False

    def divide(self) -> tuple["ExtractorNode", "ExtractorNode", "ExtractorNode", "ExtractorNode"]:
        """Split into four quadrants and share the keypoints among them."""
        half_x = math.ceil((self.ur[0] - self.ul[0]) / 2)
        half_y = math.ceil((self.br[1] - self.ul[1]) / 2)

        n1 = ExtractorNode(
            ul=self.ul,
            ur=(self.ul[0] + half_x, self.ul[1]),
            bl=(self.ul[0], self.ul[1] + half_y),
            br=(self.ul[0] + half_x, self.ul[1] + half_y),
        )
        n2 = ExtractorNode(ul=n1.ur, ur=self.ur, bl=n1.br, br=(self.ur[0], self.ul[1] + half_y))
        n3 = ExtractorNode(ul=n1.bl, ur=n1.br, bl=self.bl, br=(n1.br[0], self.bl[1]))
        n4 = ExtractorNode(ul=n3.ur, ur=n2.br, bl=n3.br, br=self.br)

        for kp in self.keys:
            if kp.x < n1.ur[0]:
                (n1 if kp.y < n1.br[1] else n3).keys.append(kp)
            elif kp.y < n1.br[1]:
                n2.keys.append(kp)
            else:
                n4.keys.append(kp)

        children = (n1, n2, n3, n4)
        for child in children:
            child.no_more = len(child.keys) == 1
        return children


class ORBExtractor:
    """Detects oriented FAST corners on a scale pyramid and describes them."""

    def __init__(self, n_features, scale_factor, n_levels, ini_th_fast, min_th_fast):
        if n_levels < 1:
            raise ValueError("at least one pyramid level is required")
        if scale_factor <= 1.0:
            raise ValueError("scale factor must be greater than one")
        if n_features < 0:
            raise ValueError("number of features must not be negative")
        self.n_features = int(n_features)
        self.scale_factor = float(scale_factor)
        self.n_levels = int(n_levels)
        self.ini_th_fast = int(ini_th_fast)
        self.min_th_fast = int(min_th_fast)

        self.scale_factors = [1.0]
        for _ in range(1, self.n_levels):
            self.scale_factors.append(self.scale_factors[-1] * self.scale_factor)
        self.level_sigma2 = [s * s for s in self.scale_factors]
        self.inv_scale_factors = [1.0 / s for s in self.scale_factors]
        self.inv_level_sigma2 = [1.0 / s for s in self.level_sigma2]

        factor = 1.0 / self.scale_factor
        desired = self.n_features * (1 - factor) / (1 - factor ** self.n_levels)
        per_level = []
        for _ in range(self.n_levels - 1):
            per_level.append(round(desired))
            desired *= factor
        per_level.append(max(self.n_features - sum(per_level), 0))
        self.features_per_level = per_level

        self.pattern = pattern_points()
        self.umax = _circular_umax()
        self.image_pyramid: list[np.ndarray] = []

    def _require_pyramid(self) -> None:
        if len(self.image_pyramid) != self.n_levels:
            raise RuntimeError("the image pyramid has not been computed")

    def compute_pyramid(self, image) -> list[np.ndarray]:
        """Build the scale pyramid of a grayscale image."""
        img = np.asarray(image)
        if img.ndim != 2:
            raise ValueError("expected a single-channel 2-D image")
        rows, cols = img.shape
        pyramid = [img]
        for level in range(1, self.n_levels):
            scale = self.inv_scale_factors[level]
            width = round(cols * scale)
            height = round(rows * scale)
            pyramid.append(resize_bilinear(pyramid[-1], width, height))
        self.image_pyramid = pyramid
        return pyramid

    def distribute_oct_tree(self, keypoints, min_x, max_x, min_y, max_y, n, level) -> list[KeyPoint]:
        """Keep at most about ``n`` well-spread keypoints, the strongest per quadtree cell."""
        if max_x <= min_x or max_y <= min_y:
            raise ValueError("distribution region is empty")
        n_ini = max(1, _round_half_away((max_x - min_x) / (max_y - min_y)))
        h_x = (max_x - min_x) / n_ini
        span_y = max_y - min_y

        initial = [
            ExtractorNode(
                ul=(int(h_x * i), 0),
                ur=(int(h_x * (i + 1)), 0),
                bl=(int(h_x * i), span_y),
                br=(int(h_x * (i + 1)), span_y),
            )
            for i in range(n_ini)
        ]
        for kp in keypoints:
            idx = min(max(int(kp.x / h_x), 0), n_ini - 1)
            initial[idx].keys.append(kp)

        nodes: OrderedDict[int, ExtractorNode] = OrderedDict()
        for node in initial:
            if node.keys:
                node.no_more = len(node.keys) == 1
                nodes[id(node)] = node

        def split(node: ExtractorNode, expand: list[ExtractorNode]) -> None:
            for child in node.divide():
                if child.keys:
                    nodes[id(child)] = child
                    nodes.move_to_end(id(child), last=False)
                    if len(child.keys) > 1:
                        expand.append(child)
            del nodes[id(node)]

        finished = False
        while not finished:
            prev_size = len(nodes)
            to_expand: list[ExtractorNode] = []
            for node in list(nodes.values()):
                if not node.no_more:
                    split(node, to_expand)

            if len(nodes) >= n or len(nodes) == prev_size:
                finished = True
            elif len(nodes) + len(to_expand) * 3 > n:
                while not finished:
                    prev_size = len(nodes)
                    previous = sorted(to_expand, key=lambda nd: len(nd.keys))
                    to_expand = []
                    for node in reversed(previous):
                        split(node, to_expand)
                        if len(nodes) >= n:
                            break
                    if len(nodes) >= n or len(nodes) == prev_size:
                        finished = True

        return [max(node.keys, key=lambda kp: kp.response) for node in nodes.values()]

    def compute_keypoints_oct_tree(self) -> list[list[KeyPoint]]:
        """Detect keypoints on every level, spread with a quadtree."""
        self._require_pyramid()
        all_keypoints: list[list[KeyPoint]] = []
        for level, img in enumerate(self.image_pyramid):
            rows, cols = img.shape
            min_bx = EDGE_THRESHOLD - 3
            min_by = min_bx
            max_bx = cols - EDGE_THRESHOLD + 3
            max_by = rows - EDGE_THRESHOLD + 3
            width = float(max_bx - min_bx)
            height = float(max_by - min_by)
            n_cols = int(width / _CELL_SIZE)
            n_rows = int(height / _CELL_SIZE)
            if n_cols < 1 or n_rows < 1:
                all_keypoints.append([])
                continue
            w_cell = math.ceil(width / n_cols)
            h_cell = math.ceil(height / n_rows)

            to_distribute: list[KeyPoint] = []
            for i in range(n_rows):
                ini_y = min_by + i * h_cell
                if ini_y >= max_by - 3:
                    continue
                max_y = min(ini_y + h_cell + 6, max_by)
                for j in range(n_cols):
                    ini_x = min_bx + j * w_cell
                    if ini_x >= max_bx - 6:
                        continue
                    max_x = min(ini_x + w_cell + 6, max_bx)
                    cell = img[ini_y:max_y, ini_x:max_x]
                    found = fast_detect(cell, self.ini_th_fast, True)
                    if not found:
                        found = fast_detect(cell, self.min_th_fast, True)
                    for kp in found:
                        kp.x += j * w_cell
                        kp.y += i * h_cell
                        to_distribute.append(kp)

            keypoints = self.distribute_oct_tree(
                to_distribute, min_bx, max_bx, min_by, max_by,
                self.features_per_level[level], level,
            )
            size = float(int(PATCH_SIZE * self.scale_factors[level]))
            for kp in keypoints:
                kp.x += min_bx
                kp.y += min_by
                kp.octave = level
                kp.size = size
            all_keypoints.append(keypoints)

        for img, keypoints in zip(self.image_pyramid, all_keypoints):
            compute_orientation(img, keypoints, self.umax)
        return all_keypoints

    def compute_keypoints_old(self) -> list[list[KeyPoint]]:
        """Detect keypoints on every level using a fixed grid with quota redistribution."""
        self._require_pyramid()
        base = self.image_pyramid[0]
        image_ratio = base.shape[1] / base.shape[0]
        all_keypoints: list[list[KeyPoint]] = []

        for level, img in enumerate(self.image_pyramid):
            n_desired = self.features_per_level[level]
            level_cols = int(math.sqrt(n_desired / (5 * image_ratio)))
            level_rows = int(image_ratio * level_cols)
            rows, cols = img.shape
            min_bx = EDGE_THRESHOLD
            min_by = EDGE_THRESHOLD
            max_bx = cols - EDGE_THRESHOLD
            max_by = rows - EDGE_THRESHOLD
            width = max_bx - min_bx
            height = max_by - min_by
            if level_cols < 1 or level_rows < 1 or width <= 0 or height <= 0:
                all_keypoints.append([])
                continue

            cell_w = math.ceil(width / level_cols)
            cell_h = math.ceil(height / level_rows)
            n_cells = level_rows * level_cols
            per_cell = math.ceil(n_desired / n_cells)

            cells = [[[] for _ in range(level_cols)] for _ in range(level_rows)]
            to_retain = [[0] * level_cols for _ in range(level_rows)]
            totals = [[0] * level_cols for _ in range(level_rows)]
            no_more = [[False] * level_cols for _ in range(level_rows)]
            ini_x_col = [0] * level_cols
            ini_y_row = [0] * level_rows
            n_no_more = 0
            to_distribute = 0

            h_y = cell_h + 6
            for i in range(level_rows):
                ini_y = min_by + i * cell_h - 3
                ini_y_row[i] = ini_y
                if i == level_rows - 1:
                    h_y = max_by + 3 - ini_y
                    if h_y <= 0:
                        continue
                h_x = cell_w + 6
                for j in range(level_cols):
                    if i == 0:
                        ini_x = min_bx + j * cell_w - 3
                        ini_x_col[j] = ini_x
                    else:
                        ini_x = ini_x_col[j]
                    if j == level_cols - 1:
                        h_x = max_bx + 3 - ini_x
                        if h_x <= 0:
                            continue
                    cell_img = img[ini_y:ini_y + h_y, ini_x:ini_x + h_x]
                    found = fast_detect(cell_img, self.ini_th_fast, True)
                    if len(found) <= 3:
                        found = fast_detect(cell_img, self.min_th_fast, True)
                    cells[i][j] = found
                    n_keys = len(found)
                    totals[i][j] = n_keys
                    if n_keys > per_cell:
                        to_retain[i][j] = per_cell
                    else:
                        to_retain[i][j] = n_keys
                        to_distribute += per_cell - n_keys
                        no_more[i][j] = True
                        n_no_more += 1

            while to_distribute > 0 and n_no_more < n_cells:
                new_per_cell = per_cell + math.ceil(to_distribute / (n_cells - n_no_more))
                to_distribute = 0
                for i in range(level_rows):
                    for j in range(level_cols):
                        if no_more[i][j]:
                            continue
                        if totals[i][j] > new_per_cell:
                            to_retain[i][j] = new_per_cell
                        else:
                            to_retain[i][j] = totals[i][j]
                            to_distribute += new_per_cell - totals[i][j]
                            no_more[i][j] = True
                            n_no_more += 1

            size = float(int(PATCH_SIZE * self.scale_factors[level]))
            keypoints: list[KeyPoint] = []
            for i in range(level_rows):
                for j in range(level_cols):
                    for kp in _retain_best(cells[i][j], to_retain[i][j]):
                        kp.x += ini_x_col[j]
                        kp.y += ini_y_row[i]
                        kp.octave = level
                        kp.size = size
                        keypoints.append(kp)

            if len(keypoints) > n_desired:
                keypoints = _retain_best(keypoints, n_desired)
            all_keypoints.append(keypoints)

        for img, keypoints in zip(self.image_pyramid, all_keypoints):
            compute_orientation(img, keypoints, self.umax)
        return all_keypoints

    def __call__(self, image, mask=None) -> tuple[list[KeyPoint], np.ndarray]:
        """Return the keypoints of an 8-bit grayscale image and their descriptors.

        The mask is accepted but not applied.
        """
        img = np.asarray(image)
        empty = np.zeros((0, DESCRIPTOR_BYTES), dtype=np.uint8)
        if img.size == 0:
            return [], empty
        if img.ndim != 2 or img.dtype != np.uint8:
            raise ValueError("expected an 8-bit single-channel image")

        self.compute_pyramid(img)
        all_keypoints = self.compute_keypoints_oct_tree()

        keypoints: list[KeyPoint] = []
        blocks: list[np.ndarray] = []
        for level, level_keypoints in enumerate(all_keypoints):
            if not level_keypoints:
                continue
            working = gaussian_blur(self.image_pyramid[level], 7, 2.0)
            blocks.append(compute_descriptors(working, level_keypoints, self.pattern))
            if level != 0:
                scale = self.scale_factors[level]
                for kp in level_keypoints:
                    kp.x *= scale
                    kp.y *= scale
            keypoints.extend(level_keypoints)

        descriptors = np.vstack(blocks) if blocks else empty
        return keypoints, descriptors