"""Keyframes: frames chosen for mapping, with sampled points and bag-of-words data."""

from __future__ import annotations

import numpy as np

from .conversion import invert_pose, transform_points
from .frame import Frame, Point, _draw_points
from .orb_extractor import DESCRIPTOR_BYTES, ORBExtractor

_BUCKET_SIZE = 10
_GRADIENT_THRESHOLD = 6.25 / (255.0 * 255.0)
_VISIBILITY_BORDER = 4


def descriptor_rows(descriptors) -> list[np.ndarray]:
    """Split a descriptor matrix into one array per row."""
    return [row for row in np.asarray(descriptors)]


class Keyframe:
    """A frame kept for mapping and loop detection.

    ``vocabulary`` must provide ``transform(descriptors, levels_up)`` returning a
    ``(bow_vector, feature_vector)`` pair, with the bag-of-words vector a mapping
    from word id to weight.
    """

    def __init__(self, frame: Frame, camera, vocabulary=None, id=-1):
        self.id = int(id)
        self.frame = frame
        self.camera = camera
        self.vocabulary = vocabulary
        self.first_connection = True
        self.parent: Keyframe | None = None
        self.child: Keyframe | None = None
        self.loop_query = 0
        self.num_loop_word = 0
        self.loop_score = 0.0
        self.keypoints: list = []
        self.descriptors = np.zeros((0, DESCRIPTOR_BYTES), dtype=np.uint8)
        self.bow_vec: dict = {}
        self.feat_vec: dict = {}
        self.pointcloud: list[Point] = []
        self.point_sampling()

    def point_sampling(self) -> None:
        """Keep the strongest-gradient point of every bucket of ten visible points."""
        img = self.frame.level(0)
        bucket: list[tuple[float, Point]] = []
        for point in self.frame.pointcloud:
            uv = np.asarray(self.camera.xyz_to_uv(point.xyz), dtype=np.float64)
            if not (self.frame.camera.is_in_image(uv, _VISIBILITY_BORDER)
                    and point.z > 0 and point.a != 0):
                continue
            u, v = int(uv[0]), int(uv[1])
            dx = 0.5 * (float(img[v, u + 1]) - float(img[v, u - 1]))
            dy = 0.5 * (float(img[v + 1, u]) - float(img[v - 1, u]))
            bucket.append((dx * dx + dy * dy, point))
            if len(bucket) == _BUCKET_SIZE:
                magnitude, best = max(bucket, key=lambda entry: entry[0])
                if magnitude > _GRADIENT_THRESHOLD:
                    self.pointcloud.append(best)
                bucket.clear()

    def visible_ratio(self, other: "Keyframe") -> float:
        """Fraction of ``other``'s sampled points that project into this keyframe's image."""
        n = len(other.pointcloud)
        if n == 0:
            return float("nan")
        tij = invert_pose(self.frame.twc) @ other.frame.twc
        rows, cols = self.frame.level(0).shape[:2]
        border = _VISIBILITY_BORDER
        visible = 0
        for point in other.pointcloud:
            xyz = transform_points(tij, point.xyz)
            if xyz[2] <= 0:
                continue
            uv = np.asarray(self.camera.xyz_to_uv(xyz), dtype=np.float64)
            u, v = int(uv[0]), int(uv[1])
            if u - border < 0 or u + border > cols or v - border < 0 or v + border > rows:
                continue
            visible += 1
        return visible / n

    def extract_orb(self) -> None:
        """Detect ORB keypoints and descriptors on the full-resolution image."""
        extractor = ORBExtractor(2000, 1.2, 8, 20, 7)
        gray = np.clip(np.rint(self.frame.level(0) * 255.0), 0, 255).astype(np.uint8)
        self.keypoints, self.descriptors = extractor(gray, None)

    def compute_bow(self) -> None:
        """Compute the bag-of-words vectors once, from the ORB descriptors."""
        if self.bow_vec:
            return
        if self.vocabulary is None:
            raise RuntimeError("no vocabulary to compute bag-of-words vectors with")
        self.bow_vec, self.feat_vec = self.vocabulary.transform(
            descriptor_rows(self.descriptors), 4
        )

    def render_points(self, image, num_level) -> np.ndarray:
        """Copy of ``image`` with every fifth sampled point drawn in a depth colour."""
        return _draw_points(image, self.pointcloud, self.camera, num_level,
                            every=5, radius=3, v_min=1.0, v_max=50.0)