import numpy as np
import pytest

from dedvo.frame import Frame, Point, depth_color
from dedvo.keyframe import Keyframe, descriptor_rows


class PinholeCamera:
    def __init__(self, width=64, height=48, fx=50.0, fy=50.0, cx=32.0, cy=24.0):
        self.width, self.height = width, height
        self.fx, self.fy, self.cx, self.cy = fx, fy, cx, cy

    def xyz_to_uv(self, xyz):
        x, y, z = xyz
        return np.array([self.fx * x / z + self.cx, self.fy * y / z + self.cy])

    def is_in_image(self, uv, border, scale=1.0):
        u, v = uv[0] * scale, uv[1] * scale
        return (border <= u < self.width * scale - border
                and border <= v < self.height * scale - border)


class CountingVocabulary:
    def __init__(self):
        self.calls = []

    def transform(self, descriptors, levels_up):
        self.calls.append((len(descriptors), levels_up))
        return {3: 0.5}, {0: [0]}


def ramp_image():
    return np.tile((np.arange(64) * 4).astype(np.uint8), (48, 1))


def line_points(n=20):
    return [Point(x, 0.0, 2.0) for x in np.linspace(-0.4, 0.4, n)]


def make_keyframe(image, points, vocabulary=None):
    cam = PinholeCamera()
    frame = Frame(image, points, cam, num_levels=2, max_level=1)
    return Keyframe(frame, cam, vocabulary, 1)


def test_descriptor_rows():
    desc = np.arange(96, dtype=np.uint8).reshape(3, 32)
    rows = descriptor_rows(desc)
    assert len(rows) == 3
    assert all(np.array_equal(r, desc[i]) for i, r in enumerate(rows))


def test_sampling_keeps_one_point_per_textured_bucket():
    kf = make_keyframe(ramp_image(), line_points(20))
    assert len(kf.pointcloud) == 2
    frame_ids = {id(p) for p in kf.frame.pointcloud}
    assert all(id(p) in frame_ids for p in kf.pointcloud)


def test_sampling_drops_flat_regions():
    kf = make_keyframe(np.full((48, 64), 128, dtype=np.uint8), line_points(20))
    assert kf.pointcloud == []


def test_visible_ratio_full_and_none():
    kf = make_keyframe(ramp_image(), line_points(20))
    other = make_keyframe(ramp_image(), line_points(20))
    assert kf.visible_ratio(other) == pytest.approx(1.0)
    moved = np.eye(4)
    moved[0, 3] = 100.0
    other.frame.twc = moved
    assert kf.visible_ratio(other) == 0.0


def test_visible_ratio_of_empty_keyframe_is_nan():
    kf = make_keyframe(ramp_image(), line_points(20))
    empty = make_keyframe(ramp_image(), [])
    assert empty.pointcloud == []
    ratio = kf.visible_ratio(empty)
    assert ratio == pytest.approx(float("nan"), nan_ok=True)


def test_compute_bow_runs_once():
    vocab = CountingVocabulary()
    kf = make_keyframe(ramp_image(), [], vocab)
    kf.compute_bow()
    kf.compute_bow()
    assert kf.bow_vec == {3: 0.5}
    assert vocab.calls == [(0, 4)]


def test_compute_bow_without_vocabulary():
    kf = make_keyframe(ramp_image(), [])
    with pytest.raises(RuntimeError):
        kf.compute_bow()


def test_extract_orb_descriptor_per_keypoint():
    rng = np.random.default_rng(1)
    img = rng.integers(0, 256, size=(120, 160), dtype=np.uint8)
    cam = PinholeCamera(160, 120, 50.0, 50.0, 80.0, 60.0)
    kf = Keyframe(Frame(img, [], cam, num_levels=1, max_level=0), cam)
    kf.extract_orb()
    assert len(kf.keypoints) > 0
    assert kf.descriptors.shape == (len(kf.keypoints), 32)


def test_render_points_uses_sampled_points():
    kf = make_keyframe(ramp_image(), line_points(50))
    assert len(kf.pointcloud) == 5
    out = kf.render_points(np.zeros((48, 64), dtype=np.float32), 0)
    u, v = (int(c) for c in kf.camera.xyz_to_uv(kf.pointcloud[4].xyz))
    assert np.allclose(out[v, u], depth_color(kf.pointcloud[4].z))