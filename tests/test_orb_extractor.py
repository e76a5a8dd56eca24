import numpy as np
import pytest

from dedvo.imgproc import KeyPoint
from dedvo.orb_extractor import (
    ExtractorNode,
    ORBExtractor,
    compute_descriptors,
    compute_orb_descriptor,
    compute_orientation,
    ic_angle,
)
from dedvo.orb_pattern import pattern_points


@pytest.fixture
def block_image():
    rng = np.random.default_rng(0)
    cells = rng.integers(0, 2, size=(15, 15))
    img = np.kron(cells, np.ones((16, 16))) * 200 + 30
    return img.astype(np.uint8)


@pytest.fixture
def extractor():
    return ORBExtractor(500, 1.2, 4, 20, 7)


def _x_gradient(size=40):
    return np.tile((np.arange(size) * 3).astype(np.uint8), (size, 1))


def test_umax_is_symmetric_circle(extractor):
    assert extractor.umax == [15, 15, 15, 15, 14, 14, 14, 13, 13, 12, 11, 10, 9, 8, 6, 3]


def test_scale_factors_and_sigmas(extractor):
    assert extractor.scale_factors[0] == 1.0
    assert extractor.scale_factors[1] == pytest.approx(1.2)
    for s, s2, inv, inv2 in zip(
        extractor.scale_factors,
        extractor.level_sigma2,
        extractor.inv_scale_factors,
        extractor.inv_level_sigma2,
    ):
        assert s2 == pytest.approx(s * s)
        assert inv == pytest.approx(1.0 / s)
        assert inv2 == pytest.approx(1.0 / s2)


def test_features_per_level_sum_and_order():
    ext = ORBExtractor(2000, 1.2, 8, 20, 7)
    per_level = ext.features_per_level
    assert len(per_level) == 8
    assert sum(per_level) == 2000
    assert all(a >= b for a, b in zip(per_level[:-2], per_level[1:-1]))


@pytest.mark.parametrize("kwargs", [
    dict(n_features=100, scale_factor=1.0, n_levels=4, ini_th_fast=20, min_th_fast=7),
    dict(n_features=100, scale_factor=1.2, n_levels=0, ini_th_fast=20, min_th_fast=7),
])
def test_invalid_construction(kwargs):
    with pytest.raises(ValueError):
        ORBExtractor(**kwargs)


def test_node_divide_spreads_keys():
    keys = [KeyPoint(1, 1), KeyPoint(6, 1), KeyPoint(1, 6), KeyPoint(6, 6)]
    node = ExtractorNode(ul=(0, 0), ur=(10, 0), bl=(0, 10), br=(10, 10), keys=list(keys))
    n1, n2, n3, n4 = node.divide()
    assert n1.keys == [keys[0]]
    assert n2.keys == [keys[1]]
    assert n3.keys == [keys[2]]
    assert n4.keys == [keys[3]]
    assert all(child.no_more for child in (n1, n2, n3, n4))
    assert n1.br == n4.ul
    assert n4.br == node.br


def test_distribute_keeps_separated_points(extractor):
    keys = [KeyPoint(2, 2), KeyPoint(50, 2), KeyPoint(2, 50), KeyPoint(50, 50), KeyPoint(25, 25)]
    result = extractor.distribute_oct_tree(keys, 0, 60, 0, 60, 100, 0)
    assert sorted((kp.x, kp.y) for kp in result) == sorted((kp.x, kp.y) for kp in keys)


def test_distribute_picks_strongest_of_duplicates(extractor):
    weak = KeyPoint(10, 10, response=1.0)
    strong = KeyPoint(10, 10, response=5.0)
    other = KeyPoint(40, 40, response=2.0)
    result = extractor.distribute_oct_tree([weak, strong, other], 0, 60, 0, 60, 10, 0)
    assert strong in result
    assert weak not in result
    assert other in result


def test_distribute_result_is_subset(extractor):
    rng = np.random.default_rng(3)
    keys = [KeyPoint(float(x), float(y), response=float(r))
            for x, y, r in zip(rng.integers(0, 90, 60), rng.integers(0, 60, 60), rng.random(60))]
    result = extractor.distribute_oct_tree(keys, 0, 90, 0, 60, 10, 0)
    assert 0 < len(result) <= len(keys)
    assert all(any(kp is k for k in keys) for kp in result)


def test_distribute_rejects_empty_region(extractor):
    with pytest.raises(ValueError):
        extractor.distribute_oct_tree([], 0, 10, 5, 5, 10, 0)


def test_ic_angle_horizontal_and_vertical_gradients(extractor):
    img = _x_gradient()
    assert ic_angle(img, 20, 20, extractor.umax) == 0.0
    assert ic_angle(img.T.copy(), 20, 20, extractor.umax) == 90.0


def test_ic_angle_near_border_raises(extractor):
    with pytest.raises(ValueError):
        ic_angle(_x_gradient(), 5, 20, extractor.umax)


def test_compute_orientation_sets_angles(extractor):
    kps = [KeyPoint(20, 20), KeyPoint(21, 19)]
    compute_orientation(_x_gradient(), kps, extractor.umax)
    assert [kp.angle for kp in kps] == [0.0, 0.0]


def test_descriptor_of_flat_image_is_zero():
    img = np.full((50, 50), 100, dtype=np.uint8)
    desc = compute_orb_descriptor(KeyPoint(25, 25, angle=30.0), img, pattern_points())
    assert desc.shape == (32,)
    assert not desc.any()


def test_descriptor_of_inverted_image_has_no_common_bits():
    rng = np.random.default_rng(1)
    img = rng.integers(0, 256, size=(50, 50), dtype=np.uint8)
    kp = KeyPoint(25, 25, angle=45.0)
    d1 = compute_orb_descriptor(kp, img, pattern_points())
    d2 = compute_orb_descriptor(kp, 255 - img, pattern_points())
    assert d1.any()
    assert not (d1 & d2).any()


def test_descriptor_out_of_bounds_raises():
    img = np.zeros((40, 40), dtype=np.uint8)
    with pytest.raises(ValueError):
        compute_orb_descriptor(KeyPoint(3, 3, angle=0.0), img, pattern_points())


def test_compute_descriptors_matches_single_calls():
    rng = np.random.default_rng(2)
    img = rng.integers(0, 256, size=(60, 60), dtype=np.uint8)
    kps = [KeyPoint(25, 25, angle=10.0), KeyPoint(35, 30, angle=200.0)]
    pattern = pattern_points()
    block = compute_descriptors(img, kps, pattern)
    assert block.shape == (2, 32)
    for row, kp in zip(block, kps):
        assert np.array_equal(row, compute_orb_descriptor(kp, img, pattern))
    assert compute_descriptors(img, [], pattern).shape == (0, 32)


def test_compute_pyramid_shapes(extractor, block_image):
    pyramid = extractor.compute_pyramid(block_image)
    assert len(pyramid) == 4
    assert np.array_equal(pyramid[0], block_image)
    for level, img in enumerate(pyramid):
        assert img.shape[0] == round(240 * extractor.inv_scale_factors[level])
    assert all(a.shape[0] > b.shape[0] for a, b in zip(pyramid, pyramid[1:]))


def test_keypoints_require_pyramid(extractor):
    with pytest.raises(RuntimeError):
        extractor.compute_keypoints_oct_tree()
    with pytest.raises(RuntimeError):
        extractor.compute_keypoints_old()


def test_oct_tree_keypoints(extractor, block_image):
    extractor.compute_pyramid(block_image)
    levels = extractor.compute_keypoints_oct_tree()
    assert len(levels) == 4
    assert levels[0]
    for level, kps in enumerate(levels):
        cols = extractor.image_pyramid[level].shape[1]
        assert len(kps) <= max(extractor.features_per_level[level], 1) * 4
        for kp in kps:
            assert kp.octave == level
            assert 16 <= kp.x < cols - 16
            assert 0.0 <= kp.angle < 360.0
            assert kp.size == float(int(31 * extractor.scale_factors[level]))


def test_old_keypoints(extractor, block_image):
    extractor.compute_pyramid(block_image)
    levels = extractor.compute_keypoints_old()
    assert len(levels) == 4
    assert levels[0]
    for level, kps in enumerate(levels):
        rows, cols = extractor.image_pyramid[level].shape
        assert len(kps) <= extractor.features_per_level[level]
        for kp in kps:
            assert kp.octave == level
            assert 0 <= kp.x < cols and 0 <= kp.y < rows


def test_call_extracts_keypoints_and_descriptors(extractor, block_image):
    keypoints, descriptors = extractor(block_image, None)
    assert keypoints
    assert descriptors.shape == (len(keypoints), 32)
    assert descriptors.dtype == np.uint8
    for kp in keypoints:
        assert 0 <= kp.x < 240 and 0 <= kp.y < 240
        assert 0 <= kp.octave < 4
    again_kps, again_desc = extractor(block_image, None)
    assert len(again_kps) == len(keypoints)
    assert np.array_equal(again_desc, descriptors)


def test_call_on_empty_image(extractor):
    keypoints, descriptors = extractor(np.zeros((0, 0), dtype=np.uint8), None)
    assert keypoints == []
    assert descriptors.shape == (0, 32)


def test_call_rejects_float_image(extractor):
    with pytest.raises(ValueError):
        extractor(np.zeros((64, 64), dtype=np.float32), None)