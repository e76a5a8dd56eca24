import numpy as np

from dedvo.orb_pattern import pattern_points


def test_pattern_has_512_points_of_two_coordinates():
    points = pattern_points()
    assert points.shape == (512, 2)


def test_first_test_pair_matches_table():
    points = pattern_points()
    assert points[0].tolist() == [8, -3]
    assert points[1].tolist() == [9, 5]


def test_last_test_pair_matches_table():
    points = pattern_points()
    assert points[-2].tolist() == [-1, -6]
    assert points[-1].tolist() == [0, -11]


def test_points_stay_inside_the_patch():
    points = pattern_points()
    assert points.min() >= -13
    assert points.max() <= 12


def test_each_call_returns_independent_copy():
    first = pattern_points()
    first[0] = [100, 100]
    second = pattern_points()
    assert second[0].tolist() == [8, -3]
    assert not np.shares_memory(first, second)