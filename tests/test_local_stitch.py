"""Tests for blend point ranking and local stitch selection"""

import numpy as np
import pytest

from mosaic2d.core.frame import NEXT, PREV
from mosaic2d.core.local_stitch import BlendPoint, find_local_stitch, rank_blend_points
from tests.conftest import make_frame


def test_blend_point_distance():
    bp = BlendPoint(0, (0.0, 0.0), (3.0, 4.0))
    assert bp.distance == pytest.approx(5.0)


def test_blend_point_explicit_distance():
    assert BlendPoint(1, (0.0, 0.0), (3.0, 4.0), distance=2.0).distance == 2.0


def test_blend_points_order_by_distance():
    near = BlendPoint(0, (0, 0), (1, 0))
    far = BlendPoint(1, (0, 0), (10, 0))
    assert near < far
    assert sorted([far, near]) == [near, far]
    assert max(near, far) is far


def test_blend_point_is_immutable():
    bp = BlendPoint(0, (0, 0), (1, 1))
    with pytest.raises(AttributeError):
        bp.distance = 0.0


def test_rank_uses_shorter_list():
    ranked = rank_blend_points(np.zeros((5, 2)), np.ones((3, 2)))
    assert len(ranked) == 3


def frames_with_pairs(n):
    obj, scene = make_frame(), make_frame()
    prev = np.column_stack([np.arange(n, dtype=np.float64) * 10, np.zeros(n)])
    # pair i is i pixels apart
    nxt = prev + np.column_stack([np.arange(n, dtype=np.float64)[::-1], np.zeros(n)])
    obj.grid_points[PREV] = prev
    scene.grid_points[NEXT] = nxt
    return obj, scene, prev


def test_best_five_percent_selected():
    obj, scene, prev = frames_with_pairs(40)
    points = find_local_stitch(obj, scene)
    assert points.shape == (2, 2)
    # the last pairs are the closest
    assert np.array_equal(points, prev[[39, 38]])


def test_too_few_pairs_give_no_points():
    obj, scene, _ = frames_with_pairs(19)
    assert find_local_stitch(obj, scene).shape == (0, 2)


def test_no_matches():
    assert find_local_stitch(make_frame(), make_frame()).shape == (0, 2)


def test_equal_distances_hash_alike():
    a = BlendPoint(0, (0, 0), (1, 0))
    b = BlendPoint(1, (5, 5), (6, 5))
    assert a == b
    assert hash(a) == hash(b)
    assert len({a, b}) == 1
