"""Tests for sub-mosaic offset and extent"""

import numpy as np

from mosaic2d.core.frame import PREV
from mosaic2d.core.sub_mosaic import SubMosaic
from tests.conftest import TILE_H, TILE_W, make_frame, translation


def test_offset_moves_frames_to_origin():
    a, b = make_frame(), make_frame()
    a.set_h_reference(translation(-100.5, 40))
    b.set_h_reference(translation(200, -30.25))
    sub_mosaic = SubMosaic([a, b])

    T = sub_mosaic.compute_offset()

    assert np.allclose(T, translation(100.5, 30.25))
    assert np.allclose(a.bound_rect[:2], (0.0, 70.25))
    assert np.allclose(b.bound_rect[:2], (300.5, 0.0))
    assert sub_mosaic.scene_size == (int(np.ceil(300.5 + TILE_W)), int(np.ceil(70.25 + TILE_H)))
    assert np.allclose(a.H, translation(0, 70.25))


def test_offset_projects_grid_points():
    frame = make_frame()
    frame.grid_points[PREV] = np.array([[10.0, 10.0]])
    frame.set_h_reference(translation(-50, -60))
    SubMosaic([frame]).compute_offset()
    assert np.allclose(frame.grid_points[PREV], [[10.0, 10.0]])


def test_empty_sub_mosaic():
    sub_mosaic = SubMosaic()
    assert np.array_equal(sub_mosaic.compute_offset(), np.eye(3))
    assert sub_mosaic.scene_size == (0, 0)
    assert sub_mosaic.last_frame is None
    assert sub_mosaic.avg_error == 0.0


def test_add_frame_and_error():
    a, b = make_frame(), make_frame()
    a.frame_error, b.frame_error = 1.0, 3.0
    sub_mosaic = SubMosaic([a])
    sub_mosaic.add_frame(b)
    assert len(sub_mosaic) == 2
    assert sub_mosaic.last_frame is b
    assert sub_mosaic.avg_error == 2.0
