"""Tests for registration and sub-mosaic growth"""

import numpy as np
import pytest

from mosaic2d.config import MosaicConfig
from mosaic2d.core.frame import PREV
from mosaic2d.core.mosaic import Mosaic
from tests.conftest import textured_scene, translation, view_of


@pytest.fixture(scope="module")
def scene():
    return textured_scene(900, 1600, seed=21, sigma=2.5)


def sift_config(**kwargs):
    return MosaicConfig(detector="sift", calibration=None, **kwargs)


def feed_views(mosaic, scene, offsets):
    for tx, ty in offsets:
        assert mosaic.feed(view_of(scene, translation(tx, ty)))


class TestCompute:

    def test_translated_views_share_one_sub_mosaic(self, scene):
        mosaic = Mosaic(sift_config())
        feed_views(mosaic, scene, [(100, 100), (300, 140), (500, 120)])

        sub_mosaics = mosaic.compute()

        assert len(sub_mosaics) == 1
        assert len(sub_mosaics[0]) == 3
        frames = mosaic.frames
        assert np.allclose(frames[0].H, np.eye(3))
        for frame, expected in zip(frames[1:], [(200, 40), (400, 20)]):
            assert np.allclose(frame.H[:2, 2], expected, atol=1.5)
            assert np.allclose(frame.H[:2, :2], np.eye(2), atol=0.01)
            assert frame.frame_error < 3.0
            assert len(frame.grid_points[PREV]) >= 20
        assert frames[0].neighbors == [1]
        assert frames[1].neighbors == [0, 2]

    def test_euclidean_mode_tracks_both_chains(self, scene):
        mosaic = Mosaic(sift_config(euclidean_mode=True))
        feed_views(mosaic, scene, [(100, 100), (300, 140)])

        mosaic.compute()

        frame = mosaic.frames[1]
        assert np.allclose(frame.H[2], [0, 0, 1])
        assert np.allclose(frame.E, frame.H)

    def test_unrelated_frame_opens_sub_mosaic(self, scene):
        mosaic = Mosaic(sift_config())
        feed_views(mosaic, scene, [(100, 100), (300, 140)])
        mosaic.feed(textured_scene(360, 640, seed=99, sigma=2.5))

        sub_mosaics = mosaic.compute()

        assert [len(s) for s in sub_mosaics] == [2, 1]
        rejected = mosaic.frames[2]
        assert np.array_equal(rejected.H, np.eye(3))
        assert rejected.neighbors == []

    def test_no_frames(self):
        assert Mosaic(sift_config()).compute() == []

    def test_feed_empty_image(self):
        mosaic = Mosaic(sift_config())
        assert not mosaic.feed(np.zeros((0, 0, 3), dtype=np.uint8))
        assert not mosaic.feed(None)
        assert mosaic.frames == []


class TestMergeAndSave:

    def test_merge_and_save(self, scene, tmp_path):
        progress = []
        mosaic = Mosaic(sift_config(), progress_callback=lambda p, m: progress.append(p))
        feed_views(mosaic, scene, [(100, 100), (300, 140)])
        mosaic.compute()

        scenes = mosaic.merge()
        written = mosaic.save(tmp_path)

        assert len(scenes) == 1
        # 640 + 200 wide, 360 + 40 high
        assert abs(scenes[0].shape[1] - 840) <= 2
        assert abs(scenes[0].shape[0] - 400) <= 2
        assert [p.name for p in written] == ["mosaic_0.png"]
        assert written[0].exists()
        assert progress[-1] == 100

    def test_save_without_merge(self, tmp_path):
        mosaic = Mosaic(sift_config())
        mosaic.feed(textured_scene(360, 640))
        mosaic.compute()
        with pytest.raises(ValueError):
            mosaic.save(tmp_path)
