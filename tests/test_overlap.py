"""Tests for overlap masks and mask cropping"""

import numpy as np

from mosaic2d.core.overlap import crop_mask, get_overlap_masks, intersection_rect, to_pixel_rect


def filled(h, w, value=255):
    return np.full((h, w), value, dtype=np.uint8)


def to_global(mask, rect, canvas_shape):
    canvas = np.zeros(canvas_shape, dtype=np.uint8)
    x, y, w, h = rect
    canvas[y:y + h, x:x + w] = mask
    return canvas


class TestRects:

    def test_to_pixel_rect_covers_float_rect(self):
        assert to_pixel_rect((10.2, 5.7, 20.5, 10.1)) == (10, 5, 21, 11)

    def test_to_pixel_rect_absorbs_float_noise(self):
        assert to_pixel_rect((99.9999999, 50.0000001, 640.0000001, 359.9999999)) == (100, 50, 640, 360)

    def test_to_pixel_rect_non_finite(self):
        assert to_pixel_rect((np.nan, 0, 10, 10)) == (0, 0, 0, 0)

    def test_intersection(self):
        assert intersection_rect((0, 0, 100, 50), (60, 20, 100, 100)) == (60, 20, 40, 30)
        assert intersection_rect((0, 0, 100, 50), (100, 0, 10, 10)) is None


class TestOverlapMasks:

    def test_overlap_is_symmetric_in_mosaic_coordinates(self):
        rng = np.random.default_rng(0)
        rects = [(0, 0, 120, 80), (70, 30, 100, 90)]
        masks = [(rng.random((80, 120)) > 0.3).astype(np.uint8) * 255,
                 (rng.random((90, 100)) > 0.3).astype(np.uint8) * 255]

        sc_overlap, obj_overlap = get_overlap_masks(masks, rects, 1, 0)

        assert sc_overlap.shape == masks[0].shape
        assert obj_overlap.shape == masks[1].shape
        g_sc = to_global(sc_overlap, rects[0], (200, 200))
        g_obj = to_global(obj_overlap, rects[1], (200, 200))
        assert np.array_equal(g_sc, g_obj)

        expected = np.bitwise_and(to_global(masks[0], rects[0], (200, 200)),
                                  to_global(masks[1], rects[1], (200, 200)))
        assert np.array_equal(g_sc, expected)
        assert g_sc.any()

    def test_disjoint_rects_give_empty_masks(self):
        rects = [(0, 0, 50, 50), (80, 0, 50, 50)]
        sc_overlap, obj_overlap = get_overlap_masks([filled(50, 50), filled(50, 50)], rects, 1, 0)
        assert sc_overlap.shape == (50, 50)
        assert not sc_overlap.any()
        assert not obj_overlap.any()

    def test_inputs_untouched(self):
        masks = [filled(40, 40), filled(40, 40)]
        get_overlap_masks(masks, [(0, 0, 40, 40), (20, 20, 40, 40)], 1, 0)
        assert masks[0].all() and masks[1].all()


class TestCropMask:

    def test_scene_loses_object_pixels(self):
        masks = [filled(50, 100), filled(50, 100)]
        rects = [(0, 0, 100, 50), (60, 10, 100, 50)]
        original_scene = masks[0]

        cropped = crop_mask(masks, rects, 1, 0)

        assert masks[0] is cropped
        assert original_scene.all()
        assert not cropped[10:, 60:].any()
        assert cropped[:10, :].all()
        assert cropped[:, :60].all()
        assert masks[1].all()

    def test_cropping_both_directions_partitions_the_union(self):
        rng = np.random.default_rng(5)
        rects = [(0, 0, 90, 70), (40, 25, 90, 70)]
        masks = [(rng.random((70, 90)) > 0.2).astype(np.uint8) * 255 for _ in range(2)]
        union_before = np.bitwise_or(to_global(masks[0], rects[0], (120, 150)),
                                     to_global(masks[1], rects[1], (120, 150)))

        crop_mask(masks, rects, 1, 0)
        crop_mask(masks, rects, 0, 1)

        g0 = to_global(masks[0], rects[0], (120, 150))
        g1 = to_global(masks[1], rects[1], (120, 150))
        assert not np.bitwise_and(g0, g1).any()
        # scene gave up the shared pixels first, so the object keeps them
        assert np.array_equal(np.bitwise_or(g0, g1), union_before)

    def test_no_overlap_keeps_mask(self):
        masks = [filled(30, 30), filled(30, 30)]
        cropped = crop_mask(masks, [(0, 0, 30, 30), (100, 100, 30, 30)], 1, 0)
        assert cropped.all()
