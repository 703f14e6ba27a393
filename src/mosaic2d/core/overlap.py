"""
Overlap geometry between positioned frames

Rectangles here are integer pixel rects (x, y, width, height) in mosaic
coordinates; each mask is expressed in its own frame's local coordinates,
with its origin at the frame's rect origin.
"""

import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

PixelRect = Tuple[int, int, int, int]

# absorbs float noise from composed transforms
_RECT_EPS = 1e-6


def to_pixel_rect(rect: Sequence[float]) -> PixelRect:
    """
    Smallest integer rect covering a float rect

    Args:
        rect: (x, y, width, height) floats

    Returns:
        (x, y, width, height) ints, width/height never negative
    """
    x, y, w, h = rect
    if not all(math.isfinite(v) for v in (x, y, w, h)):
        return 0, 0, 0, 0
    left = math.floor(x + _RECT_EPS)
    top = math.floor(y + _RECT_EPS)
    right = math.ceil(x + w - _RECT_EPS)
    bottom = math.ceil(y + h - _RECT_EPS)
    return left, top, max(right - left, 0), max(bottom - top, 0)


def intersection_rect(rect_a: PixelRect, rect_b: PixelRect) -> Optional[PixelRect]:
    """Global-coordinate intersection of two rects, None when they don't overlap"""
    left = max(rect_a[0], rect_b[0])
    top = max(rect_a[1], rect_b[1])
    right = min(rect_a[0] + rect_a[2], rect_b[0] + rect_b[2])
    bottom = min(rect_a[1] + rect_a[3], rect_b[1] + rect_b[3])
    if right <= left or bottom <= top:
        return None
    return left, top, right - left, bottom - top


def _local_slices(inter: PixelRect, origin: PixelRect) -> Tuple[slice, slice]:
    x = inter[0] - origin[0]
    y = inter[1] - origin[1]
    return slice(y, y + inter[3]), slice(x, x + inter[2])


def get_overlap_masks(
    full_masks: List[np.ndarray],
    rects: List[PixelRect],
    object_idx: int,
    scene_idx: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Masks of the pixels both frames cover, one per frame

    Args:
        full_masks: uint8 masks, one per frame, in local coordinates
        rects: Pixel rects of the frames in mosaic coordinates
        object_idx: Index of the object frame
        scene_idx: Index of the scene frame

    Returns:
        (scene_overlap, object_overlap): masks shaped like the scene and
        object masks, nonzero only where both frames cover the pixel.
        Both are all zero when the rects don't intersect.
    """
    sc_mask = full_masks[scene_idx]
    obj_mask = full_masks[object_idx]
    overlap_sc_mask = np.zeros(sc_mask.shape[:2], dtype=np.uint8)
    overlap_obj_mask = np.zeros(obj_mask.shape[:2], dtype=np.uint8)

    inter = intersection_rect(rects[object_idx], rects[scene_idx])
    if inter is None:
        return overlap_sc_mask, overlap_obj_mask

    sc_slices = _local_slices(inter, rects[scene_idx])
    obj_slices = _local_slices(inter, rects[object_idx])

    both = np.bitwise_and(sc_mask[sc_slices], obj_mask[obj_slices])
    overlap_sc_mask[sc_slices] = both
    overlap_obj_mask[obj_slices] = both
    return overlap_sc_mask, overlap_obj_mask


def crop_mask(
    masks: List[np.ndarray],
    rects: List[PixelRect],
    object_idx: int,
    scene_idx: int
) -> np.ndarray:
    """
    Remove from the scene mask every pixel the object mask claims

    masks[scene_idx] is replaced by the cropped copy, so two frames never
    claim the same pixel once both directions have been cropped.

    Returns:
        The cropped scene mask
    """
    scene_mask = masks[scene_idx].copy()
    inter = intersection_rect(rects[object_idx], rects[scene_idx])
    if inter is not None:
        sc_slices = _local_slices(inter, rects[scene_idx])
        obj_slices = _local_slices(inter, rects[object_idx])
        claimed = masks[object_idx][obj_slices] > 0
        scene_mask[sc_slices][claimed] = 0

    masks[scene_idx] = scene_mask
    return scene_mask
