"""
Color correction between consecutive warped frames

Reinhard-style statistics transfer in CIE Lab: each frame is pulled toward
the mean and standard deviation its predecessor shows in their shared
overlap. Frame 0 is never modified and anchors the chain.
"""

import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from mosaic2d.core.overlap import PixelRect, get_overlap_masks

logger = logging.getLogger(__name__)

STDEV_EPS = 1e-4
# below this a transfer is treated as the identity (Lab units)
IDENTITY_TOL = 1e-3

ChannelStats = Tuple[np.ndarray, np.ndarray]


def to_lab(image: np.ndarray) -> np.ndarray:
    """uint8 BGR to float32 Lab (L in [0, 100])"""
    return cv2.cvtColor(image.astype(np.float32) / 255.0, cv2.COLOR_BGR2Lab)


def from_lab(lab: np.ndarray) -> np.ndarray:
    """float32 Lab back to uint8 BGR"""
    bgr = cv2.cvtColor(lab, cv2.COLOR_Lab2BGR) * 255.0
    return np.clip(np.rint(bgr), 0, 255).astype(np.uint8)


def masked_stats(lab: np.ndarray, mask: np.ndarray) -> Optional[ChannelStats]:
    """Per-channel mean and standard deviation under a mask, None if the mask is empty"""
    if cv2.countNonZero(mask) == 0:
        return None
    mean, stdev = cv2.meanStdDev(lab, mask=mask)
    return mean.ravel(), stdev.ravel()


def transfer_statistics(lab: np.ndarray, ob_stats: ChannelStats, sc_stats: ChannelStats) -> Optional[np.ndarray]:
    """
    Linear per-channel transfer of object statistics onto scene statistics

    channel' = sc_std / ob_std * (channel - ob_mean) + sc_mean

    Channels whose object stdev is ~0 are passed through unchanged.

    Returns:
        The corrected Lab image, or None when every channel is an identity
        mapping (the caller can then keep the original pixels)
    """
    ob_mean, ob_std = ob_stats
    sc_mean, sc_std = sc_stats

    corrected = lab.copy()
    changed = False
    for c in range(3):
        if ob_std[c] < STDEV_EPS:
            continue
        scale = sc_std[c] / ob_std[c]
        shift = sc_mean[c] - scale * ob_mean[c]
        if abs(scale - 1.0) < IDENTITY_TOL and abs(shift) < IDENTITY_TOL:
            continue
        corrected[:, :, c] = lab[:, :, c] * scale + shift
        changed = True

    return corrected if changed else None


def correct_color(
    warp_imgs: List[np.ndarray],
    full_masks: List[np.ndarray],
    rects: List[PixelRect]
) -> List[np.ndarray]:
    """
    Correct every frame toward its predecessor, in sequence order

    Only adjacent pairs are reconciled, so corrections accumulate along the
    sequence. warp_imgs is updated in place and also returned.

    Args:
        warp_imgs: uint8 BGR warped images
        full_masks: uint8 coverage masks matching warp_imgs
        rects: Pixel rects of the warped images in mosaic coordinates
    """
    for i in range(len(warp_imgs) - 1):
        scene, obj = warp_imgs[i], warp_imgs[i + 1]
        if scene.size == 0 or obj.size == 0:
            continue

        sc_overlap, obj_overlap = get_overlap_masks(full_masks, rects, i + 1, i)

        sc_stats = masked_stats(to_lab(scene), sc_overlap)
        if sc_stats is None:
            logger.debug(f"Frames {i} and {i + 1} don't overlap, skipping color correction")
            continue

        obj_lab = to_lab(obj)
        ob_stats = masked_stats(obj_lab, obj_overlap)
        if ob_stats is None:
            continue

        corrected = transfer_statistics(obj_lab, ob_stats, sc_stats)
        if corrected is not None:
            warp_imgs[i + 1] = from_lab(corrected)

    return warp_imgs
