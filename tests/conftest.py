"""Shared fixtures: synthetic scenes and frames with known placements"""

import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mosaic2d.core.frame import PREV, Frame, tile_points  # noqa: E402

TILE_W, TILE_H = 640, 360


def textured_scene(height: int, width: int, seed: int = 0, sigma: float = 2.0) -> np.ndarray:
    """Smooth random color texture, rich in features"""
    rng = np.random.default_rng(seed)
    noise = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return cv2.GaussianBlur(noise, (0, 0), sigma)


def view_of(scene: np.ndarray, H: np.ndarray, width: int = TILE_W, height: int = TILE_H) -> np.ndarray:
    """Tile whose pixel p shows scene(H p)"""
    return cv2.warpPerspective(scene, H, (width, height), flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP)


def translation(tx: float, ty: float) -> np.ndarray:
    T = np.eye(3)
    T[0, 2] = tx
    T[1, 2] = ty
    return T


def make_frame(image=None, width: int = TILE_W, height: int = TILE_H, preprocess: bool = False) -> Frame:
    """Frame without undistortion; blurred textures need preprocess=True for feature detection"""
    if image is None:
        image = textured_scene(height, width)
    return Frame(image, preprocess=preprocess, width=width, height=height)


def full_support(frame: Frame):
    """Give the frame PREV matches covering its whole tile"""
    frame.grid_points[PREV] = tile_points(frame.width, frame.height)[:4].copy()


@pytest.fixture
def frame() -> Frame:
    return make_frame()


@pytest.fixture
def placed_frames():
    """Three 640x360 views of one scene with known, mildly perspective placements"""
    scene = textured_scene(900, 1600, seed=7, sigma=3.0)
    placements = [
        translation(100, 120),
        translation(380, 170) @ np.array([[1.0, 0.02, 0.0], [-0.01, 1.0, 0.0], [1e-5, 2e-5, 1.0]]),
        translation(650, 140) @ np.array([[0.98, 0.0, 0.0], [0.01, 1.02, 0.0], [-2e-5, 1e-5, 1.0]]),
    ]
    frames = []
    for H in placements:
        frame = make_frame(view_of(scene, H))
        full_support(frame)
        frame.set_h_reference(H)
        frames.append(frame)
    return scene, placements, frames
