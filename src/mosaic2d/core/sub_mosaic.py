"""
Sub-mosaic: frames registered into one coordinate system
"""

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from mosaic2d.core.frame import PERSPECTIVE, Frame

logger = logging.getLogger(__name__)


class SubMosaic:
    """Ordered frames sharing a coordinate system, plus their blended canvas"""

    def __init__(self, frames: Optional[List[Frame]] = None):
        self.frames: List[Frame] = list(frames) if frames else []
        self.final_scene: Optional[np.ndarray] = None
        self.final_mask: Optional[np.ndarray] = None
        self.scene_size: Tuple[int, int] = (0, 0)

    def __len__(self) -> int:
        return len(self.frames)

    def add_frame(self, frame: Frame):
        self.frames.append(frame)

    @property
    def last_frame(self) -> Optional[Frame]:
        return self.frames[-1] if self.frames else None

    @property
    def avg_error(self) -> float:
        if not self.frames:
            return 0.0
        return float(np.mean([f.frame_error for f in self.frames]))

    def compute_offset(self) -> np.ndarray:
        """
        Translate all frames so every coordinate is non-negative

        The smallest bound rect corner lands on the origin and scene_size
        becomes the extent of the union of the bound rects.

        Returns:
            The 3x3 translation applied to every frame
        """
        if not self.frames:
            self.scene_size = (0, 0)
            return np.eye(3, dtype=np.float64)

        rects = np.array([f.bound_rect for f in self.frames], dtype=np.float64)
        left = rects[:, 0].min()
        top = rects[:, 1].min()

        T = np.eye(3, dtype=np.float64)
        T[0, 2] = -left
        T[1, 2] = -top
        for frame in self.frames:
            frame.set_h_reference(T, PERSPECTIVE)

        rects = np.array([f.bound_rect for f in self.frames], dtype=np.float64)
        right = (rects[:, 0] + rects[:, 2]).max()
        bottom = (rects[:, 1] + rects[:, 3]).max()
        self.scene_size = (int(math.ceil(right - 1e-6)), int(math.ceil(bottom - 1e-6)))

        logger.debug(f"Sub-mosaic offset ({-left:.1f}, {-top:.1f}), scene size {self.scene_size}")
        return T
