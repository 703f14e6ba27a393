"""
Sub-mosaic blending: warp staging, seam finding, color correction, compositing
"""

import gc
import logging
from typing import Callable, List, Optional

import cv2
import numpy as np

from mosaic2d.config import CompositingMode, MosaicConfig, SeamMode
from mosaic2d.core.color_correction import correct_color
from mosaic2d.core.enhance import enhance_image
from mosaic2d.core.frame import CENTER, PERSPECTIVE, Frame
from mosaic2d.core.local_stitch import find_local_stitch
from mosaic2d.core.overlap import PixelRect, crop_mask, to_pixel_rect
from mosaic2d.core.sub_mosaic import SubMosaic
from mosaic2d.utils.memory_manager import MemoryManager

logger = logging.getLogger(__name__)

# percent of the corner-to-center distance trimmed from each mask corner
MASK_SHRINK_PERCENT = 5.0


class BlendBuffers:
    """Per-call working collections, index-aligned with the sub-mosaic frames"""

    def __init__(self):
        self.warp_imgs: List[np.ndarray] = []
        self.masks: List[np.ndarray] = []
        self.full_masks: List[np.ndarray] = []
        self.rects: List[PixelRect] = []

    def append(self, warp_img: np.ndarray, mask: np.ndarray, rect: PixelRect):
        self.warp_imgs.append(warp_img)
        self.masks.append(mask)
        self.full_masks.append(mask.copy())
        self.rects.append(rect)

    def non_empty(self) -> List[int]:
        return [i for i, img in enumerate(self.warp_imgs) if img.size > 0]

    def clear(self):
        self.warp_imgs.clear()
        self.masks.clear()
        self.full_masks.clear()
        self.rects.clear()


class Blender:
    """Render a sub-mosaic of positioned frames into one canvas"""

    def __init__(
        self,
        compositing: CompositingMode = CompositingMode.DIRECT_COPY,
        seam: SeamMode = SeamMode.NONE,
        bands: int = 0,
        scb: bool = False,
        cancel_flag: Optional[Callable[[], bool]] = None,
        memory_manager: Optional[MemoryManager] = None
    ):
        """
        Initialize blender

        Args:
            compositing: Direct masked copy or multi-band blending
            seam: No seam refinement or graph-cut seams
            bands: Number of multi-band pyramid levels
            scb: Apply simple color balance to each frame before warping
            cancel_flag: Polled between stages, True aborts the blend
            memory_manager: Tracks memory of each blend call
        """
        if compositing == CompositingMode.MULTI_BAND and (seam != SeamMode.GRAPH_CUT or bands <= 0):
            raise ValueError("Multi-band compositing requires graph-cut seams and bands > 0")

        self.compositing = compositing
        self.seam = seam
        self.bands = bands
        self.scb = scb
        self.cancel_flag = cancel_flag
        self.memory_manager = memory_manager or MemoryManager()
        logger.info(f"Blender initialized (compositing: {compositing.value}, seam: {seam.value}, "
                    f"bands: {bands}, SCB: {scb})")

    @classmethod
    def from_config(cls, config: MosaicConfig, **kwargs) -> 'Blender':
        config.resolve()
        return cls(compositing=config.compositing, seam=config.seam,
                   bands=config.bands, scb=config.scb, **kwargs)

    def _check_cancel(self):
        if self.cancel_flag and self.cancel_flag():
            raise InterruptedError("Blending cancelled")

    def blend_sub_mosaic(self, sub_mosaic: SubMosaic) -> np.ndarray:
        """
        Blend all frames of a sub-mosaic into sub_mosaic.final_scene

        Frame geometry is only read, except for the global translation that
        moves the sub-mosaic to non-negative coordinates.

        Returns:
            The final uint8 BGR canvas
        """
        sub_mosaic.compute_offset()
        width, height = sub_mosaic.scene_size
        canvas_gb = self.memory_manager.estimate_canvas_gb(width, height)
        if canvas_gb > self.memory_manager.get_available_memory():
            logger.warning(f"Canvas of {width}x{height} ({canvas_gb:.2f} GB) exceeds available memory")
        sub_mosaic.final_scene = np.zeros((height, width, 3), dtype=np.uint8)
        sub_mosaic.final_mask = np.zeros((height, width), dtype=np.uint8)

        if width == 0 or height == 0:
            logger.warning("Empty sub-mosaic, nothing to blend")
            return sub_mosaic.final_scene

        logger.info(f"Blending {len(sub_mosaic)} frames into {width}x{height} canvas")
        buffers = BlendBuffers()
        try:
            with self.memory_manager.track_operation("blend_sub_mosaic"):
                for frame in sub_mosaic.frames:
                    rect = to_pixel_rect(frame.bound_rect)
                    buffers.append(self.get_warp_img(frame, rect), self.get_mask(frame, rect), rect)

                self._check_cancel()
                if self.seam == SeamMode.GRAPH_CUT:
                    logger.info("Finding cut line, this may take some time...")
                    self._find_seams(buffers)

                self._check_cancel()
                logger.info("Correcting color...")
                correct_color(buffers.warp_imgs, buffers.full_masks, buffers.rects)

                self._check_cancel()
                logger.info("Compositing...")
                if self.compositing == CompositingMode.MULTI_BAND:
                    self._multiband_composite(sub_mosaic, buffers)
                else:
                    self._direct_composite(sub_mosaic, buffers)
        finally:
            buffers.clear()
            gc.collect()

        logger.info("Blending complete")
        return sub_mosaic.final_scene

    def get_warp_img(self, frame: Frame, rect: PixelRect) -> np.ndarray:
        """
        Warp the frame into its own pixel rect

        Returns:
            uint8 image of the rect's size, empty if the rect is empty
        """
        x, y, w, h = rect
        if w <= 0 or h <= 0:
            logger.warning(f"Frame with empty bounding rect {frame.bound_rect}, skipping")
            return np.zeros((0, 0, 3), dtype=np.uint8)

        T = np.eye(3, dtype=np.float64)
        T[0, 2] = -x
        T[1, 2] = -y

        color = enhance_image(frame.color) if self.scb else frame.color
        return cv2.warpPerspective(color, T @ frame.H, (w, h))

    def get_mask(self, frame: Frame, rect: PixelRect) -> np.ndarray:
        """
        Coverage mask of the warped frame, shrunk toward its center

        Trimming the quadrilateral hides interpolation artifacts along the
        warped image borders.
        """
        x, y, w, h = rect
        if w <= 0 or h <= 0:
            return np.zeros((0, 0), dtype=np.uint8)

        points = frame.bound_points[PERSPECTIVE] - np.array([x, y], dtype=np.float64)
        center = points[CENTER]
        corners = points[:CENTER] + MASK_SHRINK_PERCENT * (center - points[:CENTER]) / 100.0

        mask = np.zeros((h, w), dtype=np.uint8)
        if np.all(np.isfinite(corners)):
            cv2.fillConvexPoly(mask, np.rint(corners).astype(np.int32), 255)
        return mask

    def _find_seams(self, buffers: BlendBuffers):
        """Refine the masks of the non-empty frames with graph-cut seams"""
        indices = buffers.non_empty()
        if len(indices) < 2:
            return

        seam_finder = cv2.detail_GraphCutSeamFinder("COST_COLOR_GRAD")
        imgs = [buffers.warp_imgs[i].astype(np.float32) for i in indices]
        corners = [(buffers.rects[i][0], buffers.rects[i][1]) for i in indices]
        masks = [cv2.UMat(buffers.masks[i]) for i in indices]

        refined = seam_finder.find(imgs, corners, masks)
        for i, mask in zip(indices, refined):
            buffers.masks[i] = mask.get() if isinstance(mask, cv2.UMat) else np.asarray(mask)
        logger.info("Finding cut line OK")

    def _direct_composite(self, sub_mosaic: SubMosaic, buffers: BlendBuffers):
        """Masked copy of every warp into the canvas, later frames on top"""
        if self.seam == SeamMode.NONE:
            # each frame gives up what its successor covers
            for i in range(len(buffers.masks) - 1):
                crop_mask(buffers.masks, buffers.rects, i + 1, i)

        canvas = sub_mosaic.final_scene
        final_mask = sub_mosaic.final_mask
        for img, mask, (x, y, w, h) in zip(buffers.warp_imgs, buffers.masks, buffers.rects):
            if img.size == 0:
                continue
            region = mask > 0
            canvas[y:y + h, x:x + w][region] = img[region]
            final_mask[y:y + h, x:x + w][region] = 255

    def _multiband_composite(self, sub_mosaic: SubMosaic, buffers: BlendBuffers):
        height, width = sub_mosaic.final_scene.shape[:2]
        blender = cv2.detail_MultiBandBlender(0, self.bands)
        blender.prepare((0, 0, width, height))

        for i in buffers.non_empty():
            x, y = buffers.rects[i][:2]
            blender.feed(buffers.warp_imgs[i].astype(np.int16), buffers.masks[i], (x, y))

        result_16s, result_mask = blender.blend(None, None)
        if isinstance(result_16s, cv2.UMat):
            result_16s = result_16s.get()
        if isinstance(result_mask, cv2.UMat):
            result_mask = result_mask.get()

        # CV_16S result saturated to 8-bit
        sub_mosaic.final_scene = np.clip(result_16s, 0, 255).astype(np.uint8)
        sub_mosaic.final_mask = result_mask

    def find_local_stitch(self, object_frame: Frame, scene_frame: Frame) -> np.ndarray:
        return find_local_stitch(object_frame, scene_frame)
