"""
Mosaic growth: feed frames, chain them into sub-mosaics, blend and save
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Union

import numpy as np
from tqdm import tqdm

from mosaic2d.config import MosaicConfig
from mosaic2d.core.blender import Blender
from mosaic2d.core.frame import EUCLIDEAN, PERSPECTIVE, Frame
from mosaic2d.core.stitcher import Stitcher
from mosaic2d.core.sub_mosaic import SubMosaic
from mosaic2d.utils.image_io import save_image

logger = logging.getLogger(__name__)


class Mosaic:
    """Sequential mosaic builder"""

    def __init__(
        self,
        config: Optional[MosaicConfig] = None,
        stitcher: Optional[Stitcher] = None,
        blender: Optional[Blender] = None,
        progress_callback: Optional[Callable[[int, str], None]] = None
    ):
        """
        Initialize mosaic

        Args:
            config: Run configuration, defaults when omitted
            stitcher: Registration engine, built from config when omitted
            blender: Blending engine, built from config when omitted
            progress_callback: Called with (percentage, message)
        """
        self.config = (config or MosaicConfig()).resolve()
        self.stitcher = stitcher or Stitcher.from_config(self.config)
        self.blender = blender or Blender.from_config(self.config)
        self.progress_callback = progress_callback

        self.frames: List[Frame] = []
        self.sub_mosaics: List[SubMosaic] = []

    def _update_progress(self, percentage: int, message: str = ""):
        if self.progress_callback:
            self.progress_callback(percentage, message)

    def feed(self, image: np.ndarray) -> bool:
        """
        Add an image to the sequence

        Returns:
            False when the image is empty and was skipped
        """
        if image is None or image.size == 0:
            logger.warning("Skipping empty image")
            return False

        self.frames.append(Frame(
            image,
            preprocess=self.config.preprocess,
            width=self.config.tile_width,
            height=self.config.tile_height,
            calibration=self.config.calibration
        ))
        return True

    def _place(self, frame: Frame, scene: Frame, transform: np.ndarray):
        """Move a freshly registered frame into the scene's mosaic coordinates"""
        frame.set_h_reference(scene.H @ transform, PERSPECTIVE)

        similarity = transform if self.config.euclidean_mode else self.stitcher.similarity(frame, scene)
        if similarity is not None:
            frame.set_h_reference(scene.E @ similarity, EUCLIDEAN)

    def compute(self) -> List[SubMosaic]:
        """
        Register every frame onto its predecessor

        A frame that can't be registered, or whose placement fails the
        quality gate, is reset and opens a new sub-mosaic.

        Returns:
            The sub-mosaics, in sequence order
        """
        self.sub_mosaics = []
        if not self.frames:
            logger.warning("No frames to compute")
            return self.sub_mosaics

        current = SubMosaic([self.frames[0]])
        self.sub_mosaics.append(current)
        self.stitcher.detect(self.frames[0])

        for index in tqdm(range(1, len(self.frames)), desc="Registering frames",
                          disable=len(self.frames) < 3):
            frame = self.frames[index]
            scene = current.last_frame

            transform = self.stitcher.stitch(frame, scene, scene_index=index - 1)
            if transform is not None:
                self._place(frame, scene, transform)

            if transform is None or not frame.is_good_frame():
                logger.info(f"Frame {index} rejected, starting sub-mosaic {len(self.sub_mosaics)}")
                frame.reset_frame()
                current = SubMosaic([frame])
                self.sub_mosaics.append(current)
            else:
                scene.neighbors.append(index)
                current.add_frame(frame)

            self._update_progress(int(50 * index / len(self.frames)), f"Registered frame {index}")

        logger.info(f"{len(self.frames)} frames in {len(self.sub_mosaics)} sub-mosaics")
        return self.sub_mosaics

    def merge(self) -> List[np.ndarray]:
        """Blend every sub-mosaic into its final scene"""
        scenes = []
        for i, sub_mosaic in enumerate(self.sub_mosaics):
            logger.info(f"Blending sub-mosaic {i + 1}/{len(self.sub_mosaics)} "
                        f"({len(sub_mosaic)} frames, avg error {sub_mosaic.avg_error:.2f}px)")
            scenes.append(self.blender.blend_sub_mosaic(sub_mosaic))
            self.blender.memory_manager.force_gc()
            self._update_progress(50 + int(50 * (i + 1) / len(self.sub_mosaics)), f"Blended sub-mosaic {i}")
        self.blender.memory_manager.log_memory_status("merge")
        return scenes

    def save(self, output_dir: Union[str, Path]) -> List[Path]:
        """
        Write every blended sub-mosaic as mosaic_<index>.<format>

        Returns:
            Paths written
        """
        output_dir = Path(output_dir)
        written = []
        for i, sub_mosaic in enumerate(self.sub_mosaics):
            if sub_mosaic.final_scene is None or sub_mosaic.final_scene.size == 0:
                logger.warning(f"Sub-mosaic {i} was not blended, skipping")
                continue
            path = output_dir / f"mosaic_{i}.{self.config.output_format}"
            written.append(save_image(sub_mosaic.final_scene, path))

        if not written:
            raise ValueError("No mosaic to save")
        return written
