#!/usr/bin/env python3
"""
mosaic2d - automated 2D mosaic construction
Main entry point for the command line tool
"""

import argparse
import logging
import sys
import time
from typing import List, Optional

import cv2

from mosaic2d import __version__
from mosaic2d.config import CompositingMode, DetectorType, MatcherType, MosaicConfig, SeamMode
from mosaic2d.core.mosaic import Mosaic
from mosaic2d.utils.image_io import iter_images, read_filenames
from mosaic2d.utils.logger import setup_logger
from mosaic2d.utils.platform_utils import get_platform_name

logger = logging.getLogger("mosaic2d.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="mosaic2d - 2D mosaic from a sequence of overlapping images"
    )
    parser.add_argument("-i", "--input", required=True, help="Input directory containing images")
    parser.add_argument("-o", "--output", required=True, help="Output directory for the mosaics")
    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument(
        "--detector",
        choices=[d.value for d in DetectorType],
        help="Feature detector (default: kaze)"
    )
    parser.add_argument(
        "--matcher",
        choices=[m.value for m in MatcherType],
        help="Feature matcher (default: flann)"
    )
    parser.add_argument("--bands", type=int, help="Number of bands for the multi-band blender")
    parser.add_argument("--graph-cut", action="store_true", help="Find seams with graph cut")
    parser.add_argument("--scb", action="store_true", help="Apply simple color balance to the frames")
    parser.add_argument("--euclidean", action="store_true", help="Register with similarity transforms only")
    parser.add_argument("--no-preprocess", action="store_true", help="Don't contrast stretch before detection")
    parser.add_argument("--no-undistort", action="store_true", help="Skip lens undistortion")
    parser.add_argument("--format", help="Output image format (png, jpg, tif)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    return parser


def config_from_args(args: argparse.Namespace) -> MosaicConfig:
    """Merge the optional YAML config with command line overrides"""
    config = MosaicConfig.from_yaml(args.config) if args.config else MosaicConfig()

    if args.detector:
        config.detector = DetectorType(args.detector)
    if args.matcher:
        config.matcher = MatcherType(args.matcher)
    if args.bands is not None:
        if args.bands < 0:
            raise ValueError(f"Number of bands must be >= 0, got {args.bands}")
        config.bands = args.bands
    if args.graph_cut:
        config.seam = SeamMode.GRAPH_CUT
    # only a blending request on the command line switches compositing mode
    if (args.bands is not None or args.graph_cut) and config.bands > 0 and config.seam == SeamMode.GRAPH_CUT:
        config.compositing = CompositingMode.MULTI_BAND
    if args.scb:
        config.scb = True
    if args.euclidean:
        config.euclidean_mode = True
    if args.no_preprocess:
        config.preprocess = False
    if args.no_undistort:
        config.calibration = None
    if args.format:
        config.output_format = args.format.lower().lstrip('.')

    return config.resolve()


def log_settings(config: MosaicConfig, input_dir: str, output_dir: str):
    logger.info(f"mosaic2d {__version__}, built with OpenCV {cv2.__version__}")
    logger.info(f"  Platform:          {get_platform_name()}")
    logger.info(f"  Input directory:   {input_dir}")
    logger.info(f"  Output directory:  {output_dir}")
    logger.info(f"  Feature extractor: {config.detector.value}")
    logger.info(f"  Feature matcher:   {config.matcher.value}")
    logger.info(f"  Bands (blender):   {config.bands}")
    logger.info(f"  Mosaic mode:       {'euclidean' if config.euclidean_mode else 'perspective'}")
    logger.info(f"  Seam finder:       {config.seam.value}")
    logger.info(f"  Compositing:       {config.compositing.value}")
    logger.info(f"  Apply SCB:         {config.scb}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    setup_logger("mosaic2d", level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = config_from_args(args)
    except (ValueError, OSError) as e:
        logger.error(f"Bad configuration: {e}")
        return 1

    log_settings(config, args.input, args.output)
    start = time.time()

    try:
        file_names = read_filenames(args.input)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1

    if not file_names:
        logger.error(f"No images found in {args.input}")
        return 1

    try:
        mosaic = Mosaic(config)
    except ValueError as e:
        logger.error(f"Could not set up the mosaic: {e}")
        return 1

    for _, img in iter_images(file_names):
        mosaic.feed(img)

    if not mosaic.frames:
        logger.error("None of the input images could be read")
        return 1

    try:
        mosaic.compute()
        mosaic.merge()
        written = mosaic.save(args.output)
    except (ValueError, IOError, InterruptedError) as e:
        logger.error(f"Mosaic failed: {e}", exc_info=True)
        return 1

    logger.info(f"Wrote {len(written)} mosaic(s)")
    logger.info(f"Execution time: {time.time() - start:.2f} s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
