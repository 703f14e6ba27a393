"""
Input enumeration/reading and mosaic output
"""

import logging
from pathlib import Path
from typing import Iterator, List, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.tif', '.tiff', '.bmp')


def read_filenames(input_dir: Union[str, Path]) -> List[Path]:
    """
    List image files of a directory in name order

    Args:
        input_dir: Directory containing the image sequence

    Returns:
        Sorted list of image paths
    """
    input_dir = Path(input_dir)
    if not input_dir.is_dir():
        raise FileNotFoundError(f"Input directory does not exist: {input_dir}")

    return sorted(p for p in input_dir.iterdir()
                  if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS)


def iter_images(paths: List[Path]) -> Iterator[Tuple[Path, np.ndarray]]:
    """Yield (path, BGR image) pairs, skipping unreadable files"""
    for path in paths:
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None or img.size == 0:
            logger.warning(f"Error reading image {path}, skipping")
            continue
        yield path, img


def save_image(image: np.ndarray, output_path: Union[str, Path]) -> Path:
    """
    Save an 8-bit BGR mosaic

    TIFF output goes through tifffile with deflate compression, every other
    format through OpenCV.

    Args:
        image: uint8 HxWx3 image
        output_path: Destination file

    Returns:
        Path written
    """
    if image is None or image.size == 0:
        raise ValueError("Cannot save empty mosaic")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)

    if output_path.suffix.lower() in ('.tif', '.tiff'):
        import tifffile

        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB) if image.ndim == 3 else image
        tifffile.imwrite(str(output_path), image_rgb, compression='zlib',
                         photometric='rgb' if image.ndim == 3 else 'minisblack')
    elif not cv2.imwrite(str(output_path), image):
        raise IOError(f"Could not write {output_path}")

    logger.info(f"Mosaic saved to {output_path} ({image.shape[1]}x{image.shape[0]})")
    return output_path
