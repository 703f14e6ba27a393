"""
Contrast enhancement: percentile channel stretch and simple color balance
"""

import cv2
import numpy as np
from typing import Optional


def channel_stretch(
    channel: np.ndarray,
    low_percentile: float = 1.0,
    high_percentile: float = 99.0,
    mask: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Linearly stretch a single 8-bit channel between two percentiles

    Values below the low percentile saturate to 0, values above the high
    percentile saturate to 255.

    Args:
        channel: uint8 HxW array
        low_percentile: Lower percentile (0-100)
        high_percentile: Upper percentile (0-100)
        mask: Optional uint8 mask restricting the pixels used for the percentiles

    Returns:
        Stretched uint8 channel
    """
    if channel.size == 0:
        return channel.copy()

    samples = channel[mask > 0] if mask is not None else channel
    if samples.size == 0:
        return channel.copy()

    low, high = np.percentile(samples, (low_percentile, high_percentile))
    if high - low < 1e-6:
        return channel.copy()

    stretched = (channel.astype(np.float32) - low) * (255.0 / (high - low))
    return np.clip(stretched, 0, 255).astype(np.uint8)


def enhance_image(image: np.ndarray, low_percentile: float = 1.0, high_percentile: float = 99.0) -> np.ndarray:
    """
    Simple color balance: stretch each BGR channel independently

    Returns a new image; the input is left untouched.
    """
    if image.ndim == 2:
        return channel_stretch(image, low_percentile, high_percentile)

    channels = cv2.split(image)
    return cv2.merge([channel_stretch(c, low_percentile, high_percentile) for c in channels])
