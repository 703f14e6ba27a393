"""
Feature detection with the OpenCV KAZE family, SIFT and ORB
"""

import cv2
import numpy as np
from typing import List, Optional, Tuple
import logging

from mosaic2d.config import DetectorType

logger = logging.getLogger(__name__)


def _opencv_factory(name: str):
    """Detector constructor from cv2, ValueError when this OpenCV build lacks it"""
    factory = getattr(cv2, name, None)
    if factory is None:
        raise ValueError(f"cv2.{name} is not available in OpenCV {cv2.__version__}, "
                         f"choose another detector or install opencv-python<5")
    return factory


class FeatureDetector:
    """Thin wrapper giving every OpenCV detector the same interface"""

    def __init__(self, detector_type: DetectorType = DetectorType.KAZE, n_features: int = 5000):
        """
        Initialize detector

        Args:
            detector_type: Detector algorithm
            n_features: Maximum number of features kept per image
        """
        self.detector_type = detector_type
        self.n_features = n_features

        if detector_type == DetectorType.KAZE:
            self.detector = _opencv_factory("KAZE_create")()
        elif detector_type == DetectorType.AKAZE:
            self.detector = _opencv_factory("AKAZE_create")()
        elif detector_type == DetectorType.SIFT:
            self.detector = _opencv_factory("SIFT_create")(
                nfeatures=n_features,
                contrastThreshold=0.04,
                edgeThreshold=10,
                sigma=1.6
            )
        elif detector_type == DetectorType.ORB:
            self.detector = _opencv_factory("ORB_create")(nfeatures=n_features)
        else:
            raise ValueError(f"Unsupported detector: {detector_type}")

        logger.info(f"Feature detector initialized ({detector_type.value}, max features: {n_features})")

    @property
    def is_binary(self) -> bool:
        """True when descriptors are bit strings (Hamming distance)"""
        return self.detector_type in (DetectorType.AKAZE, DetectorType.ORB)

    def detect_and_compute(
        self,
        image: np.ndarray,
        mask: Optional[np.ndarray] = None
    ) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        """
        Detect features and compute descriptors

        Args:
            image: Grayscale or BGR image
            mask: Optional detection mask

        Returns:
            Tuple of (keypoints, descriptors); descriptors is None when
            nothing was found
        """
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        keypoints, descriptors = self.detector.detectAndCompute(image, mask)
        keypoints = list(keypoints)

        # KAZE/AKAZE have no feature cap, keep the strongest responses
        if len(keypoints) > self.n_features and descriptors is not None:
            order = np.argsort([-kp.response for kp in keypoints])[:self.n_features]
            keypoints = [keypoints[i] for i in order]
            descriptors = descriptors[order]

        logger.debug(f"Detected {len(keypoints)} features")
        return keypoints, descriptors


def create_feature_detector(detector_type: DetectorType, n_features: int = 5000) -> FeatureDetector:
    """Create feature detector based on type"""
    return FeatureDetector(detector_type, n_features)
