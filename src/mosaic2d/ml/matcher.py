"""
Descriptor matching with FLANN or brute force and Lowe's ratio test
"""

import cv2
import numpy as np
from typing import Dict, List
import logging

from mosaic2d.config import MatcherType

logger = logging.getLogger(__name__)

FLANN_INDEX_KDTREE = 1
FLANN_INDEX_LSH = 6


def _empty_result() -> Dict:
    return {
        'matches': [],
        'num_matches': 0,
        'confidence': 0.0
    }


class FeatureMatcher:
    """Match descriptors between two images"""

    def __init__(
        self,
        method: MatcherType = MatcherType.FLANN,
        ratio_threshold: float = 0.7
    ):
        """
        Initialize matcher

        Args:
            method: FLANN or brute force
            ratio_threshold: Lowe's ratio test threshold
        """
        self.method = method
        self.ratio_threshold = ratio_threshold
        logger.info(f"Feature matcher initialized (method: {method.value}, ratio: {ratio_threshold})")

    def _create_matcher(self, binary: bool):
        """Create matcher appropriate for the descriptor type"""
        if self.method == MatcherType.FLANN:
            if binary:
                index_params = dict(algorithm=FLANN_INDEX_LSH, table_number=6, key_size=12, multi_probe_level=1)
            else:
                index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=5)
            return cv2.FlannBasedMatcher(index_params, dict(checks=100))
        return cv2.BFMatcher(cv2.NORM_HAMMING if binary else cv2.NORM_L2, crossCheck=False)

    def match(self, descriptors1: np.ndarray, descriptors2: np.ndarray) -> Dict:
        """
        Match descriptors of a query image against a train image

        Args:
            descriptors1: Query descriptors
            descriptors2: Train descriptors

        Returns:
            Dictionary with 'matches' (cv2.DMatch list passing the ratio
            test), 'num_matches' and 'confidence'
        """
        if descriptors1 is None or descriptors2 is None:
            return _empty_result()

        if descriptors1.ndim != 2 or descriptors2.ndim != 2 or descriptors1.shape[1] != descriptors2.shape[1]:
            logger.warning(f"Incompatible descriptors: {descriptors1.shape}, {descriptors2.shape}")
            return _empty_result()

        if len(descriptors1) < 2 or len(descriptors2) < 2:
            return _empty_result()

        binary = descriptors1.dtype == np.uint8
        if not binary:
            descriptors1 = descriptors1.astype(np.float32)
            descriptors2 = descriptors2.astype(np.float32)

        matcher = self._create_matcher(binary)
        try:
            knn_matches = matcher.knnMatch(descriptors1, descriptors2, k=2)
        except cv2.error as e:
            logger.warning(f"{self.method.value} matching failed, falling back to brute force: {e}")
            bf = cv2.BFMatcher(cv2.NORM_HAMMING if binary else cv2.NORM_L2, crossCheck=False)
            knn_matches = bf.knnMatch(descriptors1, descriptors2, k=2)

        good_matches: List[cv2.DMatch] = []
        for match_pair in knn_matches:
            if len(match_pair) == 2:
                m, n = match_pair
                if m.distance < self.ratio_threshold * n.distance:
                    good_matches.append(m)

        max_descriptors = max(len(descriptors1), len(descriptors2))
        return {
            'matches': good_matches,
            'num_matches': len(good_matches),
            'confidence': len(good_matches) / max_descriptors
        }
