"""Feature detection and descriptor matching"""

from .feature_detector import FeatureDetector, create_feature_detector
from .matcher import FeatureMatcher

__all__ = [
    'FeatureDetector',
    'FeatureMatcher',
    'create_feature_detector',
]
