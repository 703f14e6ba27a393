"""
Pairwise registration: matched points and the transform between two frames
"""

import cv2
import numpy as np
from typing import Optional, Tuple
import logging

from mosaic2d.config import DetectorType, MosaicConfig
from mosaic2d.core.frame import NEXT, PREV, Frame, project_points
from mosaic2d.ml.feature_detector import FeatureDetector, create_feature_detector
from mosaic2d.ml.matcher import FeatureMatcher

logger = logging.getLogger(__name__)

# determinant bounds of the linear part of an acceptable transform
MIN_DETERMINANT = 1e-3
MAX_DETERMINANT = 1e3


def is_invertible(transform: Optional[np.ndarray]) -> bool:
    if transform is None or not np.all(np.isfinite(transform)):
        return False
    det = abs(np.linalg.det(transform[:2, :2]))
    return MIN_DETERMINANT < det < MAX_DETERMINANT and abs(np.linalg.det(transform)) > 1e-12


def estimate_transform(
    src: np.ndarray,
    dst: np.ndarray,
    euclidean: bool = False,
    ransac_threshold: float = 3.0
) -> Tuple[Optional[np.ndarray], np.ndarray]:
    """
    Estimate the transform mapping src points onto dst points

    Args:
        src: (N, 2) source points
        dst: (N, 2) destination points
        euclidean: Similarity transform (rotation, uniform scale,
            translation) instead of a homography
        ransac_threshold: RANSAC reprojection threshold in pixels

    Returns:
        Tuple of (3x3 transform or None on failure, boolean inlier mask)
    """
    n = len(src)
    no_inliers = np.zeros(n, dtype=bool)
    if n < 4:
        return None, no_inliers

    src = np.asarray(src, dtype=np.float32).reshape(-1, 1, 2)
    dst = np.asarray(dst, dtype=np.float32).reshape(-1, 1, 2)

    if euclidean:
        affine, mask = cv2.estimateAffinePartial2D(src, dst, method=cv2.RANSAC,
                                                   ransacReprojThreshold=ransac_threshold)
        transform = None if affine is None else np.vstack([affine, [0.0, 0.0, 1.0]])
    else:
        transform, mask = cv2.findHomography(src, dst, cv2.RANSAC, ransac_threshold)

    if transform is None or mask is None:
        return None, no_inliers

    transform = transform.astype(np.float64)
    if not is_invertible(transform):
        logger.debug("Rejecting degenerate transform")
        return None, no_inliers

    return transform, mask.ravel().astype(bool)


def reprojection_error(src: np.ndarray, dst: np.ndarray, transform: np.ndarray) -> float:
    """Root mean square distance between projected src points and dst points"""
    if len(src) == 0:
        return 0.0
    projected = project_points(src, transform)
    return float(np.sqrt(np.mean(np.sum((projected - dst) ** 2, axis=1))))


class Stitcher:
    """Register a frame (object) onto its predecessor (scene)"""

    def __init__(
        self,
        detector: Optional[FeatureDetector] = None,
        matcher: Optional[FeatureMatcher] = None,
        euclidean: bool = False,
        min_matches: int = 20,
        ransac_threshold: float = 3.0
    ):
        """
        Initialize stitcher

        Args:
            detector: Feature detector, KAZE when omitted
            matcher: Descriptor matcher, FLANN when omitted
            euclidean: Register with similarity transforms only
            min_matches: Minimum ratio-test matches to attempt an estimate
            ransac_threshold: RANSAC reprojection threshold in pixels
        """
        self.detector = detector or create_feature_detector(DetectorType.KAZE)
        self.matcher = matcher or FeatureMatcher()
        self.euclidean = euclidean
        self.min_matches = min_matches
        self.ransac_threshold = ransac_threshold

    @classmethod
    def from_config(cls, config: MosaicConfig) -> 'Stitcher':
        return cls(
            detector=create_feature_detector(config.detector, config.max_features),
            matcher=FeatureMatcher(config.matcher, config.ratio_threshold),
            euclidean=config.euclidean_mode,
            min_matches=config.min_matches,
            ransac_threshold=config.ransac_threshold
        )

    def detect(self, frame: Frame):
        """Fill the frame keypoints and descriptors from its gray image"""
        frame.keypoints, frame.descriptors = self.detector.detect_and_compute(frame.gray)

    def stitch(
        self,
        object_frame: Frame,
        scene_frame: Frame,
        scene_index: Optional[int] = None
    ) -> Optional[np.ndarray]:
        """
        Estimate the transform from object frame pixels to scene frame pixels

        On success the inlier correspondences are stored as
        object.grid_points[PREV] (object pixel coordinates) and
        scene.grid_points[NEXT] (scene mosaic coordinates), and the object's
        frame_error is the inlier reprojection error.

        Returns:
            3x3 relative transform, or None when registration fails
        """
        for frame in (object_frame, scene_frame):
            if not frame.have_keypoints():
                self.detect(frame)

        result = self.matcher.match(object_frame.descriptors, scene_frame.descriptors)
        if result['num_matches'] < self.min_matches:
            logger.warning(f"Not enough matches ({result['num_matches']} < {self.min_matches})")
            return None

        matches = result['matches']
        obj_pts = np.array([object_frame.keypoints[m.queryIdx].pt for m in matches], dtype=np.float64)
        sc_pts = np.array([scene_frame.keypoints[m.trainIdx].pt for m in matches], dtype=np.float64)

        transform, inliers = estimate_transform(obj_pts, sc_pts, self.euclidean, self.ransac_threshold)
        if transform is None:
            logger.warning("Transform estimation failed")
            return None

        obj_pts, sc_pts = obj_pts[inliers], sc_pts[inliers]
        object_frame.frame_error = reprojection_error(obj_pts, sc_pts, transform)
        object_frame.grid_points[PREV] = obj_pts
        object_frame.good_points[PREV] = obj_pts.copy()
        scene_frame.grid_points[NEXT] = project_points(sc_pts, scene_frame.H)
        scene_frame.good_points[NEXT] = sc_pts.copy()
        if scene_index is not None:
            object_frame.neighbors.append(scene_index)

        logger.debug(f"Registered with {len(obj_pts)}/{len(matches)} inliers, "
                     f"error {object_frame.frame_error:.2f}px")
        return transform

    def similarity(self, object_frame: Frame, scene_frame: Frame) -> Optional[np.ndarray]:
        """
        Similarity-only estimate of the last object/scene registration

        Fits the pixel-space inliers stored by stitch(); used to track the
        euclidean reference chain.
        """
        transform, _ = estimate_transform(object_frame.good_points[PREV], scene_frame.good_points[NEXT],
                                          euclidean=True, ransac_threshold=self.ransac_threshold)
        return transform
