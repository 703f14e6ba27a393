"""
Frame: one image of the sequence and its accumulated geometric state

A frame tracks two parallel coordinate chains. PERSPECTIVE follows the raw
projective transforms and drives rendering (H, bound_rect); EUCLIDEAN follows
a rectified similarity-only chain (E).
"""

import copy
import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from mosaic2d.config import TARGET_HEIGHT, TARGET_WIDTH, CameraCalibration
from mosaic2d.core.enhance import channel_stretch

logger = logging.getLogger(__name__)

# reference modes (index into bound_points)
PERSPECTIVE = 0
EUCLIDEAN = 1

# neighbor side (index into grid_points / good_points)
PREV = 0
NEXT = 1

CENTER = 4

# Registration quality thresholds, empirically tuned and subject to revision
MAX_AREA_RATIO = 1.5
MAX_DIAGONAL_RATIO = 1.6
MIN_KEYPOINT_AREA_RATIO = 0.2


def _empty_points() -> np.ndarray:
    return np.zeros((0, 2), dtype=np.float64)


def tile_points(width: float, height: float) -> np.ndarray:
    """Four tile corners (clockwise from the origin) followed by the center"""
    return np.array([
        [0.0, 0.0],
        [width, 0.0],
        [width, height],
        [0.0, height],
        [width / 2.0, height / 2.0],
    ], dtype=np.float64)


def project_points(points: np.ndarray, transform: np.ndarray) -> np.ndarray:
    """Apply a 3x3 projective transform to an (N, 2) point array"""
    if len(points) == 0:
        return _empty_points()
    projected = cv2.perspectiveTransform(
        np.asarray(points, dtype=np.float64).reshape(-1, 1, 2),
        np.asarray(transform, dtype=np.float64)
    )
    return projected.reshape(-1, 2)


class Frame:
    """Image of the sequence plus its transform, extent and match state"""

    def __init__(
        self,
        image: np.ndarray,
        preprocess: bool = True,
        width: int = TARGET_WIDTH,
        height: int = TARGET_HEIGHT,
        calibration: Optional[CameraCalibration] = None
    ):
        """
        Build a frame from a raw BGR image

        Args:
            image: Raw BGR image
            preprocess: Contrast stretch (1st-99th percentile) the gray copy
            width: Tile width every frame is resized to
            height: Tile height every frame is resized to
            calibration: Camera calibration used to undistort, None to skip
        """
        self.width = int(width)
        self.height = int(height)
        self.preprocess = preprocess

        if image is None or image.size == 0:
            logger.warning("Empty image given to Frame, building a black frame")
            self.color = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        else:
            if image.ndim == 2:
                image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
            if image.shape[1] != self.width or image.shape[0] != self.height:
                image = cv2.resize(image, (self.width, self.height), interpolation=cv2.INTER_AREA)
            if calibration is not None:
                calib = calibration.scaled_to(self.width, self.height)
                self.color = cv2.undistort(image, calib.camera_matrix(), calib.distortion_coeffs())
            else:
                self.color = image.copy()

        self.gray = self._derive_gray()

        self.keypoints: List[cv2.KeyPoint] = []
        self.descriptors: Optional[np.ndarray] = None
        self.grid_points: List[np.ndarray] = [_empty_points(), _empty_points()]
        self.good_points: List[np.ndarray] = [_empty_points(), _empty_points()]
        self.neighbors: List[int] = []
        self.frame_error = 0.0

        self.bound_points: List[np.ndarray] = [
            tile_points(self.width, self.height),
            tile_points(self.width, self.height),
        ]
        self._bound_rect: Tuple[float, float, float, float] = (0.0, 0.0, float(self.width), float(self.height))

        self.H = np.eye(3, dtype=np.float64)
        self.E = np.eye(3, dtype=np.float64)

    def _derive_gray(self) -> np.ndarray:
        gray = cv2.cvtColor(self.color, cv2.COLOR_BGR2GRAY)
        if self.preprocess:
            gray = channel_stretch(gray, 1, 99)
        return gray

    @property
    def bound_rect(self) -> Tuple[float, float, float, float]:
        """Axis-aligned envelope (x, y, width, height) of the perspective corners"""
        return self._bound_rect

    def clone(self) -> 'Frame':
        """
        Independent copy of the frame

        Pixel buffers are copied and the gray image is re-derived from the
        copy; nothing mutable is shared with the original.
        """
        new_frame = Frame.__new__(Frame)
        new_frame.width = self.width
        new_frame.height = self.height
        new_frame.preprocess = self.preprocess
        new_frame.color = self.color.copy()
        new_frame.gray = new_frame._derive_gray()

        new_frame.keypoints = [cv2.KeyPoint(kp.pt[0], kp.pt[1], kp.size, kp.angle,
                                            kp.response, kp.octave, kp.class_id)
                               for kp in self.keypoints]
        new_frame.descriptors = None if self.descriptors is None else self.descriptors.copy()
        new_frame.grid_points = [p.copy() for p in self.grid_points]
        new_frame.good_points = [p.copy() for p in self.good_points]
        new_frame.bound_points = [p.copy() for p in self.bound_points]
        new_frame.neighbors = copy.copy(self.neighbors)
        new_frame.frame_error = self.frame_error
        new_frame._bound_rect = self._bound_rect
        new_frame.H = self.H.copy()
        new_frame.E = self.E.copy()
        return new_frame

    def reset_frame(self):
        """Back to the identity placement, keeping pixel data and PREV matches"""
        self.H = np.eye(3, dtype=np.float64)
        self.E = np.eye(3, dtype=np.float64)
        self.bound_points[PERSPECTIVE] = tile_points(self.color.shape[1], self.color.shape[0])
        self.bound_points[EUCLIDEAN] = tile_points(self.color.shape[1], self.color.shape[0])
        self._bound_rect = (0.0, 0.0, float(self.color.shape[1]), float(self.color.shape[0]))
        self.grid_points[NEXT] = _empty_points()
        self.neighbors = []

    def set_h_reference(self, transform: np.ndarray, ref: int = PERSPECTIVE):
        """
        Compose a new transform on top of the frame's current placement

        The most recently applied transform is outermost: H <- transform @ H.

        Args:
            transform: 3x3 projective transform
            ref: PERSPECTIVE or EUCLIDEAN chain
        """
        transform = np.asarray(transform, dtype=np.float64)
        self.bound_points[ref] = project_points(self.bound_points[ref], transform)

        if ref == PERSPECTIVE:
            for side in (PREV, NEXT):
                if len(self.grid_points[side]):
                    self.grid_points[side] = project_points(self.grid_points[side], transform)
            self.update_bound_rect()
            self.H = transform @ self.H
        else:
            self.E = transform @ self.E

    def update_bound_rect(self):
        """Recompute bound_rect from the four perspective corners"""
        corners = self.bound_points[PERSPECTIVE][:CENTER]
        if not np.all(np.isfinite(corners)):
            logger.warning("Degenerate frame corners, keeping tile extent as bounding rect")
            self._bound_rect = (0.0, 0.0, float(self.width), float(self.height))
            return

        left, top = corners.min(axis=0)
        right, bottom = corners.max(axis=0)
        self._bound_rect = (float(left), float(top), float(right - left), float(bottom - top))

    def bound_area_keypoints(self) -> float:
        """Area of the convex hull enclosing the PREV matched points"""
        points = self.grid_points[PREV]
        if len(points) < 3:
            return 0.0
        hull = cv2.convexHull(points.astype(np.float32))
        return float(cv2.contourArea(hull))

    def is_good_frame(self) -> bool:
        """
        Registration quality gate

        Rejects over-expanded quadrilaterals, strongly skewed ones and
        transforms estimated from too small a keypoint support.
        """
        points = self.bound_points[PERSPECTIVE]
        nominal_area = float(self.color.shape[1] * self.color.shape[0])

        # corner to center distances
        semi_diag = np.linalg.norm(points[:CENTER] - points[CENTER], axis=1)
        if np.any(semi_diag < 1e-9) or not np.all(np.isfinite(semi_diag)):
            logger.debug("Rejecting frame: degenerate semi diagonals")
            return False

        ratios = (
            max(semi_diag[0] / semi_diag[2], semi_diag[2] / semi_diag[0]),
            max(semi_diag[1] / semi_diag[3], semi_diag[3] / semi_diag[1]),
        )
        area = float(cv2.contourArea(points[:CENTER].astype(np.float32)))
        keypoints_area = self.bound_area_keypoints()

        if area > MAX_AREA_RATIO * nominal_area:
            logger.debug(f"Rejecting frame: area {area:.0f} > {MAX_AREA_RATIO} x tile")
            return False
        if ratios[0] > MAX_DIAGONAL_RATIO or ratios[1] > MAX_DIAGONAL_RATIO:
            logger.debug(f"Rejecting frame: diagonal ratios {ratios[0]:.2f}, {ratios[1]:.2f}")
            return False
        if keypoints_area < MIN_KEYPOINT_AREA_RATIO * nominal_area:
            logger.debug(f"Rejecting frame: keypoint area {keypoints_area:.0f} too small")
            return False

        return True

    def have_keypoints(self) -> bool:
        return len(self.keypoints) > 0

    def __repr__(self) -> str:
        x, y, w, h = self._bound_rect
        return f"Frame({self.width}x{self.height}, bound_rect=({x:.1f}, {y:.1f}, {w:.1f}, {h:.1f}))"
