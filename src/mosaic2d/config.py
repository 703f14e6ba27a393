"""
Mosaic configuration

Variant choices (detector, matcher, seam mode, compositing mode) are tagged
enums resolved once when the configuration is built, so call sites never
re-derive them from boolean combinations.
"""

import logging
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import yaml

logger = logging.getLogger(__name__)

TARGET_WIDTH = 640
TARGET_HEIGHT = 360


class DetectorType(Enum):
    KAZE = "kaze"
    AKAZE = "akaze"
    SIFT = "sift"
    ORB = "orb"


class MatcherType(Enum):
    FLANN = "flann"
    BRUTE_FORCE = "brute_force"


class CompositingMode(Enum):
    DIRECT_COPY = "direct_copy"
    MULTI_BAND = "multi_band"


class SeamMode(Enum):
    NONE = "none"
    GRAPH_CUT = "graph_cut"


def _to_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} '{value}' (choices: {choices})") from None


@dataclass(frozen=True)
class CameraCalibration:
    """Pinhole intrinsics and radial/tangential distortion of the capture camera"""

    fx: float = 1101.0
    fy: float = 1101.0
    cx: float = 639.5
    cy: float = 359.5
    k1: float = -0.359
    k2: float = 0.279
    p1: float = 0.0
    p2: float = 0.0
    k3: float = -0.16
    # resolution the intrinsics were measured at
    image_size: Tuple[int, int] = (1280, 720)

    def camera_matrix(self) -> np.ndarray:
        return np.array([[self.fx, 0.0, self.cx],
                         [0.0, self.fy, self.cy],
                         [0.0, 0.0, 1.0]], dtype=np.float64)

    def distortion_coeffs(self) -> np.ndarray:
        # OpenCV ordering
        return np.array([[self.k1, self.k2, self.p1, self.p2, self.k3]], dtype=np.float64)

    def scaled_to(self, width: int, height: int) -> 'CameraCalibration':
        """
        Rescale the intrinsics to another image resolution

        Distortion coefficients are expressed in normalized coordinates and
        do not change with resolution.
        """
        sx = width / self.image_size[0]
        sy = height / self.image_size[1]
        if sx == 1.0 and sy == 1.0:
            return self
        return replace(self,
                       fx=self.fx * sx, fy=self.fy * sy,
                       cx=(self.cx + 0.5) * sx - 0.5, cy=(self.cy + 0.5) * sy - 0.5,
                       image_size=(int(width), int(height)))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CameraCalibration':
        data = dict(data)
        if 'image_size' in data:
            data['image_size'] = tuple(int(v) for v in data['image_size'])
        return cls(**data)


@dataclass
class MosaicConfig:
    """All settings of a mosaic run"""

    tile_width: int = TARGET_WIDTH
    tile_height: int = TARGET_HEIGHT
    # contrast stretch the grayscale copy used for feature detection
    preprocess: bool = True
    calibration: Optional[CameraCalibration] = field(default_factory=CameraCalibration)
    detector: DetectorType = DetectorType.KAZE
    matcher: MatcherType = MatcherType.FLANN
    max_features: int = 5000
    ratio_threshold: float = 0.7
    min_matches: int = 20
    ransac_threshold: float = 3.0
    euclidean_mode: bool = False
    compositing: CompositingMode = CompositingMode.DIRECT_COPY
    seam: SeamMode = SeamMode.NONE
    bands: int = 0
    # simple color balance before warping
    scb: bool = False
    output_format: str = "png"

    def __post_init__(self):
        self.detector = _to_enum(DetectorType, self.detector)
        self.matcher = _to_enum(MatcherType, self.matcher)
        self.compositing = _to_enum(CompositingMode, self.compositing)
        self.seam = _to_enum(SeamMode, self.seam)
        if isinstance(self.calibration, dict):
            self.calibration = CameraCalibration.from_dict(self.calibration)

        if self.tile_width <= 0 or self.tile_height <= 0:
            raise ValueError(f"Tile size must be positive, got {self.tile_width}x{self.tile_height}")
        if self.bands < 0:
            raise ValueError(f"Number of bands must be >= 0, got {self.bands}")
        if not 0.0 < self.ratio_threshold <= 1.0:
            raise ValueError(f"Ratio threshold must be in (0, 1], got {self.ratio_threshold}")
        self.output_format = self.output_format.lower().lstrip('.')

    def resolve(self) -> 'MosaicConfig':
        """
        Validate the compositing combination

        Multi-band compositing needs graph-cut seams and at least one band;
        any other combination falls back to direct copy.
        """
        if self.compositing == CompositingMode.MULTI_BAND:
            if self.seam != SeamMode.GRAPH_CUT or self.bands <= 0:
                logger.warning(
                    f"Multi-band blending requires graph-cut seams and bands > 0 "
                    f"(seam={self.seam.value}, bands={self.bands}), using direct copy"
                )
                self.compositing = CompositingMode.DIRECT_COPY
        return self

    @property
    def tile_size(self) -> Tuple[int, int]:
        return self.tile_width, self.tile_height

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        if self.calibration is not None:
            data['calibration']['image_size'] = list(self.calibration.image_size)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MosaicConfig':
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known}).resolve()

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'MosaicConfig':
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        logger.info(f"Configuration loaded from {path}")
        return cls.from_dict(data)

    def save_yaml(self, path: Union[str, Path]):
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
