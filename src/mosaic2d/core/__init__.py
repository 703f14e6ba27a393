"""
Geometry tracking and blending pipeline
"""

from .blender import Blender
from .frame import EUCLIDEAN, NEXT, PERSPECTIVE, PREV, Frame
from .local_stitch import BlendPoint, find_local_stitch
from .mosaic import Mosaic
from .stitcher import Stitcher
from .sub_mosaic import SubMosaic

__all__ = [
    'Blender',
    'BlendPoint',
    'Frame',
    'Mosaic',
    'Stitcher',
    'SubMosaic',
    'find_local_stitch',
    'PERSPECTIVE',
    'EUCLIDEAN',
    'PREV',
    'NEXT',
]
