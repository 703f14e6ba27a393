"""
Local stitch selection: the best matched points between two frames
"""

import functools
from typing import List, Optional

import numpy as np

from mosaic2d.core.frame import NEXT, PREV, Frame

# fraction of the ranked correspondences kept as the local stitch area
LOCAL_STITCH_PERCENT = 5.0


@functools.total_ordering
class BlendPoint:
    """A correspondence ranked by the distance between its endpoints"""

    __slots__ = ('index', 'prev', 'next', 'distance')

    def __init__(self, index: int, prev_point, next_point, distance: Optional[float] = None):
        object.__setattr__(self, 'index', index)
        object.__setattr__(self, 'prev', np.asarray(prev_point, dtype=np.float64))
        object.__setattr__(self, 'next', np.asarray(next_point, dtype=np.float64))
        if distance is None:
            distance = float(np.linalg.norm(self.prev - self.next))
        object.__setattr__(self, 'distance', float(distance))

    def __setattr__(self, name, value):
        raise AttributeError("BlendPoint is immutable")

    def __eq__(self, other):
        if not isinstance(other, BlendPoint):
            return NotImplemented
        return self.distance == other.distance

    def __lt__(self, other):
        if not isinstance(other, BlendPoint):
            return NotImplemented
        return self.distance < other.distance

    def __hash__(self):
        return hash(self.distance)

    def __repr__(self):
        return f"BlendPoint({self.index}, distance={self.distance:.3f})"


def rank_blend_points(prev_points: np.ndarray, next_points: np.ndarray) -> List[BlendPoint]:
    """Pair points index by index and sort them by distance, ascending"""
    n = min(len(prev_points), len(next_points))
    return sorted(BlendPoint(i, prev_points[i], next_points[i]) for i in range(n))


def find_local_stitch(object_frame: Frame, scene_frame: Frame) -> np.ndarray:
    """
    Points of the object frame that best agree with the scene frame

    The object's PREV grid points are paired with the scene's NEXT grid
    points; the closest 5% (rounded down) are returned, so fewer than 20
    correspondences yield no point.

    Returns:
        (K, 2) array of object PREV points
    """
    blend_points = rank_blend_points(object_frame.grid_points[PREV], scene_frame.grid_points[NEXT])
    count = int(LOCAL_STITCH_PERCENT * len(blend_points) / 100.0)

    if count == 0:
        return np.zeros((0, 2), dtype=np.float64)
    return np.array([bp.prev for bp in blend_points[:count]], dtype=np.float64)
