# capsule.py

import math
import numba
import numpy as np
import constants
from particle import to_world_vector


@numba.jit(nopython=True)
def _closest_point_on_segment(x, y, p0x, p0y, p1x, p1y):
    """
    Projects (x, y) onto the segment p0-p1, clamping the segment parameter
    to [0, 1]. A zero-length segment projects everything onto p0.
    """
    ex = p1x - p0x
    ey = p1y - p0y
    seg_len_sq = ex * ex + ey * ey
    t = 0.0
    if seg_len_sq > 0.0:
        t = ((x - p0x) * ex + (y - p0y) * ey) / seg_len_sq
        if t < 0.0:
            t = 0.0
        elif t > 1.0:
            t = 1.0
    return p0x + t * ex, p0y + t * ey


@numba.jit(nopython=True)
def _capsule_eval(x, y, p0x, p0y, p1x, p1y, radius):
    """Signed distance from (x, y) to the capsule surface."""
    qx, qy = _closest_point_on_segment(x, y, p0x, p0y, p1x, p1y)
    dx = x - qx
    dy = y - qy
    return math.sqrt(dx * dx + dy * dy) - radius


class Capsule:
    """
    A static obstacle: a line segment swept by a circle.

    Data Contract:
    - Inputs:
        - p0, p1: segment endpoints in raw world units.
        - radius (float): raw world units, must be >= 0.
        - scale (float): WORLD_SCALE for raw inputs, 1.0 for scaled inputs.
    - Invariants: immutable once built; endpoint arrays are read-only.
      A zero-length capsule behaves as a disc, a zero-radius one as a segment.
    """
    def __init__(self, p0, p1, radius: float, color=constants.CAPSULE_COLOR, scale: float = constants.WORLD_SCALE):
        if radius < 0:
            raise ValueError(f"Capsule radius must be non-negative, got {radius}")
        self._p0 = to_world_vector(p0, scale)
        self._p1 = to_world_vector(p1, scale)
        self._p0.flags.writeable = False
        self._p1.flags.writeable = False
        self._radius = float(radius) * scale
        self._color = tuple(color)

    @property
    def p0(self):
        return self._p0

    @property
    def p1(self):
        return self._p1

    @property
    def radius(self):
        return self._radius

    @property
    def color(self):
        return self._color

    def with_p1(self, p1):
        """Returns a copy with a new second endpoint given in scaled world units."""
        return Capsule(self._p0, p1, self._radius, self._color, scale=1.0)

    def eval(self, x) -> float:
        """
        Evaluates the implicit function of the capsule at the scaled world
        position x: negative inside, zero on the border, positive outside.
        """
        return float(_capsule_eval(float(x[0]), float(x[1]),
                                   self._p0[0], self._p0[1], self._p1[0], self._p1[1],
                                   self._radius))

    def as_row(self):
        """The (p0x, p0y, p1x, p1y, radius) layout used by the collision kernel."""
        return (self._p0[0], self._p0[1], self._p1[0], self._p1[1], self._radius)

    def __repr__(self):
        return f"Capsule(p0={self._p0.tolist()}, p1={self._p1.tolist()}, radius={self._radius})"
