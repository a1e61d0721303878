"""Points, axis-aligned extents and the small linear algebra used by layout."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def __add__(self, other: Point) -> Point:
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: Point) -> Point:
        return Point(self.x - other.x, self.y - other.y)

    def __mul__(self, scale: float) -> Point:
        return Point(self.x * scale, self.y * scale)

    def __truediv__(self, scale: float) -> Point:
        return Point(self.x / scale, self.y / scale)

    @property
    def length(self) -> float:
        return math.hypot(self.x, self.y)

    def normalized(self) -> Point:
        """Unit vector in the same direction; the zero vector stays zero."""
        length = self.length
        if length == 0.0:
            return Point(0.0, 0.0)
        return self / length

    def to_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


ORIGIN = Point(0.0, 0.0)


@dataclass(frozen=True)
class Extent:
    """An axis-aligned bounding box."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @classmethod
    def at(cls, point: Point) -> Extent:
        """A zero-size extent sitting on ``point``."""
        return cls(point.x, point.y, point.x, point.y)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def half_width(self) -> float:
        return self.width / 2.0

    @property
    def min(self) -> Point:
        return Point(self.min_x, self.min_y)

    @property
    def max(self) -> Point:
        return Point(self.max_x, self.max_y)

    def encapsulate(self, other: Extent) -> Extent:
        """Smallest extent holding both this one and ``other``."""
        return Extent(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    def translated(self, dx: float, dy: float = 0.0) -> Extent:
        return Extent(self.min_x + dx, self.min_y + dy, self.max_x + dx, self.max_y + dy)

    def to_tuple(self) -> tuple[float, float, float, float]:
        return (self.min_x, self.min_y, self.max_x, self.max_y)


#: Four corners of one connector: top-left, top-right, bottom-left, bottom-right.
Quad = tuple[Point, Point, Point, Point]


def line_intersect(p1: Point, p2: Point, q1: Point, q2: Point) -> Point:
    """
    Intersect the line through ``p1``/``p2`` with the line through ``q1``/``q2``.

    Parallel or coincident lines have no single crossing; the origin is
    returned instead, so callers must treat a zero result away from the
    origin as degenerate.
    """
    a1 = p2.y - p1.y
    b1 = p1.x - p2.x
    c1 = a1 * p1.x + b1 * p1.y

    a2 = q2.y - q1.y
    b2 = q1.x - q2.x
    c2 = a2 * q1.x + b2 * q1.y

    det = a1 * b2 - a2 * b1
    if det == 0:
        return ORIGIN  # parallel lines

    x = (b2 * c1 - b1 * c2) / det
    y = (a1 * c2 - a2 * c1) / det
    return Point(x, y)


def row_reduce(matrix: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """
    Reduce an M x N matrix to reduced row echelon form.

    Uses partial pivoting: each pivot is the largest remaining entry of its
    column. Columns with no non-zero entry left are skipped. The input is not
    modified.
    """
    m = np.array(matrix, dtype=float)
    row_count, column_count = m.shape
    lead = 0

    for r in range(row_count):
        if lead >= column_count:
            break

        pivot = r + int(np.argmax(np.abs(m[r:, lead])))
        while m[pivot, lead] == 0:
            lead += 1
            if lead == column_count:
                return m
            pivot = r + int(np.argmax(np.abs(m[r:, lead])))

        if pivot != r:
            m[[r, pivot]] = m[[pivot, r]]

        m[r] = m[r] / m[r, lead]
        for j in range(row_count):
            if j != r:
                m[j] = m[j] - m[j, lead] * m[r]

        lead += 1

    return m


def triangulate_quads(quads: Sequence[Quad]) -> tuple[np.ndarray, np.ndarray]:
    """
    Build a triangle mesh from connector quads.

    Returns:
        ``(vertices, triangles)``: an (4n, 2) float array and an (2n, 3) index
        array, two triangles per quad.
    """
    vertices = np.array([p.to_tuple() for quad in quads for p in quad], dtype=float).reshape(-1, 2)
    base = np.arange(0, len(vertices), 4)
    triangles = np.stack(
        [
            np.stack([base, base + 1, base + 2], axis=1),
            np.stack([base + 2, base + 1, base + 3], axis=1),
        ],
        axis=1,
    ).reshape(-1, 3)
    return vertices, triangles
