"""SlurCurveFitter: fits a quadratic slur path between two placed items."""

from __future__ import annotations

import logging
from enum import Enum

from abclayout.config import SLUR_CURVATURE_SCALE, SLUR_ENDPOINT_MARGIN, SLUR_SEGMENT_COUNT
from abclayout.exceptions import SlurError
from abclayout.geometry import ORIGIN, Extent, Point, line_intersect, row_reduce
from abclayout.note_placer import NoteDirection
from abclayout.renderer import LayoutRenderer
from abclayout.voice_layout import Element, ScoreLine

logger = logging.getLogger(__name__)


class SlurPosition(Enum):
    ABOVE = "above"
    BELOW = "below"


def collect_elements(start: Element, end: Element) -> list[Element]:
    """
    Return every element from ``start`` to ``end`` inclusive, in reading order.

    The walk crosses measure and score line boundaries of the start's voice.
    ``start`` must precede ``end``.

    Raises:
        SlurError: If the endpoints belong to different voices, or the walk
            runs off the last score line without meeting ``end``.
    """
    start_line = start.measure.score_line
    end_line = end.measure.score_line
    if start_line is None or end_line is None:
        raise SlurError("Slur endpoints must be attached to score lines.")

    voice_layout = start_line.voice_layout
    if end_line.voice_layout is not voice_layout:
        raise SlurError("Slur endpoints belong to different voices.")

    score_lines = voice_layout.score_lines
    line_index = score_lines.index(start_line)
    measure_index = start_line.measures.index(start.measure)
    element_index = start.measure.elements.index(start)

    elements: list[Element] = []
    while True:
        measure = score_lines[line_index].measures[measure_index]

        if element_index < len(measure.elements):
            element = measure.elements[element_index]
            elements.append(element)
            if element is end:
                return elements
            element_index += 1
            continue

        element_index = 0
        measure_index += 1
        if measure_index >= len(score_lines[line_index].measures):
            measure_index = 0
            line_index += 1
        if line_index >= len(score_lines):
            raise SlurError("Slur end does not follow its start in the layout.")


def determine_slur_position(elements: list[Element]) -> SlurPosition:
    """
    Place the slur opposite the stems.

    Stems up put the slur below, stems down put it above, and mixed stem
    directions put it above. Elements without a stem are ignored.
    """
    directions = [e.direction for e in elements if e.direction is not None]
    if not directions:
        return SlurPosition.ABOVE

    initial = directions[0]
    if any(d is not initial for d in directions[1:]):
        return SlurPosition.ABOVE
    return SlurPosition.BELOW if initial is NoteDirection.UP else SlurPosition.ABOVE


def slur_bounding_y(extents: list[Extent], position: SlurPosition) -> float:
    """Highest top (above) or lowest bottom (below) among the extents."""
    if position is SlurPosition.ABOVE:
        return max(e.max_y for e in extents)
    return min(e.min_y for e in extents)


def fit_quadratic(p0: Point, p1: Point, p2: Point) -> tuple[float, float, float]:
    """Coefficients ``(a, b, c)`` of ``y = a*x^2 + b*x + c`` through three points."""
    reduced = row_reduce(
        [
            [p0.x * p0.x, p0.x, 1.0, p0.y],
            [p1.x * p1.x, p1.x, 1.0, p1.y],
            [p2.x * p2.x, p2.x, 1.0, p2.y],
        ]
    )
    return float(reduced[0, 3]), float(reduced[1, 3]), float(reduced[2, 3])


def sample_quadratic(
    coefficients: tuple[float, float, float],
    start: Point,
    end: Point,
    segment_count: int = SLUR_SEGMENT_COUNT,
) -> list[Point]:
    """The start point followed by ``segment_count`` evenly spaced samples up to ``end.x``."""
    a, b, c = coefficients
    step = (end.x - start.x) / segment_count
    points = [start]
    for i in range(1, segment_count + 1):
        x = start.x + step * i
        points.append(Point(x, a * x * x + b * x + c))
    return points


class SlurCurveFitter:
    """
    Builds slur polylines, one per score line the slur touches.

    Each polyline is in the coordinate space of its own score line. A slur
    that crosses a line wrap is cut at the end of the first line and picks
    up again after the preamble of the next.

    Args:
        margin:        Gap between an endpoint and the corner of its item.
        curvature:     How far the control point is pushed past the clamp line.
        segment_count: Number of segments in each produced polyline.
    """

    def __init__(
        self,
        margin: float = SLUR_ENDPOINT_MARGIN,
        curvature: float = SLUR_CURVATURE_SCALE,
        segment_count: int = SLUR_SEGMENT_COUNT,
    ) -> None:
        self.margin = margin
        self.curvature = curvature
        self.segment_count = segment_count

    @staticmethod
    def _line_extent(element: Element) -> Extent:
        return element.root_extent.translated(element.measure.x)

    @staticmethod
    def _score_line(element: Element) -> ScoreLine:
        line = element.measure.score_line
        if line is None:
            raise SlurError("Slur endpoints must be attached to score lines.")
        return line

    def _split_by_line(self, elements: list[Element]) -> list[list[Element]]:
        pieces: list[list[Element]] = []
        for element in elements:
            if pieces and self._score_line(pieces[-1][-1]) is self._score_line(element):
                pieces[-1].append(element)
            else:
                pieces.append([element])
        return pieces

    def _endpoints(self, start: Extent, end: Extent, position: SlurPosition) -> tuple[Point, Point, Point, Point]:
        """Returns ``(start_pos, start_anchor, end_pos, end_anchor)``."""
        if position is SlurPosition.BELOW:
            start_corner = Point(start.max_x, start.min_y)
            end_corner = Point(end.min_x, end.min_y)
            dy = -self.margin
        else:
            start_corner = Point(start.max_x, start.max_y)
            end_corner = Point(end.min_x, end.max_y)
            dy = self.margin

        start_pos = start_corner + Point(self.margin, dy)
        start_anchor = start_corner - Point(start.half_width, 0.0)
        end_pos = end_corner + Point(-self.margin, dy)
        end_anchor = end_corner + Point(end.half_width, 0.0)
        return start_pos, start_anchor, end_pos, end_anchor

    def _fit_piece(
        self,
        elements: list[Element],
        position: SlurPosition,
        continued: bool,
        continues: bool,
    ) -> list[Point]:
        """
        Fit the part of a slur that lies on one score line.

        ``continued`` starts the piece at the first measure of the line and
        ``continues`` ends it at the line's right edge.
        """
        extents = [self._line_extent(e) for e in elements]
        start_extent = extents[0]
        end_extent = extents[-1]
        line = self._score_line(elements[0])
        if continued:
            x = line.measures[0].x
            start_extent = Extent(x, start_extent.min_y, x, start_extent.max_y)
        if continues:
            x = line.width
            end_extent = Extent(x, end_extent.min_y, x, end_extent.max_y)

        start_pos, start_anchor, end_pos, end_anchor = self._endpoints(start_extent, end_extent, position)

        bounding_y = slur_bounding_y(extents, position)
        line_midpoint = (start_pos + end_pos) / 2.0
        anchor_midpoint = (start_anchor + end_anchor) / 2.0

        midpoint = line_intersect(
            line_midpoint,
            anchor_midpoint,
            Point(0.0, bounding_y),
            Point(1.0, bounding_y),
        )
        if midpoint == ORIGIN:
            logger.warning(
                "Degenerate slur midpoint between %s and %s; using the chord midpoint.",
                start_pos,
                end_pos,
            )
            midpoint = Point(line_midpoint.x, bounding_y)

        direction = (line_midpoint - anchor_midpoint).normalized() * self.curvature
        coefficients = fit_quadratic(start_pos, midpoint + direction, end_pos)
        return sample_quadratic(coefficients, start_pos, end_pos, self.segment_count)

    def fit(self, elements: list[Element]) -> list[list[Point]]:
        """
        Fit the slur over already collected elements.

        Returns one polyline per score line, in reading order. Above or below
        placement is decided once for the whole slur.
        """
        position = determine_slur_position(elements)
        pieces = self._split_by_line(elements)
        last = len(pieces) - 1
        return [
            self._fit_piece(piece, position, continued=index > 0, continues=index < last)
            for index, piece in enumerate(pieces)
        ]

    def create(self, start: Element, end: Element, renderer: LayoutRenderer | None = None) -> list[list[Point]]:
        """
        Collect the elements between ``start`` and ``end`` and fit the slur.

        Each polyline is handed to ``renderer`` (when given) inside the
        container of the score line it belongs to.
        """
        elements = collect_elements(start, end)
        pieces = self._split_by_line(elements)
        polylines = self.fit(elements)

        if renderer is not None:
            for piece, polyline in zip(pieces, polylines):
                renderer.materialize_slur_path(self._score_line(piece[0]).container, polyline)
        return polylines
