"""GlyphMetricsRenderer: a headless renderer backed by a glyph metrics table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Final, Sequence

import numpy as np

from abclayout.geometry import Extent, Point, Quad, triangulate_quads
from abclayout.renderer import Glyph, LayoutRenderer

logger = logging.getLogger(__name__)

# (min_x, min_y, max_x, max_y) of each glyph at unit scale, relative to the
# glyph origin. The origin of a note head is the centre of its staff step.
GLYPH_METRICS: Final[dict[str, tuple[float, float, float, float]]] = {
    "Staff": (0.0, -0.28, 6.0, 1.96),
    "Staff_Mark": (-0.15, -0.02, 0.8, 0.02),
    "Clef_Treble": (0.0, -0.9, 1.4, 2.9),
    "Clef_Bass": (0.0, 0.5, 1.4, 2.0),
    "Time_Common": (0.0, -0.4, 0.9, 0.4),
    "Time_Cut": (0.0, -0.55, 0.9, 0.55),
    "Note_Whole": (0.0, -0.28, 0.9, 0.28),
    "Note_Half_Up": (0.0, -0.28, 0.7, 1.92),
    "Note_Half_Down": (0.0, -1.64, 0.65, 0.28),
    "Note_Quarter_Up": (0.0, -0.28, 0.7, 1.92),
    "Note_Quarter_Down": (0.0, -1.64, 0.65, 0.28),
    "Note_Eighth_Up": (0.0, -0.28, 1.15, 1.92),
    "Note_Eighth_Down": (0.0, -1.64, 1.1, 0.28),
    "Note_Sixteenth_Up": (0.0, -0.28, 1.15, 2.1),
    "Note_Sixteenth_Down": (0.0, -1.82, 1.1, 0.28),
    "Note_ThirtySecond_Up": (0.0, -0.28, 1.15, 2.4),
    "Note_ThirtySecond_Down": (0.0, -2.12, 1.1, 0.28),
    "Note_SixtyFourth_Up": (0.0, -0.28, 1.15, 2.7),
    "Note_SixtyFourth_Down": (0.0, -2.42, 1.1, 0.28),
    "Note_Stem_Up": (0.0, 0.0, 0.05, 1.0),
    "Note_Stem_Down": (0.0, -1.0, 0.05, 0.0),
    "Note_Dot": (0.0, -0.06, 0.12, 0.06),
    "Chord_Whole": (0.0, -0.28, 0.9, 0.28),
    "Chord_Half": (0.0, -0.28, 0.65, 0.28),
    "Chord_Quarter": (0.0, -0.28, 0.65, 0.28),
    "Accidental_Sharp": (0.0, -0.5, 0.4, 0.5),
    "Accidental_Flat": (0.0, -0.2, 0.35, 0.6),
    "Accidental_Natural": (0.0, -0.5, 0.3, 0.5),
    "Accidental_DoubleSharp": (0.0, -0.2, 0.4, 0.2),
    "Accidental_DoubleFlat": (0.0, -0.2, 0.6, 0.6),
    "Rest_Half": (0.0, 0.0, 0.6, 0.15),
    "Rest_Quarter": (0.0, 0.0, 0.45, 1.2),
    "Rest_Eighth": (0.0, 0.2, 0.5, 1.0),
    "Rest_Sixteenth": (0.0, -0.3, 0.6, 1.0),
    "Rest_ThirtySecond": (0.0, -0.6, 0.7, 1.3),
    "Rest_SixtyFourth": (0.0, -0.9, 0.8, 1.3),
    "Bar_Line": (0.0, -0.28, 0.05, 1.96),
    "Bar_Double": (0.0, -0.28, 0.2, 1.96),
    "Bar_Final": (0.0, -0.28, 0.3, 1.96),
    "Bar_Start": (0.0, -0.28, 0.3, 1.96),
    "Bar_RepeatEnd": (0.0, -0.28, 0.45, 1.96),
    "Bar_RepeatStart": (0.0, -0.28, 0.45, 1.96),
}

#: Width of one time signature digit.
_DIGIT_WIDTH: Final[float] = 0.7
_DIGIT_METRICS: Final[tuple[float, float]] = (-0.2, 0.7)


def glyph_metrics(name: str) -> tuple[float, float, float, float] | None:
    """Unit-scale bounds of ``name``; time signature numbers are built per digit."""
    metrics = GLYPH_METRICS.get(name)
    if metrics is not None:
        return metrics

    prefix, _, suffix = name.partition("_")
    if prefix == "Time" and suffix.isdigit():
        low, high = _DIGIT_METRICS
        return (0.0, low, _DIGIT_WIDTH * len(suffix), high)
    return None


@dataclass
class PlacedGlyph:
    name: str
    position: Point
    scale_x: float
    scale_y: float
    extent: Extent


@dataclass
class Node:
    """A container: an offset from its parent plus what was drawn inside it."""

    handle: int
    label: str
    parent: int | None = None
    x: float = 0.0
    y: float = 0.0
    children: list[int] = field(default_factory=list)
    glyphs: list[PlacedGlyph] = field(default_factory=list)
    beams: list[tuple[np.ndarray, np.ndarray]] = field(default_factory=list)
    slurs: list[list[Point]] = field(default_factory=list)


class GlyphMetricsRenderer(LayoutRenderer):
    """
    Renderer that draws nothing; it records a display list and measures every
    glyph from ``GLYPH_METRICS``.

    Released glyph records go to a free list keyed by asset name and are
    reused by later passes.
    """

    def __init__(self, metrics: dict[str, tuple[float, float, float, float]] | None = None) -> None:
        self.metrics = dict(GLYPH_METRICS)
        if metrics:
            self.metrics.update(metrics)

        self.nodes: dict[int, Node] = {}
        self.roots: list[int] = []
        self._next_handle = 1
        self._pool: dict[str, list[PlacedGlyph]] = {}
        self._missing: set[str] = set()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _lookup(self, name: str) -> tuple[float, float, float, float] | None:
        metrics = self.metrics.get(name)
        if metrics is None:
            metrics = glyph_metrics(name)
        if metrics is None and name not in self._missing:
            self._missing.add(name)
            logger.warning("Could not locate glyph: %s", name)
        return metrics

    def _measure(self, glyph: Glyph, position: Point) -> Extent:
        metrics = self._lookup(glyph.name)
        if metrics is None:
            return Extent.at(position)

        min_x, min_y, max_x, max_y = metrics
        xs = (position.x + min_x * glyph.scale_x, position.x + max_x * glyph.scale_x)
        ys = (position.y + min_y * glyph.scale_y, position.y + max_y * glyph.scale_y)
        return Extent(min(xs), min(ys), max(xs), max(ys))

    def _acquire(self, glyph: Glyph, position: Point, extent: Extent) -> PlacedGlyph:
        free = self._pool.get(glyph.name)
        if free:
            placed = free.pop()
            placed.position = position
            placed.scale_x = glyph.scale_x
            placed.scale_y = glyph.scale_y
            placed.extent = extent
            return placed
        return PlacedGlyph(glyph.name, position, glyph.scale_x, glyph.scale_y, extent)

    def _node(self, handle: int) -> Node:
        try:
            return self.nodes[handle]
        except KeyError:
            raise KeyError(f"Unknown container handle: {handle}") from None

    # ------------------------------------------------------------------
    # LayoutRenderer
    # ------------------------------------------------------------------

    def new_container(self, label: str, parent: int | None = None) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self.nodes[handle] = Node(handle, label)
        self._attach(handle, parent)
        return handle

    def _attach(self, handle: int, parent: int | None) -> None:
        node = self._node(handle)
        if node.parent is not None:
            self._node(node.parent).children.remove(handle)
        elif handle in self.roots:
            self.roots.remove(handle)

        node.parent = parent
        if parent is None:
            self.roots.append(handle)
        else:
            self._node(parent).children.append(handle)

    def place_container(self, handle: int, parent: int | None, x: float, y: float) -> None:
        self._attach(handle, parent)
        node = self._node(handle)
        node.x = x
        node.y = y

    def materialize(self, glyph: Glyph, container: int, position: Point) -> Extent:
        extent = self._measure(glyph, position)
        self._node(container).glyphs.append(self._acquire(glyph, position, extent))
        return extent

    def materialize_beam_connector(self, container: int, quads: Sequence[Quad]) -> None:
        if not quads:
            return
        self._node(container).beams.append(triangulate_quads(quads))

    def materialize_slur_path(self, container: int, polyline: Sequence[Point]) -> None:
        self._node(container).slurs.append(list(polyline))

    def scale_staff_line(self, container: int, width_ratio: float) -> None:
        for placed in self._node(container).glyphs:
            if placed.name == "Staff":
                placed.scale_x = width_ratio
                placed.extent = self._measure(Glyph("Staff", width_ratio, placed.scale_y), placed.position)

    def reset(self) -> None:
        for node in self.nodes.values():
            for placed in node.glyphs:
                self._pool.setdefault(placed.name, []).append(placed)
        self.nodes.clear()
        self.roots.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def pool_size(self, name: str) -> int:
        """Number of released glyph records waiting for reuse."""
        return len(self._pool.get(name, []))

    def world_offset(self, handle: int) -> Point:
        """Offset of a container from the root, summed up the parent chain."""
        offset = Point(0.0, 0.0)
        current: int | None = handle
        while current is not None:
            node = self._node(current)
            offset = offset + Point(node.x, node.y)
            current = node.parent
        return offset

    def glyphs(self, name: str | None = None) -> list[PlacedGlyph]:
        """Every placed glyph, optionally only those named ``name``."""
        return [g for node in self.nodes.values() for g in node.glyphs if name is None or g.name == name]

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable display list rooted at the top-level containers."""

        def node_to_dict(handle: int) -> dict[str, Any]:
            node = self.nodes[handle]
            return {
                "handle": node.handle,
                "label": node.label,
                "offset": [node.x, node.y],
                "glyphs": [
                    {
                        "name": g.name,
                        "position": list(g.position.to_tuple()),
                        "scale": [g.scale_x, g.scale_y],
                        "extent": list(g.extent.to_tuple()),
                    }
                    for g in node.glyphs
                ],
                "beams": [
                    {"vertices": vertices.tolist(), "triangles": triangles.tolist()}
                    for vertices, triangles in node.beams
                ],
                "slurs": [[list(p.to_tuple()) for p in slur] for slur in node.slurs],
                "children": [node_to_dict(child) for child in node.children],
            }

        return {"containers": [node_to_dict(root) for root in self.roots]}
