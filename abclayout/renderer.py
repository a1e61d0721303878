"""Renderer collaborator interface consumed by the layout engine."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from abclayout.geometry import Extent, Point, Quad


@dataclass(frozen=True)
class Glyph:
    """
    One visual asset the engine asks the renderer to place.

    Attributes:
        name:    Asset name, e.g. ``Note_Quarter_Up`` or ``Staff_Mark``.
        scale_x: Horizontal stretch applied to the asset.
        scale_y: Vertical stretch applied to the asset (stems).
    """

    name: str
    scale_x: float = 1.0
    scale_y: float = 1.0


class LayoutRenderer(ABC):
    """
    Abstract collaborator that turns layout decisions into visuals.

    The engine only ever sees opaque integer container handles and the
    extents the renderer reports back. Positions passed to ``materialize``
    are local to the container; returned extents are in the same space.
    Implementations must not call back into the engine.
    """

    @abstractmethod
    def new_container(self, label: str, parent: int | None = None) -> int:
        """Allocate an empty container under ``parent`` and return its handle."""

    @abstractmethod
    def place_container(self, handle: int, parent: int | None, x: float, y: float) -> None:
        """Attach a container to ``parent`` (None for the root) at ``(x, y)``."""

    @abstractmethod
    def materialize(self, glyph: Glyph, container: int, position: Point) -> Extent:
        """Place ``glyph`` at ``position`` inside ``container``; return its extent."""

    @abstractmethod
    def materialize_beam_connector(self, container: int, quads: Sequence[Quad]) -> None:
        """Draw beam connectors, four corners per quad."""

    @abstractmethod
    def materialize_slur_path(self, container: int, polyline: Sequence[Point]) -> None:
        """Draw a slur through the given points."""

    @abstractmethod
    def scale_staff_line(self, container: int, width_ratio: float) -> None:
        """Stretch the staff glyph of a staff line container horizontally."""

    def reset(self) -> None:
        """Discard everything produced by a previous pass."""
