"""Per-voice layout cursors and the score line / measure / element tree."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from abclayout.alignment import BeatAlignment, Measure
from abclayout.exceptions import LayoutError
from abclayout.geometry import Extent
from abclayout.note_placer import NoteDirection
from abclayout.renderer import LayoutRenderer
from abclayout.tune_models import Clef, DurationItem, Voice


@dataclass(eq=False)
class Element:
    """A placed duration item and where it lives in the layout tree."""

    item: DurationItem
    handle: int
    root_extent: Extent
    total_extent: Extent
    direction: NoteDirection | None
    measure: MeasureLayout


@dataclass(eq=False)
class MeasureLayout:
    """
    One laid-out measure of one voice.

    Element extents are local to the measure; ``x`` is the measure's offset
    within its score line.
    """

    container: int
    source: Measure
    elements: list[Element] = field(default_factory=list)
    score_line: ScoreLine | None = None
    x: float = 0.0
    width: float = 0.0


@dataclass(eq=False)
class ScoreLine:
    """One printed line of one voice."""

    voice_layout: VoiceLayoutState
    container: int
    measures: list[MeasureLayout] = field(default_factory=list)
    width: float = 0.0
    y: float = 0.0


class VoiceLayoutState:
    """
    Running layout state for one voice.

    Two trackers run side by side: the staff tracker spans the current
    printed line and resets on every line wrap; the measure tracker spans the
    current measure and resets on every measure. Each holds a horizontal
    cursor and the vertical extent seen so far.
    """

    def __init__(self, voice: Voice, renderer: LayoutRenderer) -> None:
        self.voice = voice
        self.renderer = renderer
        self.alignment = BeatAlignment(voice)
        self.score_lines: list[ScoreLine] = []

        self.staff_x = 0.0
        self.staff_min_y = math.inf
        self.staff_max_y = -math.inf
        self.staff_base_width = 0.0

        self.measure_x = 0.0
        self.measure_min_y = math.inf
        self.measure_max_y = -math.inf

        #: Index of the next beat to render in the current measure.
        self.beat_alignment_index = 0

        self.staffline_container: int | None = None
        self.measure: MeasureLayout | None = None

    @property
    def clef(self) -> Clef:
        return self.voice.clef

    @property
    def score_line(self) -> ScoreLine:
        return self.score_lines[-1]

    @property
    def current_measure(self) -> MeasureLayout:
        """
        Raises:
            LayoutError: If no measure has been opened yet.
        """
        if self.measure is None:
            raise LayoutError("No measure is open for this voice.")
        return self.measure

    @property
    def height(self) -> float:
        """Vertical span of the current staff line."""
        if self.staff_max_y < self.staff_min_y:
            return 0.0
        return self.staff_max_y - self.staff_min_y

    def update_measure_bounds(self, extent: Extent) -> None:
        self.measure_min_y = min(self.measure_min_y, extent.min_y)
        self.measure_max_y = max(self.measure_max_y, extent.max_y)

    def update_staff_bounds(self, extent: Extent) -> None:
        self.staff_min_y = min(self.staff_min_y, extent.min_y)
        self.staff_max_y = max(self.staff_max_y, extent.max_y)

    def update_staff_bounding(self) -> None:
        """Fold the current measure's vertical extent into the staff tracker."""
        self.staff_min_y = min(self.staff_min_y, self.measure_min_y)
        self.staff_max_y = max(self.staff_max_y, self.measure_max_y)

    def new_measure(self, source: Measure, padding: float) -> MeasureLayout:
        """Reset the measure tracker and open a fresh measure container."""
        self.beat_alignment_index = 0
        self.measure_x = padding
        self.measure_min_y = math.inf
        self.measure_max_y = -math.inf
        self.measure = MeasureLayout(self.renderer.new_container("Measure"), source)
        return self.measure

    def new_staffline(self) -> ScoreLine:
        """Reset the staff tracker and open a fresh score line container."""
        self.staff_x = 0.0
        self.staff_min_y = math.inf
        self.staff_max_y = -math.inf
        self.staffline_container = self.renderer.new_container("Staffline")
        line = ScoreLine(self, self.staffline_container)
        self.score_lines.append(line)
        return line

    def append_measure(self) -> None:
        """Attach the current measure to the current line at the staff cursor."""
        measure = self.current_measure
        line = self.score_line
        measure.score_line = line
        measure.x = self.staff_x
        measure.width = self.measure_x
        line.measures.append(measure)
        self.renderer.place_container(measure.container, line.container, self.staff_x, 0.0)

        self.staff_x += self.measure_x
        self.update_staff_bounding()
