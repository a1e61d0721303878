"""
HorizontalLayoutEngine: steps every voice through the tune beat by beat,
keeps simultaneous beats aligned, wraps staff lines and records where each
item was placed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from abclayout.alignment import Beat
from abclayout.beam import Beam, create_beams
from abclayout.config import LayoutConfig
from abclayout.exceptions import LayoutError, MissingTimeSignature, SlurError, TimeSignatureMismatch
from abclayout.geometry import ORIGIN, Point
from abclayout.handles import HandleTable
from abclayout.note_placer import NotePlacer
from abclayout.renderer import LayoutRenderer
from abclayout.slur import SlurCurveFitter
from abclayout.time_signature import TimeSignature
from abclayout.tune_models import DurationItem, Item, Tune
from abclayout.voice_layout import Element, VoiceLayoutState

logger = logging.getLogger(__name__)


@dataclass
class LayoutResult:
    """
    Everything one completed pass produced.

    Element extents are local to their measure; a measure's ``x`` is its
    offset within its score line and a score line's ``y`` its vertical
    placement.
    """

    tune: Tune
    voices: list[VoiceLayoutState]
    beams: dict[int, Beam]
    handles: HandleTable
    renderer: LayoutRenderer
    slur_fitter: SlurCurveFitter = field(default_factory=SlurCurveFitter)
    elements: dict[Item, Element] = field(default_factory=dict, repr=False)

    @property
    def line_count(self) -> int:
        return max((len(v.score_lines) for v in self.voices), default=0)

    def element_for(self, item: Item) -> Element | None:
        """
        Raises:
            StaleHandleError: If a later pass has replaced this one.
        """
        if self.handles.handle_for(item) is None:
            return None
        return self.elements.get(item)

    def create_slur(self, start: Item, end: Item) -> list[list[Point]]:
        """
        Fit a slur from ``start`` to ``end`` and hand it to the renderer.

        Returns one polyline per score line the slur crosses.

        Raises:
            SlurError: If either item was not placed as a note, chord or rest.
        """
        start_element = self.element_for(start)
        end_element = self.element_for(end)
        if start_element is None or end_element is None:
            raise SlurError("Slur endpoints must both be placed duration items.")
        return self.slur_fitter.create(start_element, end_element, self.renderer)

    def to_dict(self) -> dict[str, Any]:
        """Per-item placement summary, grouped by voice and line."""
        voices = []
        for state in self.voices:
            lines = []
            for line in state.score_lines:
                measures = []
                for measure in line.measures:
                    measures.append(
                        {
                            "x": measure.x,
                            "width": measure.width,
                            "items": [
                                {
                                    "kind": type(e.item).__name__,
                                    "handle": e.handle,
                                    "root_extent": list(e.root_extent.to_tuple()),
                                    "total_extent": list(e.total_extent.to_tuple()),
                                    "direction": e.direction.value if e.direction else None,
                                }
                                for e in measure.elements
                            ],
                        }
                    )
                lines.append({"y": line.y, "width": line.width, "measures": measures})
            voices.append({"name": state.voice.name, "clef": state.clef.value, "lines": lines})

        return {
            "title": self.tune.title,
            "line_count": self.line_count,
            "voices": voices,
            "beams": {
                str(beam_id): {"shape": beam.shape.value, "direction": beam.direction.value, "stem_height": beam.stem_height}
                for beam_id, beam in self.beams.items()
            },
        }


class HorizontalLayoutEngine:
    """
    Lays out one tune per ``run()`` call.

    Args:
        renderer: Collaborator that materializes glyphs and reports extents.
        config:   Layout constants and line width.
    """

    def __init__(self, renderer: LayoutRenderer, config: LayoutConfig | None = None) -> None:
        self.renderer = renderer
        self.config = config or LayoutConfig()
        self.placer = NotePlacer(renderer, self.config)

        self._beams: dict[int, Beam] = {}
        self._handles = HandleTable()
        self._elements: dict[Item, Element] = {}
        self._offset_y = 0.0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(tune: Tune) -> TimeSignature | None:
        """
        Return the time signature every non-empty voice opens with.

        Voices may spell it differently (``C`` and ``4/4``) as long as the
        beat count and unit agree.

        Raises:
            MissingTimeSignature:     If a voice does not open with one.
            UnsupportedTimeSignature: If the shared signature cannot be parsed.
            TimeSignatureMismatch:    If voices disagree.
        """
        signature: TimeSignature | None = None
        expected = ""
        for index, voice in enumerate(tune.voices):
            if not voice.items:
                continue

            value = voice.initial_time_signature
            if value is None:
                raise MissingTimeSignature(f"Voice {voice.name or index + 1} does not initially declare a time signature.")

            parsed = TimeSignature.parse(value)
            if signature is None:
                signature = parsed
                expected = value.strip()
            elif parsed != signature:
                raise TimeSignatureMismatch(
                    f"Voice {voice.name or index + 1} declares {value.strip()}, expected {expected}."
                )
        return signature

    def _start_line(self, state: VoiceLayoutState, first_line: bool) -> None:
        """Open a score line and lay out its preamble; the time signature only on the first line."""
        line = state.new_staffline()
        staff = self.placer.place_staff(state.clef, line.container, ORIGIN)
        state.staff_base_width = staff.root_extent.width
        state.update_staff_bounds(staff.total_extent)
        state.staff_x = self.config.staff_padding + self.config.clef_advance

        signature = state.voice.initial_time_signature
        if first_line and signature is not None:
            time = self.placer.place_time_signature(signature.strip(), line.container, Point(state.staff_x, 0.0))
            state.update_staff_bounds(time.total_extent)
            state.staff_x += time.total_extent.width

    def _finalize_lines(self, voices: list[VoiceLayoutState]) -> None:
        """Stretch each current staff to its content and stack the lines vertically."""
        for state in voices:
            line = state.score_line
            line.width = state.staff_x

            ratio = state.staff_x / state.staff_base_width if state.staff_base_width > 0 else 1.0
            self.renderer.scale_staff_line(line.container, ratio)

            line.y = self._offset_y - state.staff_max_y
            self.renderer.place_container(line.container, None, 0.0, line.y)
            self._offset_y -= state.height + self.config.staff_margin

    def _place_item(self, state: VoiceLayoutState, item: DurationItem) -> None:
        measure = state.current_measure

        container = self.renderer.new_container(type(item).__name__, measure.container)
        beam = self._beams.get(item.beam) if item.beam is not None else None
        info = self.placer.place(item, state.clef, container, Point(state.measure_x, 0.0), beam)

        element = Element(item, container, info.root_extent, info.total_extent, info.direction, measure)
        measure.elements.append(element)
        self._elements[item] = element
        self._handles.register(item, container, info.root_extent, info.total_extent)

        state.update_measure_bounds(info.total_extent)
        state.measure_x = info.total_extent.max_x + self.config.note_advance

        if beam is not None:
            quads = beam.add_note_info(info.root_extent)
            if quads:
                self.renderer.materialize_beam_connector(measure.container, quads)

    def _place_beat(self, state: VoiceLayoutState, beat: Beat) -> None:
        for item in beat.items:
            self._place_item(state, item)
        state.beat_alignment_index += 1

    def _place_bar(self, state: VoiceLayoutState) -> None:
        measure = state.current_measure
        bar = measure.source.bar
        if bar is None:
            return

        container = self.renderer.new_container("Bar", measure.container)
        info = self.placer.place_bar(bar, container, Point(state.measure_x, 0.0))
        self._handles.register(bar, container, info.root_extent, info.total_extent)
        state.update_measure_bounds(info.total_extent)
        state.measure_x = info.total_extent.max_x

    @staticmethod
    def _synchronize(voices: list[VoiceLayoutState]) -> None:
        x = max(state.measure_x for state in voices)
        for state in voices:
            state.measure_x = x

    def _needs_wrap(self, voices: list[VoiceLayoutState], index: int) -> bool:
        if not voices[0].score_line.measures:
            return False

        if self.config.respect_line_breaks and index > 0:
            for state in voices:
                measures = state.alignment.measures
                if measures[index].line_number != measures[index - 1].line_number:
                    return True

        return any(state.staff_x + state.measure_x > self.config.max_line_width for state in voices)

    def _layout_measure(self, voices: list[VoiceLayoutState], index: int, beat_count: int) -> None:
        for state in voices:
            state.new_measure(state.alignment.measures[index], self.config.measure_padding)

        for beat_number in range(1, beat_count + 1):
            for state in voices:
                beats = state.alignment.measures[index].beats
                if state.beat_alignment_index < len(beats) and beats[state.beat_alignment_index].beat_start == beat_number:
                    self._place_beat(state, beats[state.beat_alignment_index])
            self._synchronize(voices)

        # beats past the end of an over-full measure
        for state in voices:
            beats = state.alignment.measures[index].beats
            while state.beat_alignment_index < len(beats):
                self._place_beat(state, beats[state.beat_alignment_index])
        self._synchronize(voices)

        for state in voices:
            self._place_bar(state)
        self._synchronize(voices)

        if self._needs_wrap(voices, index):
            logger.debug("Wrapping before measure %d.", index + 1)
            self._finalize_lines(voices)
            for state in voices:
                self._start_line(state, first_line=False)

        for state in voices:
            state.append_measure()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, tune: Tune) -> LayoutResult:
        """
        Lay out ``tune`` from scratch.

        Validation and beam analysis happen before the renderer is touched.
        An error raised later leaves whatever the renderer already produced.

        Raises:
            LayoutError: Any of its subclasses, see ``abclayout.exceptions``.
        """
        signature = self._validate(tune)
        self._beams = create_beams(tune, self.config)
        self._handles = HandleTable()
        self._elements = {}
        self._offset_y = 0.0

        voices = [VoiceLayoutState(voice, self.renderer) for voice in tune.voices if voice.items]
        result = LayoutResult(tune, voices, self._beams, self._handles, self.renderer, elements=self._elements)
        if signature is None or not voices:
            logger.info("Tune '%s' has no voices to lay out.", tune.title)
            return result

        measure_counts = {len(state.alignment.measures) for state in voices}
        measure_count = min(measure_counts)
        if len(measure_counts) > 1:
            logger.warning("Voices have different measure counts %s; laying out %d.", sorted(measure_counts), measure_count)

        logger.info(
            "Laying out '%s': %d voice(s), %d measure(s), %d beam(s).",
            tune.title,
            len(voices),
            measure_count,
            len(self._beams),
        )

        for state in voices:
            self._start_line(state, first_line=True)
        # time signature spellings differ in width
        staff_x = max(state.staff_x for state in voices)
        for state in voices:
            state.staff_x = staff_x

        for index in range(measure_count):
            self._layout_measure(voices, index, signature.beat_count)

        self._finalize_lines(voices)
        logger.info("Layout complete: %d line(s), %d placed item(s).", result.line_count, len(self._handles))
        return result


@dataclass
class LayoutOutcome:
    """Result of ``Layout.load``: the layout on success, the error otherwise."""

    tune: Tune
    result: LayoutResult | None = None
    error: LayoutError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Layout:
    """
    Front object that owns the current layout.

    Loading a tune discards the previous layout: its handle table is
    invalidated and the renderer is reset before the new pass starts.
    """

    def __init__(self, renderer: LayoutRenderer, config: LayoutConfig | None = None) -> None:
        self.engine = HorizontalLayoutEngine(renderer, config)
        self.current: LayoutResult | None = None

    def load(self, tune: Tune) -> LayoutOutcome:
        if self.current is not None:
            self.current.handles.invalidate()
            self.current = None
        self.engine.renderer.reset()

        try:
            result = self.engine.run(tune)
        except LayoutError as exc:
            logger.error("Layout of '%s' failed: %s", tune.title, exc)
            return LayoutOutcome(tune, error=exc)

        self.current = result
        return LayoutOutcome(tune, result)
