"""Beam grouping, classification and connector geometry."""

from __future__ import annotations

import logging
from enum import Enum

from abclayout.config import (
    BEAM_HEIGHT,
    DEFAULT_BEAM_SPACER,
    DEFAULT_STEM_HEIGHT,
    NOTE_STEP,
    LayoutConfig,
)
from abclayout.exceptions import InvalidBeamItem
from abclayout.geometry import ORIGIN, Extent, Point, Quad, line_intersect
from abclayout.note_placer import NoteDirection
from abclayout.tune_models import CLEF_ZERO, Chord, Clef, DurationItem, Note, Tune

logger = logging.getLogger(__name__)


class BeamShape(Enum):
    #: Every note has the same pitch; the beam is level.
    BASIC = "basic"
    #: Pitches rise or fall throughout; the beam follows the slope.
    ANGLE = "angle"
    #: Mixed contour; stems are stretched to a common height.
    STRAIGHT = "straight"


class Beam:
    """
    Notes and chords joined by one beam.

    Lifecycle: members are appended while the tune is scanned, ``analyze()``
    runs once to fix direction, shape and stem height, then each member's
    rendered extent arrives through ``add_note_info()``. The call that
    delivers the last extent returns the connector quads.
    """

    def __init__(
        self,
        beam_id: int,
        clef: Clef,
        *,
        note_step: float = NOTE_STEP,
        default_stem_height: float = DEFAULT_STEM_HEIGHT,
        beam_height: float = BEAM_HEIGHT,
        beam_spacer: float = DEFAULT_BEAM_SPACER,
    ) -> None:
        self.id = beam_id
        self.clef = clef
        self.items: list[DurationItem] = []
        self.direction = NoteDirection.UP
        self.shape = BeamShape.BASIC
        self.stem_height: float | None = None

        self.note_step = note_step
        self.default_stem_height = default_stem_height
        self.beam_height = beam_height
        self.beam_spacer = beam_spacer

        self._analyzed = False
        self._extents: list[Extent] = []
        self.connectors: list[Quad] | None = None

    def __repr__(self) -> str:
        return f"Beam(id={self.id}, items={len(self.items)}, shape={self.shape.name}, direction={self.direction.name})"

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def pitch_for_item(self, item: DurationItem) -> int:
        """
        Representative pitch of a member: the note's pitch, or the chord note
        nearest the beam (lowest when stems point down, else highest).

        Raises:
            InvalidBeamItem: If ``item`` is not a note or chord.
        """
        if isinstance(item, Note):
            return item.pitch
        if isinstance(item, Chord):
            return item.lowest if self.direction is NoteDirection.DOWN else item.highest
        raise InvalidBeamItem(f"Invalid item in beam {self.id}: {type(item).__name__}")

    def analyze(self) -> None:
        """Determine direction, shape and (for straight beams) stem height."""
        if self._analyzed:
            return
        self._analyzed = True

        self._determine_direction()

        if self._is_basic():
            self.shape = BeamShape.BASIC
        elif self._is_angled():
            self.shape = BeamShape.ANGLE
        else:
            self.shape = BeamShape.STRAIGHT
            self._determine_stem_height()

    def _determine_direction(self) -> None:
        """Stems point down when the average pitch sits above the middle line."""
        total = 0
        for item in self.items:
            if isinstance(item, Note):
                total += item.pitch
            elif isinstance(item, Chord):
                total += round(sum(n.pitch for n in item.notes) / len(item.notes))
            else:
                raise InvalidBeamItem(f"Invalid item in beam {self.id}: {type(item).__name__}")

        average = total / len(self.items)
        middle = CLEF_ZERO[self.clef] + 3
        self.direction = NoteDirection.DOWN if average > middle else NoteDirection.UP

    def _is_basic(self) -> bool:
        first = self.pitch_for_item(self.items[0])
        return all(self.pitch_for_item(item) == first for item in self.items)

    def _is_angled(self) -> bool:
        if len(self.items) < 2:
            return False

        pitches = [self.pitch_for_item(item) for item in self.items]
        if pitches[1] > pitches[0]:
            return all(b > a for a, b in zip(pitches, pitches[1:]))
        if pitches[1] < pitches[0]:
            return all(b < a for a, b in zip(pitches, pitches[1:]))
        return False

    def _determine_stem_height(self) -> None:
        pitches = [self.pitch_for_item(item) for item in self.items]
        zero = CLEF_ZERO[self.clef]

        if self.direction is NoteDirection.UP:
            step_count = max(pitches) - zero
            self.stem_height = self.note_step * step_count + self.default_stem_height
        else:
            step_count = min(pitches) - zero
            self.stem_height = self.note_step * (step_count + 1) - self.default_stem_height

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def is_ready_to_create(self) -> bool:
        return len(self._extents) == len(self.items)

    def add_note_info(self, extent: Extent) -> list[Quad] | None:
        """
        Record the rendered extent of the next member, in placement order.

        Returns:
            The connector quads once every member has reported, else None.
            Extents arriving after that are ignored.
        """
        if self.is_ready_to_create:
            return None

        self._extents.append(extent)
        if not self.is_ready_to_create:
            return None

        self.connectors = self._create_connectors()
        logger.debug("Beam %d complete with %d connector(s).", self.id, len(self.connectors))
        return self.connectors

    def _level_spacing(self) -> float:
        return self.beam_height + self.beam_spacer

    def _anchor(self, extent: Extent, level: int) -> Point:
        """Stem-end corner of a member, shifted inward for deeper levels."""
        offset = level * self._level_spacing()
        if self.direction is NoteDirection.UP:
            return Point(extent.max_x, extent.max_y - offset)
        return Point(extent.min_x, extent.min_y + offset)

    def _quad(self, left: Point, right: Point) -> Quad:
        thickness = Point(0.0, self.beam_height)
        if self.direction is NoteDirection.UP:
            return (left, right, left - thickness, right - thickness)
        return (left + thickness, right + thickness, left, right)

    def _create_connectors(self) -> list[Quad]:
        quads: list[Quad] = []

        for i in range(1, len(self.items)):
            prev_item, item = self.items[i - 1], self.items[i]
            prev_extent, extent = self._extents[i - 1], self._extents[i]
            prev_levels = _beam_levels(prev_item)
            levels = _beam_levels(item)

            for level in range(min(prev_levels, levels)):
                quads.append(self._quad(self._anchor(prev_extent, level), self._anchor(extent, level)))

            if prev_levels != levels and len(self.items) == 2:
                broken = self._broken_connector(prev_extent, extent, prev_levels > levels, min(prev_levels, levels))
                if broken is not None:
                    quads.append(broken)

        return quads

    def _broken_connector(self, first: Extent, second: Extent, first_is_shorter: bool, level: int) -> Quad | None:
        """
        Partial connector for the member with more beam levels.

        A copy of that member's box is slid toward its partner; the stub ends
        where the slid box's edge crosses the line joining the two anchors.
        """
        start = self._anchor(first, level)
        end = self._anchor(second, level)
        gap = end.x - start.x
        sign = 1.0 if gap >= 0 else -1.0

        if first_is_shorter:
            stub = min(first.width, abs(gap) / 2.0)
            target_x = start.x + sign * stub
        else:
            stub = min(second.width, abs(gap) / 2.0)
            target_x = end.x - sign * stub

        crossing = line_intersect(start, end, Point(target_x, 0.0), Point(target_x, 1.0))
        if crossing == ORIGIN:
            logger.warning(
                "Degenerate broken beam in beam %d: anchors %s and %s share an x position.",
                self.id,
                start,
                end,
            )
            return None

        if first_is_shorter:
            return self._quad(start, crossing)
        return self._quad(crossing, end)


def _beam_levels(item: DurationItem) -> int:
    if isinstance(item, (Note, Chord)):
        return item.length.beam_count
    return 0


def create_beams(tune: Tune, config: LayoutConfig | None = None) -> dict[int, Beam]:
    """
    Collect every beamed item of the tune by beam id and analyze each beam.

    The clef of the voice where a beam id first appears is used for the beam.

    Raises:
        InvalidBeamItem: If a rest or other non-note item carries a beam id.
    """
    config = config or LayoutConfig()
    beams: dict[int, Beam] = {}

    for voice in tune.voices:
        for item in voice.items:
            if not isinstance(item, DurationItem) or item.beam is None:
                continue

            beam = beams.get(item.beam)
            if beam is None:
                beam = Beam(
                    item.beam,
                    voice.clef,
                    note_step=config.note_step,
                    default_stem_height=config.default_stem_height,
                    beam_height=config.beam_height,
                    beam_spacer=config.beam_spacer,
                )
                beams[item.beam] = beam
            beam.items.append(item)

    for beam in beams.values():
        beam.analyze()

    return beams
