"""NotePlacer: composes the glyphs of notes, chords, rests and staff furniture."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

from abclayout.config import LayoutConfig
from abclayout.exceptions import UnsupportedTimeSignature
from abclayout.geometry import Extent, Point
from abclayout.renderer import Glyph, LayoutRenderer
from abclayout.tune_models import (
    CLEF_ZERO,
    Accidental,
    Bar,
    Chord,
    ChordElement,
    Clef,
    DurationItem,
    Item,
    Length,
    MultiMeasureRest,
    Note,
    Rest,
)

if TYPE_CHECKING:
    from abclayout.beam import Beam


class NoteDirection(Enum):
    UP = "Up"
    DOWN = "Down"


#: Stem attachment point relative to the note head origin.
STEM_UP_OFFSET: Final[Point] = Point(0.65, 0.35)
STEM_DOWN_OFFSET: Final[Point] = Point(0.0, 0.262)

CHORD_DOT_OFFSET: Final[float] = 0.67
NOTE_PADDING: Final[float] = 0.14
DOT_ADVANCE: Final[float] = 0.2
ACCIDENTAL_OFFSET: Final[float] = 0.25
ACCIDENTAL_WIDTH: Final[float] = 0.55
CHORD_ACCIDENTAL_SIZE: Final[int] = 6
TIME_SIGNATURE_Y: Final[float] = 1.15

REST_HEIGHT: Final[dict[Length, float]] = {
    Length.WHOLE: 1.41,
    Length.HALF: 1.16,
    Length.QUARTER: 0.3,
}

BAR_GLYPHS: Final[dict[str, str]] = {
    "|": "Bar_Line",
    "||": "Bar_Double",
    "|]": "Bar_Final",
    "[|": "Bar_Start",
    ":|": "Bar_RepeatEnd",
    "|:": "Bar_RepeatStart",
}


@dataclass(frozen=True)
class NoteInfo:
    """
    Extents produced by placing one item.

    Attributes:
        root_extent:  Head and stem (what beams and slurs attach to).
        total_extent: Everything drawn, including accidentals, dots and marks.
        direction:    Stem direction, or None for items without a stem.
    """

    root_extent: Extent
    total_extent: Extent
    direction: NoteDirection | None = None


def note_direction(step_count: int) -> NoteDirection:
    """Stem direction of a free note: down above the middle line."""
    return NoteDirection.DOWN if step_count > 3 else NoteDirection.UP


def chord_direction(chord: Chord, clef: Clef) -> NoteDirection:
    """
    Pick the stem direction that keeps the farther extreme note nearest its
    stem end.
    """
    center = CLEF_ZERO[clef] + 3
    low_distance = abs(chord.lowest - center)
    high_distance = abs(chord.highest - center)
    return NoteDirection.UP if low_distance > high_distance else NoteDirection.DOWN


def determine_note_direction(item: Item, clef: Clef) -> NoteDirection | None:
    """Stem direction of an unbeamed item, or None if it has no stem."""
    if isinstance(item, Note):
        return note_direction(item.pitch - CLEF_ZERO[clef])
    if isinstance(item, Chord):
        return chord_direction(item, clef)
    return None


def needs_staff_markers(step_count: int) -> bool:
    return step_count < -2 or step_count > 8


def compute_chord_accidental_levels(notes: list[ChordElement], clef_zero: int) -> list[list[ChordElement]]:
    """
    Stack chord accidentals into columns so they do not collide.

    Notes must be sorted ascending. An accidental joins the first column whose
    last accidental sits more than ``CHORD_ACCIDENTAL_SIZE`` steps lower;
    otherwise it opens a new column.
    """
    step_levels: list[int] = []
    notes_in_level: list[list[ChordElement]] = []

    for note in notes:
        if note.accidental is Accidental.UNSPECIFIED:
            continue

        step_count = note.pitch - clef_zero
        for i, level_step in enumerate(step_levels):
            if step_count - level_step > CHORD_ACCIDENTAL_SIZE:
                step_levels[i] = step_count
                notes_in_level[i].append(note)
                break
        else:
            step_levels.append(step_count)
            notes_in_level.append([note])

    return notes_in_level


def _note_glyph_name(length: Length, beamed: bool, direction: NoteDirection) -> str:
    if beamed:
        return f"Note_Quarter_{direction.value}"
    if length is Length.WHOLE:
        return "Note_Whole"
    return f"Note_{length.label}_{direction.value}"


class NotePlacer:
    """
    Places the glyphs that make up one item and reports its extents.

    All positions are local to the container passed in; the caller chooses
    the horizontal offset, vertical placement follows from pitch.
    """

    def __init__(self, renderer: LayoutRenderer, config: LayoutConfig | None = None) -> None:
        self.renderer = renderer
        self.config = config or LayoutConfig()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _glyph(self, name: str, container: int, position: Point, scale_x: float = 1.0, scale_y: float = 1.0) -> Extent:
        return self.renderer.materialize(Glyph(name, scale_x, scale_y), container, position)

    def _step_y(self, step_count: int) -> float:
        return self.config.note_step * step_count

    def _staff_mark(self, step_count: int, container: int, offset: Point, scale_x: float) -> Extent:
        return self._glyph("Staff_Mark", container, offset + Point(0.0, self._step_y(step_count)), scale_x=scale_x)

    def _add_staff_markers(self, step_count: int, container: int, offset: Point, scale_x: float) -> Extent | None:
        """Ledger marks for a note outside the staff, from the note back to the staff."""
        if step_count < -2:  # below the staff
            step_offset = 1 if step_count % 2 == 0 else 0
            # an odd step sits on a mark, an even one hangs below it
            bounds = self._staff_mark(step_count + step_offset, container, offset, 1.0 if step_offset == 0 else scale_x)
            for sc in range(step_count + step_offset + 2, -2, 2):
                bounds = bounds.encapsulate(self._staff_mark(sc, container, offset, scale_x))
            return bounds

        if step_count > 8:  # above the staff
            step_offset = 1 if step_count % 2 == 0 else 0
            bounds = self._staff_mark(step_count - step_offset, container, offset, 1.0 if step_offset == 0 else scale_x)
            for sc in range(step_count - step_offset - 2, 8, -2):
                bounds = bounds.encapsulate(self._staff_mark(sc, container, offset, scale_x))
            return bounds

        return None

    def _stemmed_head(self, note_position: Point, direction: NoteDirection, stem_height: float, container: int) -> Extent:
        """Quarter head plus a stem stretched to end at ``stem_height``."""
        head = self._glyph("Chord_Quarter", container, note_position)
        stem_position = note_position + (STEM_UP_OFFSET if direction is NoteDirection.UP else STEM_DOWN_OFFSET)
        stem = self._glyph(
            f"Note_Stem_{direction.value}",
            container,
            stem_position,
            scale_y=abs(stem_height - stem_position.y),
        )
        return head.encapsulate(stem)

    def _add_dots(self, step_count: int, dot_count: int, anchor: Extent, container: int, total: Extent) -> Extent:
        for _ in range(dot_count):
            position = Point(anchor.max_x + DOT_ADVANCE, self._step_y(step_count + 1))
            anchor = self._glyph("Note_Dot", container, position)
            total = total.encapsulate(anchor)
        return total

    @staticmethod
    def _beam_stem_height(beam: Beam | None) -> float | None:
        if beam is None:
            return None
        return beam.stem_height

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def place(self, item: DurationItem, clef: Clef, container: int, offset: Point, beam: Beam | None = None) -> NoteInfo:
        """Dispatch on the item kind."""
        if isinstance(item, Note):
            return self.place_note(item, clef, container, offset, beam)
        if isinstance(item, Chord):
            return self.place_chord(item, clef, container, offset, beam)
        if isinstance(item, Rest):
            return self.place_rest(item, container, offset)
        if isinstance(item, MultiMeasureRest):
            return self.place_measure_rest(item, container, offset)
        raise TypeError(f"Cannot place item of type {type(item).__name__}.")

    def place_note(self, note: Note, clef: Clef, container: int, offset: Point, beam: Beam | None = None) -> NoteInfo:
        step_count = note.pitch - CLEF_ZERO[clef]
        direction = beam.direction if beam is not None else note_direction(step_count)
        stem_height = self._beam_stem_height(beam)

        note_position = offset + Point(0.0, self._step_y(step_count))
        total = Extent.at(offset)

        if note.accidental is not Accidental.UNSPECIFIED:
            offset = offset + Point(ACCIDENTAL_OFFSET, 0.0)
            note_position = note_position + Point(ACCIDENTAL_OFFSET, 0.0)
            accidental = self._glyph(
                f"Accidental_{note.accidental.label}",
                container,
                note_position + Point(-ACCIDENTAL_WIDTH, 0.0),
            )
            total = total.encapsulate(accidental)

        markers = self._add_staff_markers(step_count, container, offset, 1.0)
        if markers is not None:
            total = total.encapsulate(markers)
            note_position = note_position + Point(NOTE_PADDING, 0.0)  # center the head on the marks

        if stem_height is not None:
            root = self._stemmed_head(note_position, direction, stem_height, container)
        else:
            name = _note_glyph_name(note.length, beam is not None, direction)
            root = self._glyph(name, container, note_position)

        total = self._add_dots(step_count, note.dot_count, root, container, total)
        total = total.encapsulate(root)
        return NoteInfo(root, total, direction)

    def place_chord(self, chord: Chord, clef: Clef, container: int, offset: Point, beam: Beam | None = None) -> NoteInfo:
        zero = CLEF_ZERO[clef]
        direction = beam.direction if beam is not None else chord_direction(chord, clef)
        stem_height = self._beam_stem_height(beam)
        total = Extent.at(offset)

        offset, total = self._place_chord_accidentals(chord.notes, zero, container, offset, total)

        marker_scale = 1.0
        if self._chord_has_dots(chord.notes):
            marker_scale = 2.0
            # a down-stem chord puts its offset head left of the stem; keep it off the previous item
            if direction is NoteDirection.DOWN:
                offset = offset + Point(CHORD_DOT_OFFSET, 0.0)

        low_step = chord.lowest - zero
        high_step = chord.highest - zero
        if needs_staff_markers(low_step) or needs_staff_markers(high_step):
            for step_count in (low_step, high_step):
                markers = self._add_staff_markers(step_count, container, offset, marker_scale)
                if markers is not None:
                    total = total.encapsulate(markers)
            offset = offset + Point(NOTE_PADDING, 0.0)

        root, total = self._place_chord_items(chord, direction, stem_height, beam is not None, zero, container, offset, total)
        return NoteInfo(root, total, direction)

    @staticmethod
    def _chord_has_dots(notes: list[ChordElement]) -> bool:
        """True if some head must move aside because the note below is one step away."""
        return any(i % 2 == 1 and notes[i].pitch - notes[i - 1].pitch == 1 for i in range(1, len(notes)))

    def _place_chord_accidentals(
        self, notes: list[ChordElement], zero: int, container: int, offset: Point, total: Extent
    ) -> tuple[Point, Extent]:
        levels = compute_chord_accidental_levels(notes, zero)
        if not levels:
            return offset, total

        offset = offset + Point(-ACCIDENTAL_WIDTH, 0.0)
        for level in reversed(levels):
            for note in level:
                position = offset + Point(0.0, self._step_y(note.pitch - zero))
                total = total.encapsulate(self._glyph(f"Accidental_{note.accidental.label}", container, position))
            offset = offset + Point(ACCIDENTAL_WIDTH, 0.0)

        return offset, total

    def _place_chord_items(
        self,
        chord: Chord,
        direction: NoteDirection,
        stem_height: float | None,
        beamed: bool,
        zero: int,
        container: int,
        offset: Point,
        total: Extent,
    ) -> tuple[Extent, Extent]:
        """
        Place every chord head, building from the stem end of the chord.

        Returns:
            ``(root_extent, total_extent)``.
        """
        notes = chord.notes
        count = len(notes)
        stems = [False] * count
        root: Extent | None = None

        dot_value = chord.length if chord.length.value < Length.QUARTER.value else Length.QUARTER
        note_value = Length.QUARTER if beamed else chord.length

        if direction is NoteDirection.DOWN:
            order = [(i, i - 1) for i in range(count)]
        else:
            order = [(i, i + 1) for i in reversed(range(count))]

        for i, neighbour in order:
            step_count = notes[i].pitch - zero
            note_position = offset + Point(0.0, self._step_y(step_count))

            adjacent = 0 <= neighbour < count and stems[neighbour] and abs(notes[i].pitch - notes[neighbour].pitch) == 1
            if adjacent:
                shift = CHORD_DOT_OFFSET if direction is NoteDirection.UP else -CHORD_DOT_OFFSET
                name = "Note_Whole" if dot_value is Length.WHOLE else f"Chord_{dot_value.label}"
                item_extent = self._glyph(name, container, note_position + Point(shift, 0.0))
            else:
                if stem_height is not None:
                    item_extent = self._stemmed_head(note_position, direction, stem_height, container)
                else:
                    item_extent = self._glyph(_note_glyph_name(note_value, beamed, direction), container, note_position)
                stems[i] = True
                note_value = dot_value

            root = item_extent if root is None else root.encapsulate(item_extent)
            total = total.encapsulate(item_extent)
            total = self._add_dots(step_count, chord.dot_count, item_extent, container, total)

        if root is None:
            raise ValueError("A chord needs at least one note.")
        return root, total

    def place_rest(self, rest: Rest, container: int, offset: Point) -> NoteInfo:
        # whole and half rests share one block glyph at different heights
        name = "Rest_Half" if rest.length is Length.WHOLE else f"Rest_{rest.length.label}"
        position = offset + Point(0.0, REST_HEIGHT.get(rest.length, 0.0))
        extent = self._glyph(name, container, position)
        total = self._add_dots(0, rest.dot_count, extent, container, extent)
        return NoteInfo(extent, total)

    def place_measure_rest(self, rest: MultiMeasureRest, container: int, offset: Point) -> NoteInfo:
        extent = self._glyph("Rest_Half", container, offset + Point(0.0, REST_HEIGHT[Length.WHOLE]))
        return NoteInfo(extent, extent)

    def place_staff(self, clef: Clef, container: int, offset: Point) -> NoteInfo:
        """Staff lines at ``offset`` followed by the clef; the root is the staff alone."""
        staff = self._glyph("Staff", container, offset)
        clef_extent = self._glyph(f"Clef_{clef.label}", container, offset + Point(self.config.staff_padding, 0.0))
        return NoteInfo(staff, staff.encapsulate(clef_extent))

    def place_time_signature(self, value: str, container: int, offset: Point) -> NoteInfo:
        """
        Raises:
            UnsupportedTimeSignature: If ``value`` is neither C, C| nor n/d.
        """
        text = value.strip()
        raised = offset + Point(0.0, TIME_SIGNATURE_Y)

        if text in ("C", "C|"):
            name = "Time_Common" if text == "C" else "Time_Cut"
            extent = self._glyph(name, container, raised)
            return NoteInfo(extent, extent)

        pieces = text.split("/")
        if len(pieces) != 2 or not all(p.isdigit() for p in pieces):
            raise UnsupportedTimeSignature(f"Unable to parse time signature: {value}")

        extent = self._glyph(f"Time_{pieces[0]}", container, raised)
        extent = extent.encapsulate(self._glyph(f"Time_{pieces[1]}", container, offset))
        return NoteInfo(extent, extent)

    def place_bar(self, bar: Bar, container: int, offset: Point) -> NoteInfo:
        extent = self._glyph(BAR_GLYPHS.get(bar.kind, "Bar_Line"), container, offset)
        return NoteInfo(extent, extent)
