"""Data models for a parsed tune: voices and the items they contain."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Final

# Diatonic letters in octave order; pitch steps count from A0 = 0.
_LETTERS: Final[str] = "CDEFGAB"
_PITCH_NAME = re.compile(r"^([A-Ga-g])(-?\d+)$")


def pitch_step(name: str, octave: int | None = None) -> int:
    """
    Convert a note letter and octave into an integer pitch step.

    Steps are diatonic and count up from A0 = 0, so C4 = 23 and F4 = 26.
    ``name`` may carry the octave itself (``"F4"``) when ``octave`` is omitted.

    Raises:
        ValueError: If the name is not a note letter (with octave).
    """
    if octave is None:
        match = _PITCH_NAME.match(name.strip())
        if not match:
            raise ValueError(f"Invalid pitch name '{name}'.")
        name, octave = match.group(1), int(match.group(2))

    letter = name.strip().upper()
    if len(letter) != 1 or letter not in _LETTERS:
        raise ValueError(f"Invalid note letter '{name}'.")
    return octave * 7 + _LETTERS.index(letter) - 5


class Clef(Enum):
    TREBLE = "treble"
    BASS = "bass"

    @property
    def label(self) -> str:
        return self.name.title()


#: Pitch step that sits at vertical offset zero on each clef's staff.
CLEF_ZERO: Final[dict[Clef, int]] = {
    Clef.TREBLE: pitch_step("F4"),
    Clef.BASS: pitch_step("A2"),
}


class Length(Enum):
    """Written note value; the enum value is the note's denominator."""

    WHOLE = 1
    HALF = 2
    QUARTER = 4
    EIGHTH = 8
    SIXTEENTH = 16
    THIRTY_SECOND = 32
    SIXTY_FOURTH = 64

    @property
    def fraction(self) -> float:
        """Duration as a fraction of a whole note."""
        return 1.0 / self.value

    @property
    def beam_count(self) -> int:
        """Number of beam levels (flags) this value carries."""
        return max(0, self.value.bit_length() - 3)

    @property
    def label(self) -> str:
        """Glyph name fragment, e.g. ``ThirtySecond``."""
        return self.name.title().replace("_", "")


class Accidental(Enum):
    UNSPECIFIED = "unspecified"
    SHARP = "sharp"
    FLAT = "flat"
    NATURAL = "natural"
    DOUBLE_SHARP = "double_sharp"
    DOUBLE_FLAT = "double_flat"

    @property
    def label(self) -> str:
        return self.name.title().replace("_", "")


def _dotted(length: Length, dot_count: int) -> float:
    return length.fraction * (2.0 - 0.5**dot_count)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------
# Items compare by identity (eq=False) so they can key lookup tables.


class Item:
    """Base class for everything a voice can contain."""


class DurationItem(Item, ABC):
    """An item that occupies time: note, chord, rest or measure rest."""

    beam: int | None = None

    @property
    @abstractmethod
    def duration(self) -> float:
        """Length as a fraction of a whole note."""


@dataclass(eq=False)
class TimeSignatureItem(Item):
    value: str


@dataclass(eq=False)
class Note(DurationItem):
    pitch: int
    length: Length
    accidental: Accidental = Accidental.UNSPECIFIED
    dot_count: int = 0
    beam: int | None = None

    @property
    def duration(self) -> float:
        return _dotted(self.length, self.dot_count)


@dataclass(eq=False)
class ChordElement:
    pitch: int
    accidental: Accidental = Accidental.UNSPECIFIED


@dataclass(eq=False)
class Chord(DurationItem):
    """
    Several pitches sharing one duration.

    ``notes`` is kept sorted from lowest to highest pitch.
    """

    notes: list[ChordElement]
    length: Length
    dot_count: int = 0
    beam: int | None = None

    def __post_init__(self) -> None:
        if not self.notes:
            raise ValueError("A chord needs at least one note.")
        self.notes = sorted(self.notes, key=lambda n: n.pitch)

    @property
    def duration(self) -> float:
        return _dotted(self.length, self.dot_count)

    @property
    def lowest(self) -> int:
        return self.notes[0].pitch

    @property
    def highest(self) -> int:
        return self.notes[-1].pitch


@dataclass(eq=False)
class Rest(DurationItem):
    length: Length
    dot_count: int = 0
    beam: int | None = None

    @property
    def duration(self) -> float:
        return _dotted(self.length, self.dot_count)


@dataclass(eq=False)
class MultiMeasureRest(DurationItem):
    """A rest filling whole measures; it does not advance beat time."""

    count: int = 1
    beam: int | None = None

    @property
    def duration(self) -> float:
        return 0.0


@dataclass(eq=False)
class Bar(Item):
    kind: str = "|"


@dataclass(eq=False)
class LineBreak(Item):
    pass


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class Voice:
    clef: Clef
    items: list[Item] = field(default_factory=list)
    name: str = ""

    @property
    def initial_time_signature(self) -> str | None:
        """Text of the leading time signature, or None if the voice lacks one."""
        if self.items and isinstance(self.items[0], TimeSignatureItem):
            return self.items[0].value
        return None


@dataclass(eq=False)
class Tune:
    title: str
    voices: list[Voice] = field(default_factory=list)
