"""Time signature parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass

from abclayout.exceptions import UnsupportedTimeSignature

_FRACTION = re.compile(r"^(\d+)/(\d+)$")


@dataclass(frozen=True)
class TimeSignature:
    """
    Beats per measure and the duration of one beat.

    Attributes:
        beat_count:    Number of beats in a measure.
        unit_duration: Length of one beat as a fraction of a whole note.
    """

    beat_count: int
    unit_duration: float

    @classmethod
    def parse(cls, text: str) -> TimeSignature:
        """
        Parse ``C``, ``C|`` or ``<n>/<d>`` into a time signature.

        Raises:
            UnsupportedTimeSignature: For any other form, or a zero part.
        """
        value = text.strip()
        if value == "C":
            return cls(4, 1.0 / 4.0)
        if value == "C|":
            return cls(2, 1.0 / 2.0)

        match = _FRACTION.match(value)
        if not match:
            raise UnsupportedTimeSignature(f"Unsupported Time Signature: {text}")

        beat_count = int(match.group(1))
        denominator = int(match.group(2))
        if beat_count == 0 or denominator == 0:
            raise UnsupportedTimeSignature(f"Unsupported Time Signature: {text}")

        return cls(beat_count, 1.0 / denominator)


def parse(text: str) -> tuple[int, float]:
    """Parse a time signature into ``(beat_count, unit_duration)``."""
    signature = TimeSignature.parse(text)
    return signature.beat_count, signature.unit_duration
