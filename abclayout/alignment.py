"""BeatAlignment: splits a voice into measures of time-coincident beats."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from abclayout.exceptions import MissingTimeSignature, UnsupportedMultiMeasureRest
from abclayout.time_signature import TimeSignature
from abclayout.tune_models import (
    Bar,
    DurationItem,
    LineBreak,
    MultiMeasureRest,
    TimeSignatureItem,
    Voice,
)


@dataclass
class Beat:
    """
    Duration items that start within one beat slot.

    Attributes:
        beat_start: 1-based index of the beat the first item starts on.
        items:      Items in source order.
    """

    beat_start: int
    items: list[DurationItem] = field(default_factory=list)


@dataclass
class Measure:
    """
    The beats of one measure plus the bar that closes it.

    ``bar`` is None only for a trailing measure the voice never closed.
    ``line_number`` counts the line breaks seen before this measure.
    """

    line_number: int = 0
    beats: list[Beat] = field(default_factory=list)
    bar: Bar | None = None

    @property
    def items(self) -> list[DurationItem]:
        """All duration items of the measure, in order."""
        return [item for beat in self.beats for item in beat.items]

    @property
    def is_rest(self) -> bool:
        """True when the measure holds nothing but a multi-measure rest."""
        return (
            len(self.beats) == 1
            and len(self.beats[0].items) == 1
            and isinstance(self.beats[0].items[0], MultiMeasureRest)
        )


class BeatAlignment:
    """
    Partition one voice's item sequence into measures and beats.

    The voice must open with a time signature; an empty voice aligns to no
    measures at all.
    """

    def __init__(self, voice: Voice) -> None:
        self.time_signature: TimeSignature | None = None
        self.measures: list[Measure] = self._create(voice)

    def _create(self, voice: Voice) -> list[Measure]:
        measures: list[Measure] = []
        if not voice.items:
            return measures

        first = voice.items[0]
        if not isinstance(first, TimeSignatureItem):
            raise MissingTimeSignature("Voice does not initially declare a time signature.")

        self.time_signature = TimeSignature.parse(first.value)
        unit = self.time_signature.unit_duration

        t = 0.0
        current_beat = 1
        line_number = 0
        measure = Measure(line_number)
        beat = Beat(current_beat)

        for item in voice.items[1:]:
            if isinstance(item, MultiMeasureRest):
                if item.count > 1:
                    raise UnsupportedMultiMeasureRest(
                        "Measure rests of length greater than 1 are not currently supported."
                    )
                beat.items.append(item)

            elif isinstance(item, DurationItem):
                beat.items.append(item)
                t += item.duration

                if t >= unit:  # current beat is filled
                    measure.beats.append(beat)
                    beat_count = math.floor(t / unit)
                    current_beat += beat_count
                    beat = Beat(current_beat)
                    t -= beat_count * unit

            elif isinstance(item, Bar):
                measure.bar = item
                if beat.items:
                    measure.beats.append(beat)
                measures.append(measure)

                measure = Measure(line_number)
                current_beat = 1
                beat = Beat(current_beat)
                t = 0.0

            elif isinstance(item, LineBreak):
                line_number += 1
                # an open measure with no beats yet starts after the break
                if not measure.beats and not beat.items:
                    measure.line_number = line_number

            # Later time signatures and other markers carry no layout here.

        if beat.items:
            measure.beats.append(beat)
        if measure.beats:
            measures.append(measure)

        return measures
