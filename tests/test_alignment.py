"""Unit tests for BeatAlignment."""

import pytest

from abclayout.alignment import BeatAlignment
from abclayout.exceptions import MissingTimeSignature, UnsupportedMultiMeasureRest
from abclayout.tune_models import (
    Bar,
    Clef,
    DurationItem,
    Item,
    Length,
    LineBreak,
    MultiMeasureRest,
    Note,
    Rest,
    TimeSignatureItem,
    Voice,
)


def _sample_voice(*items: Item, signature: str = "4/4") -> Voice:
    return Voice(Clef.TREBLE, [TimeSignatureItem(signature), *items])


def _quarters(count: int, pitch: int = 26) -> list[Note]:
    return [Note(pitch, Length.QUARTER) for _ in range(count)]


def test_empty_voice_has_no_measures() -> None:
    alignment = BeatAlignment(Voice(Clef.TREBLE, []))
    assert alignment.measures == []


def test_missing_time_signature_raises() -> None:
    with pytest.raises(MissingTimeSignature):
        BeatAlignment(Voice(Clef.TREBLE, [Note(26, Length.QUARTER)]))


def test_time_signature_is_parsed() -> None:
    alignment = BeatAlignment(_sample_voice(signature="6/8"))
    assert alignment.time_signature is not None
    assert alignment.time_signature.beat_count == 6


def test_four_quarters_fill_four_beats() -> None:
    bar = Bar()
    alignment = BeatAlignment(_sample_voice(*_quarters(4), bar))
    assert len(alignment.measures) == 1
    measure = alignment.measures[0]
    assert [b.beat_start for b in measure.beats] == [1, 2, 3, 4]
    assert all(len(b.items) == 1 for b in measure.beats)
    assert measure.bar is bar


def test_half_note_skips_a_beat() -> None:
    alignment = BeatAlignment(_sample_voice(Note(26, Length.HALF), *_quarters(2), Bar()))
    assert [b.beat_start for b in alignment.measures[0].beats] == [1, 3, 4]


def test_eighths_share_a_beat() -> None:
    eighths = [Note(26, Length.EIGHTH) for _ in range(4)]
    alignment = BeatAlignment(_sample_voice(*eighths, Bar(), signature="2/4"))
    beats = alignment.measures[0].beats
    assert [b.beat_start for b in beats] == [1, 2]
    assert beats[0].items == eighths[:2]
    assert beats[1].items == eighths[2:]


def test_dotted_quarter_carries_into_next_beat() -> None:
    dotted = Note(26, Length.QUARTER, dot_count=1)
    eighth = Note(26, Length.EIGHTH)
    alignment = BeatAlignment(_sample_voice(dotted, eighth, Bar(), signature="2/4"))
    beats = alignment.measures[0].beats
    assert [b.beat_start for b in beats] == [1, 2]
    assert beats[0].items == [dotted]
    assert beats[1].items == [eighth]


def test_every_duration_item_appears_once_in_order() -> None:
    first = [Note(26, Length.EIGHTH), Rest(Length.EIGHTH), Note(28, Length.HALF), Note(30, Length.QUARTER)]
    second = [Rest(Length.WHOLE)]
    items: list[Item] = [*first, Bar(), *second, Bar()]
    alignment = BeatAlignment(_sample_voice(*items))

    assert [m.items for m in alignment.measures] == [first, second]
    flattened = [i for m in alignment.measures for i in m.items]
    assert flattened == [i for i in items if isinstance(i, DurationItem)]


def test_beat_starts_are_non_decreasing() -> None:
    notes = [Note(26, Length.EIGHTH), Note(26, Length.HALF, dot_count=1), Note(26, Length.EIGHTH)]
    alignment = BeatAlignment(_sample_voice(*notes, Bar()))
    starts = [b.beat_start for b in alignment.measures[0].beats]
    assert starts == sorted(starts)


def test_trailing_measure_without_bar_is_kept() -> None:
    alignment = BeatAlignment(_sample_voice(*_quarters(4), Bar(), *_quarters(2)))
    assert len(alignment.measures) == 2
    assert alignment.measures[1].bar is None
    assert len(alignment.measures[1].items) == 2


def test_line_break_numbers_the_next_measure() -> None:
    alignment = BeatAlignment(_sample_voice(*_quarters(4), Bar(), LineBreak(), *_quarters(4), Bar()))
    assert [m.line_number for m in alignment.measures] == [0, 1]


def test_line_break_inside_measure_numbers_the_next_measure() -> None:
    alignment = BeatAlignment(_sample_voice(*_quarters(2), LineBreak(), *_quarters(2), Bar(), *_quarters(4), Bar()))
    assert [m.line_number for m in alignment.measures] == [0, 1]
    assert len(alignment.measures[0].items) == 4


def test_consecutive_line_breaks_accumulate() -> None:
    alignment = BeatAlignment(_sample_voice(*_quarters(4), Bar(), LineBreak(), LineBreak(), *_quarters(4), Bar()))
    assert [m.line_number for m in alignment.measures] == [0, 2]


def test_measure_rest_of_one_measure() -> None:
    alignment = BeatAlignment(_sample_voice(MultiMeasureRest(1), Bar()))
    assert alignment.measures[0].is_rest


def test_measure_rest_of_several_measures_raises() -> None:
    with pytest.raises(UnsupportedMultiMeasureRest):
        BeatAlignment(_sample_voice(MultiMeasureRest(4), Bar()))
