"""Tests for the horizontal layout engine and the Layout front object."""

import json
import logging

import pytest

from abclayout.config import LayoutConfig
from abclayout.exceptions import (
    InvalidBeamItem,
    LayoutError,
    MissingTimeSignature,
    SlurError,
    StaleHandleError,
    TimeSignatureMismatch,
    UnsupportedMultiMeasureRest,
    UnsupportedTimeSignature,
)
from abclayout.layout import HorizontalLayoutEngine, Layout, LayoutResult
from abclayout.metrics_renderer import GLYPH_METRICS, GlyphMetricsRenderer
from abclayout.tune_models import (
    Bar,
    Clef,
    Item,
    Length,
    LineBreak,
    MultiMeasureRest,
    Note,
    Rest,
    TimeSignatureItem,
    Tune,
    Voice,
)
from abclayout.voice_layout import VoiceLayoutState

# Post-preamble cursor: staff padding plus clef advance.
LINE_START = 0.3 + 2.0
# One measure of four stemmed quarters and a bar line.
QUARTER_MEASURE_WIDTH = 0.5 + 4 * (0.7 + 0.75) + 0.05


def _sample_voice(*items: Item, signature: str = "4/4", clef: Clef = Clef.TREBLE) -> Voice:
    return Voice(clef, [TimeSignatureItem(signature), *items])


def _sample_measure(pitch: int = 26, count: int = 4) -> list[Item]:
    return [*(Note(pitch, Length.QUARTER) for _ in range(count)), Bar()]


def _sample_measures(measure_count: int, pitch: int = 26) -> list[Item]:
    return [item for _ in range(measure_count) for item in _sample_measure(pitch)]


def _run(*voices: Voice, **config: object) -> tuple[LayoutResult, GlyphMetricsRenderer]:
    renderer = GlyphMetricsRenderer()
    engine = HorizontalLayoutEngine(renderer, LayoutConfig.from_mapping(config))
    return engine.run(Tune("Sample", list(voices))), renderer


# ── horizontal placement ───────────────────────────────────────────────────────


def test_first_line_starts_after_time_signature() -> None:
    result, _ = _run(_sample_voice(*_sample_measure(), *_sample_measure()))
    measures = result.voices[0].score_lines[0].measures

    assert result.line_count == 1
    assert measures[0].x == pytest.approx(LINE_START + 0.7)
    assert measures[0].width == pytest.approx(QUARTER_MEASURE_WIDTH)
    assert measures[1].x == pytest.approx(LINE_START + 0.7 + QUARTER_MEASURE_WIDTH)


def test_items_advance_by_extent_and_note_gap() -> None:
    result, _ = _run(_sample_voice(*_sample_measure()))
    elements = result.voices[0].score_lines[0].measures[0].elements
    xs = [e.root_extent.min_x for e in elements]
    assert xs == pytest.approx([0.5, 1.95, 3.4, 4.85])


def test_simultaneous_beats_align_across_voices() -> None:
    upper = _sample_voice(
        Note(26, Length.EIGHTH), Note(26, Length.EIGHTH), Note(26, Length.QUARTER), Note(26, Length.HALF), Bar()
    )
    lower = _sample_voice(*_sample_measure(pitch=20), clef=Clef.BASS)
    result, _ = _run(upper, lower)

    upper_elements = result.voices[0].score_lines[0].measures[0].elements
    lower_elements = result.voices[1].score_lines[0].measures[0].elements

    # beat 2 and beat 3 start together even though beat 1 differs in width
    assert upper_elements[2].root_extent.min_x == pytest.approx(lower_elements[1].root_extent.min_x)
    assert upper_elements[3].root_extent.min_x == pytest.approx(lower_elements[2].root_extent.min_x)
    assert lower_elements[1].root_extent.min_x > lower_elements[0].root_extent.max_x + 0.75


def test_measure_cursors_are_equal_across_voices() -> None:
    upper = _sample_voice(Note(26, Length.WHOLE), Bar())
    lower = _sample_voice(*_sample_measure(pitch=30))
    result, _ = _run(upper, lower)

    widths = {state.score_lines[0].measures[0].width for state in result.voices}
    assert len(widths) == 1


def test_over_full_measure_keeps_every_item() -> None:
    result, _ = _run(_sample_voice(*_sample_measure(count=5)))
    elements = result.voices[0].score_lines[0].measures[0].elements

    assert len(elements) == 5
    xs = [e.root_extent.min_x for e in elements]
    assert xs == sorted(xs)


def test_measure_rest_is_drawn() -> None:
    result, renderer = _run(_sample_voice(MultiMeasureRest(), Bar()))
    assert len(renderer.glyphs("Rest_Half")) == 1
    assert result.voices[0].score_lines[0].measures[0].source.is_rest


# ── line wrapping ──────────────────────────────────────────────────────────────


def test_wrap_starts_new_line_after_preamble() -> None:
    voice = _sample_voice(*_sample_measures(4))
    result, renderer = _run(voice, max_line_width=12.0)
    lines = result.voices[0].score_lines

    assert result.line_count == 4
    assert [len(line.measures) for line in lines] == [1, 1, 1, 1]
    assert lines[0].measures[0].x == pytest.approx(LINE_START + 0.7)
    for line in lines[1:]:
        assert line.measures[0].x == pytest.approx(LINE_START)
    # the time signature is only drawn on the first line
    assert len(renderer.glyphs("Time_4")) == 2
    assert result.voices[0].score_lines[0].measures[0].x == pytest.approx(result.voices[1].score_lines[0].measures[0].x)


def test_wide_line_holds_several_measures() -> None:
    voice = _sample_voice(*_sample_measures(4))
    result, _ = _run(voice, max_line_width=22.0)
    assert [len(line.measures) for line in result.voices[0].score_lines] == [2, 2]


def test_oversized_measure_does_not_leave_empty_line() -> None:
    voice = _sample_voice(*_sample_measures(2))
    result, _ = _run(voice, max_line_width=5.0)
    assert [len(line.measures) for line in result.voices[0].score_lines] == [1, 1]


def test_line_break_hint_forces_wrap() -> None:
    voice = _sample_voice(*_sample_measure(), LineBreak(), *_sample_measure())
    result, _ = _run(voice)
    assert result.line_count == 2


def test_line_break_inside_measure_wraps_after_it() -> None:
    voice = _sample_voice(*_sample_measure(count=2)[:-1], LineBreak(), *_sample_measure(count=2), *_sample_measure())
    result, _ = _run(voice)

    assert result.line_count == 2
    assert [len(line.measures) for line in result.voices[0].score_lines] == [1, 1]
    assert len(result.voices[0].score_lines[0].measures[0].elements) == 4


def test_line_break_hint_can_be_ignored() -> None:
    voice = _sample_voice(*_sample_measure(), LineBreak(), *_sample_measure())
    result, _ = _run(voice, respect_line_breaks=False)
    assert result.line_count == 1


def test_all_voices_wrap_together() -> None:
    upper = _sample_voice(*_sample_measures(3))
    lower = _sample_voice(*_sample_measures(3, pitch=20), clef=Clef.BASS)
    result, _ = _run(upper, lower, max_line_width=12.0)
    assert [len(state.score_lines) for state in result.voices] == [3, 3]


# ── finalization ───────────────────────────────────────────────────────────────


def test_staff_is_stretched_to_line_width() -> None:
    result, renderer = _run(_sample_voice(*_sample_measure()))
    line = result.voices[0].score_lines[0]
    staff = renderer.glyphs("Staff")[0]

    assert line.width == pytest.approx(LINE_START + 0.7 + QUARTER_MEASURE_WIDTH)
    assert staff.scale_x == pytest.approx(line.width / GLYPH_METRICS["Staff"][2])


def test_lines_stack_downwards() -> None:
    result, renderer = _run(_sample_voice(*_sample_measure()), _sample_voice(*_sample_measure()))
    first = result.voices[0].score_lines[0]
    second = result.voices[1].score_lines[0]

    # the treble clef is the tallest glyph: 2.9 above and 0.9 below the origin
    assert first.y == pytest.approx(-2.9)
    assert second.y == pytest.approx(-2.9 - (2.9 + 0.9) - 0.2)
    assert renderer.nodes[first.container].y == pytest.approx(first.y)


def test_only_staff_lines_remain_at_root() -> None:
    _, renderer = _run(_sample_voice(*_sample_measures(3)), max_line_width=12.0)
    assert [renderer.nodes[h].label for h in renderer.roots] == ["Staffline"] * 3


# ── beams ──────────────────────────────────────────────────────────────────────


def test_beam_connector_is_drawn_in_measure() -> None:
    voice = _sample_voice(
        Note(26, Length.EIGHTH, beam=1),
        Note(26, Length.EIGHTH, beam=1),
        *_sample_measure(count=3),
    )
    result, renderer = _run(voice)
    measure = result.voices[0].score_lines[0].measures[0]

    beams = renderer.nodes[measure.container].beams
    assert len(beams) == 1
    vertices, _ = beams[0]
    assert vertices[0][1] == pytest.approx(GLYPH_METRICS["Note_Quarter_Up"][3])
    assert result.beams[1].connectors is not None


# ── errors ─────────────────────────────────────────────────────────────────────


def test_missing_time_signature_raises_before_drawing() -> None:
    renderer = GlyphMetricsRenderer()
    tune = Tune("t", [Voice(Clef.TREBLE, _sample_measure())])
    with pytest.raises(MissingTimeSignature):
        HorizontalLayoutEngine(renderer).run(tune)
    assert renderer.nodes == {}


def test_time_signature_mismatch_raises() -> None:
    with pytest.raises(TimeSignatureMismatch):
        _run(_sample_voice(*_sample_measure()), _sample_voice(*_sample_measure(count=3), signature="3/4"))


def test_equivalent_signature_spellings_lay_out() -> None:
    result, renderer = _run(_sample_voice(*_sample_measure()), _sample_voice(*_sample_measure(), signature="C"))

    assert result.line_count == 1
    assert len(renderer.glyphs("Time_Common")) == 1
    assert len(renderer.glyphs("Time_4")) == 2


def test_unsupported_time_signature_raises() -> None:
    with pytest.raises(UnsupportedTimeSignature):
        _run(_sample_voice(*_sample_measure(), signature="7"))


def test_beamed_rest_raises_before_drawing() -> None:
    renderer = GlyphMetricsRenderer()
    voice = _sample_voice(Note(26, Length.EIGHTH, beam=1), Rest(Length.EIGHTH, beam=1), Bar())
    with pytest.raises(InvalidBeamItem):
        HorizontalLayoutEngine(renderer).run(Tune("t", [voice]))
    assert renderer.nodes == {}


def test_long_measure_rest_raises() -> None:
    with pytest.raises(UnsupportedMultiMeasureRest):
        _run(_sample_voice(MultiMeasureRest(3), Bar()))


def test_unequal_measure_counts_are_truncated(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="abclayout.layout"):
        result, _ = _run(_sample_voice(*_sample_measures(2)), _sample_voice(*_sample_measure()))
    assert "different measure counts" in caplog.text
    assert [len(s.score_lines[0].measures) for s in result.voices] == [1, 1]


def test_tune_without_voices() -> None:
    result, renderer = _run()
    assert result.line_count == 0
    assert renderer.nodes == {}


# ── handles and slurs ──────────────────────────────────────────────────────────


def test_every_item_gets_a_handle() -> None:
    notes = _sample_measure()
    result, renderer = _run(_sample_voice(*notes))

    assert len(result.handles) == 5
    for item in notes:
        handle = result.handles.handle_for(item)
        assert handle is not None
        assert result.handles.item_for(handle) is item
        assert renderer.nodes[handle].label == type(item).__name__


def test_element_for_links_back_to_measure() -> None:
    notes = _sample_measure()
    result, _ = _run(_sample_voice(*notes))
    element = result.element_for(notes[1])

    assert element is not None
    assert element.measure is result.voices[0].score_lines[0].measures[0]
    assert result.handles.extent_for(notes[1]) == element.total_extent
    assert result.element_for(Note(26, Length.QUARTER)) is None


def test_create_slur_between_placed_notes() -> None:
    notes = _sample_measure()
    result, renderer = _run(_sample_voice(*notes))
    [points] = result.create_slur(notes[0], notes[2])

    line = result.voices[0].score_lines[0]
    assert len(points) == 21
    assert renderer.nodes[line.container].slurs == [points]


def test_create_slur_across_line_wrap_runs_forwards_on_each_line() -> None:
    notes = _sample_measures(2)
    result, renderer = _run(_sample_voice(*notes), max_line_width=12.0)
    pieces = result.create_slur(notes[3], notes[5])

    first_line, second_line = result.voices[0].score_lines
    assert len(pieces) == 2
    assert all(piece[0].x < piece[-1].x for piece in pieces)
    assert pieces[0][-1].x == pytest.approx(first_line.width - 0.1)
    assert pieces[1][0].x == pytest.approx(LINE_START + 0.1)
    assert renderer.nodes[first_line.container].slurs == [pieces[0]]
    assert renderer.nodes[second_line.container].slurs == [pieces[1]]


def test_create_slur_rejects_bar() -> None:
    notes = _sample_measure()
    result, _ = _run(_sample_voice(*notes))
    with pytest.raises(SlurError):
        result.create_slur(notes[0], notes[-1])


def test_result_to_dict_is_json_serializable() -> None:
    voice = _sample_voice(Note(26, Length.EIGHTH, beam=1), Note(28, Length.EIGHTH, beam=1), *_sample_measure(count=3))
    result, _ = _run(voice)
    document = json.loads(json.dumps(result.to_dict()))

    assert document["title"] == "Sample"
    assert document["beams"]["1"]["shape"] == "angle"
    assert len(document["voices"][0]["lines"][0]["measures"][0]["items"]) == 5


# ── Layout front object ────────────────────────────────────────────────────────


def test_load_returns_outcome_with_tune() -> None:
    tune = Tune("Reel", [_sample_voice(*_sample_measure())])
    outcome = Layout(GlyphMetricsRenderer()).load(tune)

    assert outcome.ok
    assert outcome.tune is tune
    assert outcome.result is not None
    assert outcome.error is None


def test_reload_invalidates_previous_handles() -> None:
    renderer = GlyphMetricsRenderer()
    layout = Layout(renderer)
    notes = _sample_measure()
    first = layout.load(Tune("One", [_sample_voice(*notes)]))
    layout.load(Tune("Two", [_sample_voice(*_sample_measure())]))

    assert first.result is not None
    with pytest.raises(StaleHandleError):
        first.result.handles.handle_for(notes[0])
    with pytest.raises(StaleHandleError):
        first.result.element_for(notes[0])


def test_reload_reuses_pooled_glyphs() -> None:
    renderer = GlyphMetricsRenderer()
    layout = Layout(renderer)
    layout.load(Tune("One", [_sample_voice(*_sample_measure())]))
    layout.load(Tune("Two", [_sample_voice(*_sample_measure(count=2))]))

    assert renderer.pool_size("Note_Quarter_Up") == 2
    assert len(renderer.glyphs("Note_Quarter_Up")) == 2


def test_failed_load_reports_error(caplog: pytest.LogCaptureFixture) -> None:
    tune = Tune("Broken", [_sample_voice(*_sample_measure()), _sample_voice(*_sample_measure(), signature="3/4")])
    with caplog.at_level(logging.ERROR, logger="abclayout.layout"):
        outcome = Layout(GlyphMetricsRenderer()).load(tune)

    assert not outcome.ok
    assert outcome.result is None
    assert isinstance(outcome.error, TimeSignatureMismatch)
    assert "Layout of 'Broken' failed" in caplog.text


def test_appending_without_open_measure_raises() -> None:
    state = VoiceLayoutState(_sample_voice(*_sample_measure()), GlyphMetricsRenderer())
    state.new_staffline()
    with pytest.raises(LayoutError):
        state.append_measure()
