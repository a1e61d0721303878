"""Unit tests for the tune data model."""

import pytest

from abclayout.tune_models import DurationItem, Length, MultiMeasureRest, Note, Rest


def test_duration_item_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        DurationItem()  # type: ignore[abstract]


def test_subclass_without_duration_is_abstract() -> None:
    class Silence(DurationItem):
        pass

    with pytest.raises(TypeError):
        Silence()  # type: ignore[abstract]


def test_dotted_durations() -> None:
    assert Note(26, Length.QUARTER).duration == pytest.approx(0.25)
    assert Note(26, Length.QUARTER, dot_count=1).duration == pytest.approx(0.375)
    assert Rest(Length.HALF, dot_count=2).duration == pytest.approx(0.875)


def test_measure_rest_takes_no_beat_time() -> None:
    assert MultiMeasureRest(1).duration == 0.0
