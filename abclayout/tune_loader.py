"""Tune serializer: load and save parsed tunes as JSON."""

from __future__ import annotations

import json
from pathlib import Path

from abclayout.tune_models import (
    Accidental,
    Bar,
    Chord,
    ChordElement,
    Clef,
    DurationItem,
    Item,
    Length,
    LineBreak,
    MultiMeasureRest,
    Note,
    Rest,
    TimeSignatureItem,
    Tune,
    Voice,
    pitch_step,
)


def _pitch_from_value(value: int | str) -> int:
    if isinstance(value, int):
        return value
    return pitch_step(value)


def _length_from_value(value: str) -> Length:
    try:
        return Length[value.upper()]
    except KeyError:
        raise ValueError(f"Unknown note length '{value}'.") from None


def _chord_element_from_dict(d: dict) -> ChordElement:
    return ChordElement(
        pitch=_pitch_from_value(d["pitch"]),
        accidental=Accidental(d.get("accidental", "unspecified")),
    )


def _item_from_dict(d: dict) -> Item:
    kind = d.get("type")
    if kind == "time_signature":
        return TimeSignatureItem(value=d["value"])
    if kind == "note":
        return Note(
            pitch=_pitch_from_value(d["pitch"]),
            length=_length_from_value(d["length"]),
            accidental=Accidental(d.get("accidental", "unspecified")),
            dot_count=d.get("dots", 0),
            beam=d.get("beam"),
        )
    if kind == "chord":
        return Chord(
            notes=[_chord_element_from_dict(n) for n in d["notes"]],
            length=_length_from_value(d["length"]),
            dot_count=d.get("dots", 0),
            beam=d.get("beam"),
        )
    if kind == "rest":
        return Rest(
            length=_length_from_value(d["length"]),
            dot_count=d.get("dots", 0),
            beam=d.get("beam"),
        )
    if kind == "measure_rest":
        return MultiMeasureRest(count=d.get("count", 1), beam=d.get("beam"))
    if kind == "bar":
        return Bar(kind=d.get("kind", "|"))
    if kind == "line_break":
        return LineBreak()
    raise ValueError(f"Unknown item type '{kind}'.")


def _item_to_dict(item: Item) -> dict:
    if isinstance(item, TimeSignatureItem):
        return {"type": "time_signature", "value": item.value}
    if isinstance(item, Note):
        d: dict = {"type": "note", "pitch": item.pitch, "length": item.length.name.lower()}
        if item.accidental is not Accidental.UNSPECIFIED:
            d["accidental"] = item.accidental.value
    elif isinstance(item, Chord):
        d = {
            "type": "chord",
            "notes": [{"pitch": n.pitch, "accidental": n.accidental.value} for n in item.notes],
            "length": item.length.name.lower(),
        }
    elif isinstance(item, Rest):
        d = {"type": "rest", "length": item.length.name.lower()}
    elif isinstance(item, MultiMeasureRest):
        d = {"type": "measure_rest", "count": item.count}
    elif isinstance(item, Bar):
        return {"type": "bar", "kind": item.kind}
    elif isinstance(item, LineBreak):
        return {"type": "line_break"}
    else:
        raise ValueError(f"Cannot serialize item of type {type(item).__name__}.")

    if isinstance(item, (Note, Chord, Rest)) and item.dot_count:
        d["dots"] = item.dot_count
    if isinstance(item, DurationItem) and item.beam is not None:
        d["beam"] = item.beam
    return d


def _voice_from_dict(d: dict) -> Voice:
    return Voice(
        clef=Clef(d.get("clef", "treble")),
        items=[_item_from_dict(i) for i in d.get("items", [])],
        name=d.get("name", ""),
    )


def tune_to_dict(tune: Tune) -> dict:
    """Convert a Tune to a JSON-serializable dict."""
    return {
        "title": tune.title,
        "voices": [
            {
                "clef": v.clef.value,
                "name": v.name,
                "items": [_item_to_dict(i) for i in v.items],
            }
            for v in tune.voices
        ],
    }


def tune_from_dict(d: dict) -> Tune:
    """
    Reconstruct a Tune from a dict (parsed JSON).

    Pitches may be integer steps or names such as ``"C5"``; lengths are
    lower-case ``Length`` names.

    Raises:
        ValueError: On an unknown item type, length, clef or accidental.
    """
    return Tune(
        title=d.get("title", ""),
        voices=[_voice_from_dict(v) for v in d.get("voices", [])],
    )


def save_tune(tune: Tune, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(tune_to_dict(tune), f, indent=2, ensure_ascii=False)


def load_tune(path: str | Path) -> Tune:
    """Load a tune from a JSON file.

    Args:
        path: Path to the JSON file.

    Returns:
        The reconstructed Tune.
    """
    with open(Path(path)) as f:
        data = json.load(f)
    return tune_from_dict(data)
