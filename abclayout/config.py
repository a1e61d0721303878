"""Layout constants and the per-pass configuration object."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Final

# ── Geometry constants (staff units) ─────────────────────────────────────────
NOTE_STEP: Final[float] = 0.28
DEFAULT_STEM_HEIGHT: Final[float] = 1.92
BEAM_HEIGHT: Final[float] = 0.28
DEFAULT_BEAM_SPACER: Final[float] = 0.2
STAFF_PADDING: Final[float] = 0.3
MEASURE_PADDING: Final[float] = 0.5
STAFF_MARGIN: Final[float] = 0.2
CLEF_ADVANCE: Final[float] = 2.0
NOTE_ADVANCE: Final[float] = 0.75

# ── Slur curve constants ─────────────────────────────────────────────────────
SLUR_ENDPOINT_MARGIN: Final[float] = 0.1
SLUR_CURVATURE_SCALE: Final[float] = 0.3
SLUR_SEGMENT_COUNT: Final[int] = 20

DEFAULT_MAX_LINE_WIDTH: Final[float] = 40.0


@dataclass(frozen=True)
class LayoutConfig:
    """
    Tunable values for one layout pass.

    The geometry defaults must stay as they are for the glyph metrics to line
    up; ``max_line_width`` and ``respect_line_breaks`` are the values callers
    normally change.
    """

    max_line_width: float = DEFAULT_MAX_LINE_WIDTH
    respect_line_breaks: bool = True

    note_step: float = NOTE_STEP
    default_stem_height: float = DEFAULT_STEM_HEIGHT
    beam_height: float = BEAM_HEIGHT
    beam_spacer: float = DEFAULT_BEAM_SPACER
    staff_padding: float = STAFF_PADDING
    measure_padding: float = MEASURE_PADDING
    staff_margin: float = STAFF_MARGIN
    clef_advance: float = CLEF_ADVANCE
    note_advance: float = NOTE_ADVANCE

    def __post_init__(self) -> None:
        if self.max_line_width <= 0:
            raise ValueError(f"max_line_width must be positive, got {self.max_line_width}.")

    @classmethod
    def from_mapping(cls, values: dict[str, Any]) -> LayoutConfig:
        """
        Build a config from a plain mapping of overrides.

        Raises:
            ValueError: If the mapping names a field the config does not have.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown layout option(s): {', '.join(unknown)}.")
        return replace(cls(), **values)
