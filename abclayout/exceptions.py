"""Typed failures raised out of a layout pass."""


class LayoutError(Exception):
    """Base class for every failure that aborts a layout pass."""


class MissingTimeSignature(LayoutError):
    """A voice does not open with a time signature."""


class UnsupportedTimeSignature(LayoutError):
    """The time signature text could not be parsed."""


class TimeSignatureMismatch(LayoutError):
    """Voices of one tune declare different time signatures."""


class UnsupportedMultiMeasureRest(LayoutError):
    """A multi-measure rest spans more than one measure."""


class InvalidBeamItem(LayoutError):
    """An item other than a note or chord carries a beam id."""


class SlurError(LayoutError):
    """Slur endpoints cannot be connected through the layout tree."""


class StaleHandleError(LayoutError):
    """A handle table was queried after its layout pass was discarded."""
