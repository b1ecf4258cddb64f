"""Exception types for Singing Coach.

Only input problems raise. Degenerate analysis data (silence, empty
references) is handled inside the stages and produces a worst-case result.
"""


class SingingCoachError(Exception):
    """Base class for all Singing Coach errors."""


class AudioDecodeError(SingingCoachError):
    """The uploaded audio could not be decoded."""


class InvalidAudioError(SingingCoachError):
    """The decoded audio buffer is unusable (empty, ragged channels, bad rate)."""


class AudioTooShortError(InvalidAudioError):
    """The recording is too short to analyze meaningfully."""


class UnknownReferenceError(SingingCoachError):
    """No built-in reference melody exists for the requested id."""


class ReferenceParseError(SingingCoachError):
    """A reference file or structure could not be parsed."""
