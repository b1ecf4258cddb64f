"""Core analysis data models for Singing Coach.

These models describe the reference melody, the measured pitch track and the
per-note comparison results that get serialized into the analysis report.
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


@dataclass(frozen=True)
class RawAudio:
    """Decoded multi-channel PCM as produced by the audio decoder."""

    channels: list[np.ndarray]  # one float array per channel
    sample_rate: int

    @property
    def num_channels(self) -> int:
        return len(self.channels)

    @property
    def num_samples(self) -> int:
        return len(self.channels[0]) if self.channels else 0

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.num_samples / self.sample_rate

    @classmethod
    def from_mono(cls, samples: np.ndarray, sample_rate: int) -> "RawAudio":
        return cls(channels=[np.asarray(samples, dtype=np.float32)], sample_rate=sample_rate)


@dataclass
class Note:
    """A reference note on the beat grid."""

    start_beat: float  # >= 0
    duration_beats: float  # > 0
    midi: float  # semitone number, may be fractional

    @property
    def end_beat(self) -> float:
        return self.start_beat + self.duration_beats


@dataclass
class LyricEvent:
    """A lyric syllable anchored to a beat."""

    beat: float
    text: str


@dataclass
class ReferenceMelody:
    """The melody a recording is graded against."""

    id: str
    title: str
    tempo_bpm: float
    notes: list[Note] = field(default_factory=list)
    lyrics: list[LyricEvent] = field(default_factory=list)
    time_signature: tuple[int, int] = (4, 4)
    key: str | None = None

    @property
    def seconds_per_beat(self) -> float:
        return 60.0 / self.tempo_bpm

    def beat_to_seconds(self, beat: float) -> float:
        return beat * self.seconds_per_beat

    def seconds_to_beat(self, seconds: float) -> float:
        return seconds / self.seconds_per_beat


@dataclass(frozen=True)
class ReferenceSample:
    """One point of the beat-sampled reference curve."""

    beat: float
    midi: float | None  # None where no note sounds


@dataclass
class NormalizedReference:
    """A reference melody plus its fixed-step sampled curve."""

    melody: ReferenceMelody
    samples: list[ReferenceSample]
    total_beats: float
    beat_step: float

    @property
    def notes(self) -> list[Note]:
        return self.melody.notes

    @property
    def tempo_bpm(self) -> float:
        return self.melody.tempo_bpm

    @property
    def seconds_per_beat(self) -> float:
        return self.melody.seconds_per_beat


@dataclass
class PitchTrack:
    """Frame-wise fundamental frequency estimates.

    times are frame centers in seconds with a constant hop. f0 is 0 for
    unvoiced or rejected frames.
    """

    times: np.ndarray
    f0: np.ndarray  # Hz, 0 = unvoiced
    confidence: np.ndarray  # 0.0-1.0
    rms: np.ndarray
    sample_rate: int
    frame_size: int
    hop_size: int

    def __post_init__(self) -> None:
        assert len(self.times) == len(self.f0), "times and f0 must be parallel"
        assert len(self.confidence) == len(self.f0), "confidence and f0 must be parallel"
        assert len(self.rms) == len(self.f0), "rms and f0 must be parallel"

    def __len__(self) -> int:
        return len(self.f0)

    @property
    def hop_seconds(self) -> float:
        return self.hop_size / self.sample_rate

    def voiced_mask(self) -> np.ndarray:
        return np.isfinite(self.f0) & (self.f0 > 0)

    @property
    def has_voiced_frames(self) -> bool:
        return bool(self.voiced_mask().any())

    def first_voiced_time(self) -> float | None:
        voiced = np.flatnonzero(self.voiced_mask())
        if len(voiced) == 0:
            return None
        return float(self.times[voiced[0]])

    @classmethod
    def empty(cls, sample_rate: int, frame_size: int, hop_size: int) -> "PitchTrack":
        nothing = np.zeros(0)
        return cls(
            times=nothing,
            f0=nothing.copy(),
            confidence=nothing.copy(),
            rms=nothing.copy(),
            sample_rate=sample_rate,
            frame_size=frame_size,
            hop_size=hop_size,
        )


@dataclass(frozen=True)
class NoteBar:
    """A note drawn on the beat axis (reference or observed)."""

    start_beat: float
    end_beat: float
    midi: float | None


@dataclass(frozen=True)
class NoteComparison:
    """Reference note versus what the user sang for it."""

    index: int
    reference: NoteBar
    user: NoteBar
    pitch_diff: float | None  # semitones, user - reference
    start_diff: float  # beats
    end_diff: float  # beats
    duration_diff: float  # beats
    is_pitch_error: bool
    is_rhythm_start_error: bool
    is_rhythm_duration_error: bool

    @property
    def is_miss(self) -> bool:
        return self.user.midi is None

    @property
    def is_correct(self) -> bool:
        return not (
            self.is_miss
            or self.is_pitch_error
            or self.is_rhythm_start_error
            or self.is_rhythm_duration_error
        )

    @property
    def issue_kinds(self) -> list[str]:
        kinds = []
        if self.is_miss:
            kinds.append("miss")
        if self.is_pitch_error:
            kinds.append("pitch")
        if self.is_rhythm_start_error:
            kinds.append("rhythm_start")
        if self.is_rhythm_duration_error:
            kinds.append("rhythm_duration")
        return kinds


@dataclass(frozen=True)
class NoteIssue:
    """A problem record derived from an incorrect NoteComparison."""

    note_index: int
    beat: float
    midi: float
    kinds: tuple[str, ...]
    pitch_diff: float | None
    start_diff: float
    end_diff: float
    duration_diff: float

    @classmethod
    def from_comparison(cls, comparison: NoteComparison) -> "NoteIssue":
        return cls(
            note_index=comparison.index,
            beat=comparison.reference.start_beat,
            midi=comparison.reference.midi,  # type: ignore[arg-type]
            kinds=tuple(comparison.issue_kinds),
            pitch_diff=comparison.pitch_diff,
            start_diff=comparison.start_diff,
            end_diff=comparison.end_diff,
            duration_diff=comparison.duration_diff,
        )


@dataclass
class CurveComparison:
    """Beat-sampled reference and smoothed user curves for charting."""

    beats: list[float] = field(default_factory=list)
    reference_midi: list[float | None] = field(default_factory=list)
    user_midi: list[float | None] = field(default_factory=list)
    incorrect_mask: list[bool] = field(default_factory=list)

    @property
    def sample_accuracy(self) -> float | None:
        """Share of comparable samples within tolerance, or None."""
        comparable = [
            wrong
            for ref, user, wrong in zip(self.reference_midi, self.user_midi, self.incorrect_mask)
            if ref is not None and user is not None
        ]
        if not comparable:
            return None
        return 1.0 - sum(comparable) / len(comparable)


class Verdict(str, Enum):
    """Qualitative verdict tiers, best first."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    NEEDS_PRACTICE = "needs_practice"

    @property
    def label(self) -> str:
        return {
            Verdict.EXCELLENT: "Excellent!",
            Verdict.GOOD: "Good job",
            Verdict.FAIR: "Not bad",
            Verdict.NEEDS_PRACTICE: "Keep practicing",
        }[self]


@dataclass(frozen=True)
class AnalysisResult:
    """Scores and verdict for one (reference, recording) pair."""

    pitch_score: int  # 0-100
    rhythm_score: int  # 0-100
    total_score: int  # 0-100
    verdict: Verdict
    issues: tuple[NoteIssue, ...] = ()
