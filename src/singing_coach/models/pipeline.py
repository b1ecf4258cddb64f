"""Pipeline processing models for Singing Coach.

These models track state as one recording moves through the analysis
pipeline. Every run owns its own AnalysisSession; nothing is shared between
concurrent runs.
"""

from dataclasses import dataclass, field

import numpy as np

from singing_coach.models.analysis import (
    AnalysisResult,
    CurveComparison,
    NormalizedReference,
    NoteComparison,
    PitchTrack,
    RawAudio,
)


@dataclass
class AnalysisSession:
    """Mutable state passed through pipeline stages."""

    # Input
    raw_audio: RawAudio
    reference: NormalizedReference
    manual_offset: float = 0.0  # seconds, user-entered correction

    # Preprocessed mono samples (Stage 2), dropped after alignment
    samples: np.ndarray | None = None

    # Pitch track (Stage 3)
    pitch_track: PitchTrack | None = None

    # Onsets in seconds (Stage 4)
    onsets: list[float] = field(default_factory=list)

    # Alignment (Stage 5)
    singing_onset: float | None = None  # seconds
    coarse_offset: float = 0.0
    fine_offset: float = 0.0
    detected_offset: float = 0.0  # coarse + fine
    offset_seconds: float = 0.0  # detected + clamped manual correction

    # Comparison (Stage 6)
    comparisons: list[NoteComparison] = field(default_factory=list)
    curve: CurveComparison | None = None

    # Scores (Stage 7) and tips (Stage 8)
    result: AnalysisResult | None = None
    tips: list[str] = field(default_factory=list)

    @property
    def sample_rate(self) -> int:
        return self.raw_audio.sample_rate

    @property
    def offset_beats(self) -> float:
        return self.reference.melody.seconds_to_beat(self.offset_seconds)

    def user_onset_beats(self) -> list[float]:
        """Detected onsets on the reference beat axis, offset removed."""
        melody = self.reference.melody
        return [melody.seconds_to_beat(t - self.offset_seconds) for t in self.onsets]


@dataclass
class StageResult:
    """Result of a pipeline stage execution."""

    success: bool
    stage_name: str
    duration_seconds: float
    error_message: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: Exception | None = None


@dataclass
class ProcessingResult:
    """Final result of the complete pipeline execution."""

    success: bool
    session: AnalysisSession | None = None
    stages_completed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_duration: float = 0.0
    error: Exception | None = None
