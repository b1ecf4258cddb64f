"""Data models for Singing Coach."""

from singing_coach.models.analysis import (
    AnalysisResult,
    CurveComparison,
    LyricEvent,
    NormalizedReference,
    Note,
    NoteBar,
    NoteComparison,
    NoteIssue,
    PitchTrack,
    RawAudio,
    ReferenceMelody,
    ReferenceSample,
    Verdict,
)
from singing_coach.models.pipeline import AnalysisSession, ProcessingResult, StageResult

__all__ = [
    "AnalysisResult",
    "AnalysisSession",
    "CurveComparison",
    "LyricEvent",
    "NormalizedReference",
    "Note",
    "NoteBar",
    "NoteComparison",
    "NoteIssue",
    "PitchTrack",
    "ProcessingResult",
    "RawAudio",
    "ReferenceMelody",
    "ReferenceSample",
    "StageResult",
    "Verdict",
]
