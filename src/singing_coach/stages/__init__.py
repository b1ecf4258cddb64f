"""Pipeline stages for Singing Coach."""

from singing_coach.stages.alignment import AlignmentStage
from singing_coach.stages.coaching import CoachingStage
from singing_coach.stages.comparison import ComparisonStage
from singing_coach.stages.ingest import IngestStage
from singing_coach.stages.onset_detection import OnsetDetectionStage
from singing_coach.stages.pitch_tracking import PitchTrackingStage
from singing_coach.stages.preprocess import PreprocessStage
from singing_coach.stages.scoring import ScoringStage

__all__ = [
    "AlignmentStage",
    "CoachingStage",
    "ComparisonStage",
    "IngestStage",
    "OnsetDetectionStage",
    "PitchTrackingStage",
    "PreprocessStage",
    "ScoringStage",
]
