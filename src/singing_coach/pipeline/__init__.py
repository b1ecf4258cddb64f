"""Pipeline module for Singing Coach."""

from singing_coach.pipeline.base import PipelineStage
from singing_coach.pipeline.orchestrator import (
    Pipeline,
    analyze_recording,
    create_default_pipeline,
)

__all__ = ["Pipeline", "PipelineStage", "analyze_recording", "create_default_pipeline"]
