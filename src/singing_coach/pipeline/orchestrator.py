"""Pipeline orchestrator for Singing Coach."""

import time

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from singing_coach.config import Settings
from singing_coach.errors import SingingCoachError
from singing_coach.models.analysis import NormalizedReference, RawAudio
from singing_coach.models.pipeline import AnalysisSession, ProcessingResult, StageResult
from singing_coach.pipeline.base import PipelineStage

console = Console()


class Pipeline:
    """Orchestrates the execution of pipeline stages."""

    def __init__(
        self,
        stages: list[PipelineStage],
        settings: Settings,
        show_progress: bool = True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            stages: Ordered list of stages to execute.
            settings: Analysis settings shared by the stages.
            show_progress: Render a progress spinner and per-stage lines.
        """
        self.stages = stages
        self.settings = settings
        self.show_progress = show_progress

    def run(self, session: AnalysisSession) -> ProcessingResult:
        """Run every stage on the session, stopping at the first failure.

        Args:
            session: Fresh session holding the raw audio and reference.

        Returns:
            ProcessingResult with success status and details.
        """
        start_time = time.time()
        result = ProcessingResult(success=True, session=session)

        if self.show_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                for stage in self.stages:
                    task = progress.add_task(f"[cyan]{stage.name}[/cyan]...", total=None)
                    stage_result = stage.run(session)
                    progress.remove_task(task)
                    self._report(stage, stage_result)
                    if not self._record(stage, stage_result, result):
                        break
        else:
            for stage in self.stages:
                if not self._record(stage, stage.run(session), result):
                    break

        result.total_duration = time.time() - start_time
        return result

    def _record(
        self,
        stage: PipelineStage,
        stage_result: StageResult,
        result: ProcessingResult,
    ) -> bool:
        """Fold a stage result into the run result. Returns False to stop."""
        if stage_result.success:
            result.stages_completed.append(stage.name)
            result.warnings.extend(stage_result.warnings)
            return True

        result.success = False
        result.error = stage_result.error
        result.errors.append(f"{stage.name}: {stage_result.error_message}")
        return False

    def _report(self, stage: PipelineStage, stage_result: StageResult) -> None:
        if stage_result.success:
            console.print(
                f"  [green]{stage.name}[/green] "
                f"({stage_result.duration_seconds:.1f}s)"
            )
        else:
            console.print(
                f"  [red]{stage.name}[/red] failed: "
                f"{stage_result.error_message}"
            )


def create_default_pipeline(settings: Settings, show_progress: bool = True) -> Pipeline:
    """Create a pipeline with all default stages.

    Args:
        settings: Analysis settings.
        show_progress: Render progress on the console.

    Returns:
        Configured Pipeline instance.
    """
    from singing_coach.stages import (
        AlignmentStage,
        CoachingStage,
        ComparisonStage,
        IngestStage,
        OnsetDetectionStage,
        PitchTrackingStage,
        PreprocessStage,
        ScoringStage,
    )

    stages: list[PipelineStage] = [
        IngestStage(settings),
        PreprocessStage(settings),
        PitchTrackingStage(settings),
        OnsetDetectionStage(settings),
        AlignmentStage(settings),
        ComparisonStage(settings),
        ScoringStage(settings),
        CoachingStage(),
    ]

    return Pipeline(stages, settings, show_progress=show_progress)


def analyze_recording(
    raw_audio: RawAudio,
    reference: NormalizedReference,
    settings: Settings | None = None,
    manual_offset: float = 0.0,
    show_progress: bool = False,
) -> AnalysisSession:
    """Analyze one recording against one reference.

    Input problems (undecodable, empty or too-short audio) raise before any
    analysis happens. Degenerate recordings still return a session whose
    result carries zero scores.

    Raises:
        SingingCoachError: If a stage fails.
    """
    settings = settings or Settings()
    session = AnalysisSession(
        raw_audio=raw_audio,
        reference=reference,
        manual_offset=manual_offset,
    )
    result = create_default_pipeline(settings, show_progress=show_progress).run(session)

    if not result.success:
        if isinstance(result.error, SingingCoachError):
            raise result.error
        raise SingingCoachError("; ".join(result.errors))

    return session
