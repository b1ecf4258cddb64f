"""Base classes for pipeline stages."""

from abc import ABC, abstractmethod
import time

from singing_coach.errors import SingingCoachError
from singing_coach.models.pipeline import AnalysisSession, StageResult


class PipelineStage(ABC):
    """Abstract base class for pipeline stages.

    Each stage implements execute() which receives the AnalysisSession,
    performs its work (filling in the session), and returns a StageResult.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this stage."""
        ...

    @abstractmethod
    def execute(self, session: AnalysisSession) -> StageResult:
        """Execute this stage.

        Args:
            session: Mutable analysis session that accumulates results.

        Returns:
            StageResult indicating success/failure and any warnings.
        """
        ...

    def run(self, session: AnalysisSession) -> StageResult:
        """Run the stage with timing.

        This is the public entry point that wraps execute() with timing
        and error handling.
        """
        start_time = time.time()
        try:
            result = self.execute(session)
            result.duration_seconds = time.time() - start_time
            return result
        except SingingCoachError as e:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=time.time() - start_time,
                error_message=str(e),
                error=e,
            )
        except Exception as e:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=time.time() - start_time,
                error_message=f"Unexpected error: {e}",
                error=e,
            )

    def _ok(self, warnings: list[str] | None = None) -> StageResult:
        return StageResult(
            success=True,
            stage_name=self.name,
            duration_seconds=0,
            warnings=warnings or [],
        )
