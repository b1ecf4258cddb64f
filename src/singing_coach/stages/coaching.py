"""Coaching stage - rule-based practice tips from the aggregate results."""

from statistics import mean

from singing_coach.models.analysis import AnalysisResult
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.pipeline.base import PipelineStage


class CoachingStage(PipelineStage):
    """Stage 8: Coaching Tips.

    Each rule looks only at scores and issue counts/tendencies. Rules fire
    in a fixed order and at most MAX_TIPS are kept.
    """

    MAX_TIPS = 5
    SCORE_THRESHOLD = 80
    MAX_WRONG_NOTES = 3

    # Mean signed deviation that counts as a tendency
    PITCH_BIAS_SEMITONES = 0.3
    TIMING_BIAS_BEATS = 0.1

    @property
    def name(self) -> str:
        return "coaching"

    def execute(self, session: AnalysisSession) -> StageResult:
        if session.result is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No scores available for coaching",
            )

        session.tips = self.generate_tips(session.result)
        return self._ok([f"{len(session.tips)} tips"])

    def generate_tips(self, result: AnalysisResult) -> list[str]:
        tips: list[str] = []
        issues = result.issues

        misses = [i for i in issues if "miss" in i.kinds]
        pitch_diffs = [
            i.pitch_diff for i in issues if "pitch" in i.kinds and i.pitch_diff is not None
        ]
        early_late = [i for i in issues if "rhythm_start" in i.kinds]

        # Every note missed: only the microphone hint applies
        silent = len(misses) == len(issues) and result.pitch_score == 0

        if issues and silent:
            tips.append(
                "We could not hear any singing. Check your microphone and "
                "record a little closer to it."
            )
        elif misses:
            tips.append(
                f"{len(misses)} note(s) were not sung. Keep your voice going "
                "through the whole phrase."
            )

        if not silent and result.pitch_score < self.SCORE_THRESHOLD:
            tips.append(
                "Some notes waver. Take a longer breath and support the sound "
                "through each note."
            )

        if pitch_diffs:
            bias = mean(pitch_diffs)
            if bias > self.PITCH_BIAS_SEMITONES:
                tips.append("You tend to sing sharp. Relax and aim slightly lower.")
            elif bias < -self.PITCH_BIAS_SEMITONES:
                tips.append("You tend to sing flat. Lift the pitch with more breath support.")

        if not silent and result.rhythm_score < self.SCORE_THRESHOLD:
            tips.append("The rhythm drifts a little. Practice along with a metronome.")

        if early_late:
            bias = mean(i.start_diff for i in early_late)
            if bias < -self.TIMING_BIAS_BEATS:
                tips.append("You often come in early. Wait for the beat before each note.")
            elif bias > self.TIMING_BIAS_BEATS:
                tips.append("You often come in late. Breathe in before the beat so you are ready.")

        if len(issues) > self.MAX_WRONG_NOTES:
            tips.append("Repeat the hard passages slowly to build accuracy.")

        if not tips:
            tips.append("Nicely steady overall. Run it once more at the same tempo.")

        return tips[: self.MAX_TIPS]
