"""Scoring stage - pitch/rhythm/total scores and the verdict."""

from singing_coach.config import Settings
from singing_coach.models.analysis import AnalysisResult, NoteComparison, NoteIssue, Verdict
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.music import round_half_up
from singing_coach.pipeline.base import PipelineStage


class ScoringStage(PipelineStage):
    """Stage 7: Scoring.

    - Pitch score: share of notes with a user estimate that are within the
      pitch tolerance
    - Rhythm score: share of reference onsets matched to a detected user
      onset (greedy, nearest unused onset within
      settings.rhythm_match_tolerance_beats)
    - Total: weighted combination, mapped to a four-tier verdict

    Empty references and recordings without voicing score 0 with the lowest
    verdict.
    """

    VERDICTS = [Verdict.EXCELLENT, Verdict.GOOD, Verdict.FAIR]

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "scoring"

    def execute(self, session: AnalysisSession) -> StageResult:
        warnings: list[str] = []

        voiced = session.pitch_track is not None and session.pitch_track.has_voiced_frames
        if not session.reference.notes or not voiced:
            warnings.append("Nothing comparable: scoring 0")
            pitch_score = rhythm_score = 0
        else:
            pitch_score = self.pitch_score(session.comparisons)
            rhythm_score = self.rhythm_score(
                [n.start_beat for n in session.reference.notes],
                session.user_onset_beats(),
            )

        total = self.total_score(pitch_score, rhythm_score)
        session.result = AnalysisResult(
            pitch_score=pitch_score,
            rhythm_score=rhythm_score,
            total_score=total,
            verdict=self.verdict(total),
            issues=tuple(
                NoteIssue.from_comparison(c) for c in session.comparisons if not c.is_correct
            ),
        )

        warnings.append(
            f"Scores: pitch {pitch_score}, rhythm {rhythm_score}, total {total} "
            f"({session.result.verdict.value})"
        )
        return self._ok(warnings)

    def pitch_score(self, comparisons: list[NoteComparison]) -> int:
        comparable = [c for c in comparisons if c.pitch_diff is not None]
        if not comparable:
            return 0
        correct = sum(1 for c in comparable if not c.is_pitch_error)
        return round_half_up(100 * correct / len(comparable))

    def rhythm_score(self, reference_onsets: list[float], user_onsets: list[float]) -> int:
        if not reference_onsets or not user_onsets:
            return 0
        matched = len(self.match_onsets(reference_onsets, user_onsets))
        return round_half_up(100 * matched / len(reference_onsets))

    def match_onsets(
        self, reference_onsets: list[float], user_onsets: list[float]
    ) -> list[tuple[int, int]]:
        """Greedy matching of reference onsets to unused user onsets.

        Reference onsets claim, in order, the nearest user onset that is
        still unused; the claim only counts within the match tolerance.

        Returns:
            (reference_index, user_index) pairs
        """
        tolerance = self.settings.rhythm_match_tolerance_beats
        used: set[int] = set()
        pairs = []
        for r_index, r in enumerate(reference_onsets):
            best_index, best_diff = -1, float("inf")
            for u_index, u in enumerate(user_onsets):
                if u_index in used:
                    continue
                diff = abs(u - r)
                if diff < best_diff:
                    best_index, best_diff = u_index, diff
            if best_index >= 0 and best_diff <= tolerance:
                used.add(best_index)
                pairs.append((r_index, best_index))
        return pairs

    def total_score(self, pitch_score: int, rhythm_score: int) -> int:
        total = round_half_up(
            self.settings.pitch_weight * pitch_score + self.settings.rhythm_weight * rhythm_score
        )
        return max(0, min(100, total))

    def verdict(self, total_score: int) -> Verdict:
        for threshold, verdict in zip(self.settings.verdict_thresholds, self.VERDICTS):
            if total_score >= threshold:
                return verdict
        return Verdict.NEEDS_PRACTICE
