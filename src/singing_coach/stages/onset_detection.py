"""Onset detection stage - note/syllable starts from energy rises and pitch jumps."""

import numpy as np

from singing_coach.config import Settings
from singing_coach.models.analysis import PitchTrack
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.music import freq_array_to_midi
from singing_coach.pipeline.base import PipelineStage


class OnsetDetectionStage(PipelineStage):
    """Stage 4: Onset Detection.

    Two independent candidate sources on the pitch track:

    - Energy: local maxima of the positive first difference of frame RMS
      that exceed settings.onset_energy_threshold
    - Pitch: a voiced frame more than settings.onset_pitch_jump_semitones
      away from the previous voiced frame, or an unvoiced -> voiced
      transition

    Candidates are merged in time order and thinned so that no two onsets
    are closer than settings.onset_min_gap_seconds (the earlier one wins).
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "onset_detection"

    def execute(self, session: AnalysisSession) -> StageResult:
        warnings: list[str] = []

        if session.pitch_track is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No pitch track available for onset detection",
            )

        session.onsets = self.detect(session.pitch_track)
        warnings.append(f"Detected {len(session.onsets)} onsets")

        return self._ok(warnings)

    def detect(self, track: PitchTrack) -> list[float]:
        """Return onset times in seconds, increasing, min-gap separated."""
        if len(track) == 0:
            return []

        candidates = self._energy_onsets(track) + self._pitch_onsets(track)
        candidates.sort()
        return self._filter_min_gap(candidates)

    def _energy_onsets(self, track: PitchTrack) -> list[float]:
        """Frames where the RMS rise is a local maximum above threshold."""
        if len(track.rms) < 2:
            return []

        rise = np.diff(track.rms)  # rise[i] is the change into frame i + 1
        padded = np.concatenate(([-np.inf], rise, [-np.inf]))
        onsets = []
        for i, value in enumerate(rise):
            if value <= self.settings.onset_energy_threshold:
                continue
            if value >= padded[i] and value > padded[i + 2]:
                onsets.append(float(track.times[i + 1]))
        return onsets

    def _pitch_onsets(self, track: PitchTrack) -> list[float]:
        """Voicing starts and jumps away from the previous voiced pitch."""
        midi = freq_array_to_midi(track.f0)
        voiced = np.isfinite(midi)
        jump = self.settings.onset_pitch_jump_semitones

        onsets = []
        previous: float | None = None
        for i in range(len(midi)):
            if not voiced[i]:
                continue
            if i == 0 or not voiced[i - 1]:
                onsets.append(float(track.times[i]))
            elif previous is not None and abs(midi[i] - previous) > jump:
                onsets.append(float(track.times[i]))
            previous = float(midi[i])
        return onsets

    def _filter_min_gap(self, times: list[float]) -> list[float]:
        """Drop onsets that are too close to the last accepted one."""
        if not times:
            return []

        min_gap = self.settings.onset_min_gap_seconds
        filtered = [times[0]]
        for t in times[1:]:
            if t - filtered[-1] >= min_gap:
                filtered.append(t)
        return filtered
