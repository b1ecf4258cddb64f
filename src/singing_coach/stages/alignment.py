"""Alignment stage - estimates the time offset between reference and recording."""

import librosa
import numpy as np

from singing_coach.config import Settings
from singing_coach.models.analysis import NormalizedReference, PitchTrack
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.pipeline.base import PipelineStage
from singing_coach.stages.preprocess import downmix


class AlignmentStage(PipelineStage):
    """Stage 5: Temporal Alignment.

    Positive offsets mean the singer is late relative to the reference.

    1. Coarse: the first moment the recording's short-window RMS exceeds an
       adaptive threshold (baseline RMS of the first seconds times a factor,
       floored at an absolute level) minus the reference's first note time.
    2. Fine: binary event sequences on a small time grid, one marking voiced
       pitch frames (after removing the coarse offset) and one marking
       reference note onsets. The shift within +/- fine_max_shift_seconds
       with the largest overlap wins; ties go to the smallest |shift|.

    The applied offset adds the user's manual correction, clamped to
    +/- max_manual_offset_seconds.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "alignment"

    def execute(self, session: AnalysisSession) -> StageResult:
        warnings: list[str] = []

        if session.pitch_track is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No pitch track available for alignment",
            )

        samples = session.samples if session.samples is not None else downmix(session.raw_audio)
        session.singing_onset = self.detect_singing_onset(samples, session.sample_rate)
        session.samples = None
        if session.singing_onset is None:
            warnings.append("No singing onset found; using the first voiced frame")

        coarse, fine = self.estimate_offset(
            session.pitch_track, session.reference, session.singing_onset
        )
        session.coarse_offset = coarse
        session.fine_offset = fine
        session.detected_offset = coarse + fine

        manual = self.clamp_manual_offset(session.manual_offset)
        if manual != session.manual_offset:
            warnings.append(
                f"Manual offset {session.manual_offset:+.2f}s clamped to {manual:+.2f}s"
            )
        session.offset_seconds = session.detected_offset + manual

        warnings.append(
            f"Offset: {session.offset_seconds:+.2f}s "
            f"(coarse {coarse:+.2f}s, fine {fine:+.2f}s, manual {manual:+.2f}s)"
        )
        return self._ok(warnings)

    def clamp_manual_offset(self, manual: float) -> float:
        limit = self.settings.max_manual_offset_seconds
        return float(min(limit, max(-limit, manual)))

    def detect_singing_onset(self, samples: np.ndarray, sample_rate: int) -> float | None:
        """First time the short-window RMS exceeds the adaptive threshold.

        Expects the peak-normalized signal so the absolute floor does not hide
        quiet singers. Returns None when the signal never crosses it.
        """
        win = max(1, int(sample_rate * self.settings.onset_window_seconds))
        hop = max(1, int(sample_rate * self.settings.onset_hop_seconds))
        if len(samples) < win:
            return None

        samples = np.ascontiguousarray(samples, dtype=np.float64)
        baseline_len = min(len(samples), int(sample_rate * self.settings.baseline_seconds))
        baseline = float(np.sqrt(np.mean(samples[:baseline_len] ** 2))) if baseline_len else 0.0
        threshold = max(self.settings.min_onset_rms, baseline * self.settings.baseline_factor)

        rms = librosa.feature.rms(y=samples, frame_length=win, hop_length=hop, center=False)[0]
        above = np.flatnonzero(rms > threshold)
        if len(above) == 0:
            return None
        return float(above[0] * hop / sample_rate)

    def estimate_offset(
        self,
        track: PitchTrack,
        reference: NormalizedReference,
        singing_onset: float | None = None,
    ) -> tuple[float, float]:
        """Return (coarse, fine) offsets in seconds.

        Without a singing onset from the audio, the first voiced frame of the
        track stands in for it. An empty reference or a track without voiced
        frames yields (0.0, 0.0).
        """
        if not reference.notes or len(track) == 0 or not track.has_voiced_frames:
            return 0.0, 0.0

        if singing_onset is None:
            singing_onset = track.first_voiced_time()
            assert singing_onset is not None

        first_note = min(n.start_beat for n in reference.notes)
        coarse = singing_onset - reference.melody.beat_to_seconds(first_note)

        voiced_times = track.times[track.voiced_mask()] - coarse
        note_times = np.array([n.start_beat for n in reference.notes]) * reference.seconds_per_beat
        fine = self.fine_offset(voiced_times, note_times)

        return float(coarse), float(fine)

    def fine_offset(self, user_times: np.ndarray, reference_times: np.ndarray) -> float:
        """Best shift (seconds) of user events onto reference onsets."""
        step = self.settings.fine_step_seconds
        max_shift = int(round(self.settings.fine_max_shift_seconds / step))

        user_times = np.asarray(user_times, dtype=float)
        reference_times = np.asarray(reference_times, dtype=float)
        user_times = user_times[user_times >= 0]
        reference_times = reference_times[reference_times >= 0]
        if len(user_times) == 0 or len(reference_times) == 0:
            return 0.0

        length = int(max(user_times.max(), reference_times.max()) / step) + 1
        user = np.zeros(length, dtype=bool)
        ref = np.zeros(length, dtype=bool)
        user[np.floor(user_times / step).astype(int)] = True
        ref[np.floor(reference_times / step).astype(int)] = True

        best_shift, best_score = 0, -1
        for shift in sorted(range(-max_shift, max_shift + 1), key=lambda s: (abs(s), s)):
            score = self._overlap(user, ref, shift)
            if score > best_score:
                best_shift, best_score = shift, score

        return best_shift * step

    @staticmethod
    def _overlap(user: np.ndarray, ref: np.ndarray, shift: int) -> int:
        """Count reference bins k with user[k + shift] also marked."""
        n = len(ref)
        if abs(shift) >= n:
            return 0
        if shift >= 0:
            return int(np.count_nonzero(ref[: n - shift] & user[shift:]))
        return int(np.count_nonzero(ref[-shift:] & user[: n + shift]))
