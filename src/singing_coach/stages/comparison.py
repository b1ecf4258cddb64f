"""Comparison stage - per-note pitch and timing comparison against the reference."""

import math

import numpy as np

from singing_coach.config import Settings
from singing_coach.models.analysis import (
    CurveComparison,
    NormalizedReference,
    Note,
    NoteBar,
    NoteComparison,
    PitchTrack,
)
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.music import freq_to_midi
from singing_coach.pipeline.base import PipelineStage

# Beats closer than this are treated as equal grid positions
_EPS = 1e-9


class UserCurve:
    """The user's pitch sampled on the reference beat grid.

    Covers the reference span plus settings.timing_search_beats on both
    sides so that early and late notes can still be found. Missing values
    are NaN.
    """

    def __init__(self, beats: np.ndarray, reference: np.ndarray, midi: np.ndarray, step: float):
        self.beats = beats
        self.reference = reference
        self.midi = midi
        self.step = step

    def index_of(self, beat: float) -> int:
        """Index of the first grid point at or after beat (may be len(self))."""
        k = int(math.ceil((beat - self.beats[0]) / self.step - _EPS)) if len(self.beats) else 0
        return min(max(k, 0), len(self.beats))

    def voiced(self, k: int) -> bool:
        return 0 <= k < len(self.midi) and bool(np.isfinite(self.midi[k]))

    def __len__(self) -> int:
        return len(self.beats)


class ComparisonStage(PipelineStage):
    """Stage 6: Note-Level Comparison.

    The user's pitch is sampled every settings.beat_step beats on the
    reference timeline (shifted by the alignment offset) and cleaned:

    1. Running median over settings.smoothing_window_frames samples
    2. Octave correction towards the reference (+/- octave_search_range)
    3. Clamp to [midi_clamp_low, midi_clamp_high] and removal of single
       samples far from both neighbours

    For every reference note the representative user pitch is the median of
    the cleaned curve over the central settings.stable_region_fraction of
    the note (attack and release are unreliable). Observed start comes from
    the nearest detected onset around the expected start, else the first
    voiced sample in the note; observed end is the end of the voiced run that
    follows, cut at the next onset. Without any voicing the reference timing
    is reported and the note is a miss.

    A display curve with additional EMA smoothing is kept for charting.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "comparison"

    def execute(self, session: AnalysisSession) -> StageResult:
        warnings: list[str] = []

        if session.pitch_track is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No pitch track available for comparison",
            )

        reference = session.reference
        curve = self.build_user_curve(session.pitch_track, reference, session.offset_seconds)
        self.clean_curve(curve)

        session.comparisons = self.compare_notes(reference, curve, session.user_onset_beats())
        session.curve = self.display_curve(reference, curve)

        misses = sum(1 for c in session.comparisons if c.is_miss)
        if misses:
            warnings.append(f"{misses}/{len(session.comparisons)} notes had no voiced estimate")

        return self._ok(warnings)

    # ------------------------------------------------------------------
    # User curve
    # ------------------------------------------------------------------

    def build_user_curve(
        self,
        track: PitchTrack,
        reference: NormalizedReference,
        offset_seconds: float,
    ) -> UserCurve:
        """Sample the pitch track on the padded reference beat grid."""
        step = reference.beat_step
        pad = int(math.ceil(self.settings.timing_search_beats / step - _EPS))
        count = len(reference.samples)
        indices = np.arange(-pad, count + pad)
        beats = indices * step

        ref_midi = np.full(len(indices), np.nan)
        for j, k in enumerate(indices):
            if 0 <= k < count and reference.samples[k].midi is not None:
                ref_midi[j] = reference.samples[k].midi

        midi = np.array(
            [
                self._sample_track(track, reference.melody.beat_to_seconds(b) + offset_seconds)
                for b in beats
            ],
            dtype=float,
        )
        return UserCurve(beats=beats, reference=ref_midi, midi=midi, step=step)

    def _sample_track(self, track: PitchTrack, seconds: float) -> float:
        """Pitch (MIDI) of the frame nearest to a time, NaN if none."""
        if len(track) == 0:
            return math.nan
        idx = int(round((seconds - track.times[0]) / track.hop_seconds))
        if idx < 0 or idx >= len(track):
            return math.nan
        midi = freq_to_midi(track.f0[idx])
        return math.nan if midi is None else midi

    def clean_curve(self, curve: UserCurve) -> None:
        """Median-smooth, octave-correct, clamp and despike in place."""
        curve.midi = self._running_median(curve.midi, self.settings.smoothing_window_frames)
        curve.midi = self._octave_correct(curve.midi, curve.reference)
        curve.midi = self._clamp_and_despike(curve.midi)

    def _running_median(self, values: np.ndarray, window: int) -> np.ndarray:
        """Median of the valid neighbours of each valid sample."""
        half = max(window, 1) // 2
        out = values.copy()
        for i in np.flatnonzero(np.isfinite(values)):
            neighbourhood = values[max(0, i - half): i + half + 1]
            valid = neighbourhood[np.isfinite(neighbourhood)]
            out[i] = float(np.sort(valid)[len(valid) // 2])
        return out

    def _octave_correct(self, values: np.ndarray, reference: np.ndarray) -> np.ndarray:
        """Move each sample by whole octaves towards its reference pitch."""
        out = values.copy()
        search = self.settings.octave_search_range
        for i in np.flatnonzero(np.isfinite(values) & np.isfinite(reference)):
            out[i] = self.octave_correct(values[i], reference[i], search)
        return out

    @staticmethod
    def octave_correct(midi: float, reference: float, search: int = 2) -> float:
        """The candidate midi + 12k (|k| <= search) closest to the reference."""
        best = midi
        best_diff = abs(midi - reference)
        for k in range(-search, search + 1):
            candidate = midi + 12 * k
            diff = abs(candidate - reference)
            if diff < best_diff:
                best, best_diff = candidate, diff
        return best

    def _clamp_and_despike(self, values: np.ndarray) -> np.ndarray:
        out = values.copy()
        low, high = self.settings.midi_clamp_low, self.settings.midi_clamp_high
        spike = self.settings.spike_threshold_semitones
        for i in range(len(out)):
            if not np.isfinite(out[i]):
                continue
            out[i] = min(high, max(low, out[i]))
            if 0 < i < len(out) - 1:
                prev, nxt = out[i - 1], out[i + 1]
                if np.isfinite(prev) and np.isfinite(nxt):
                    if abs(out[i] - prev) > spike and abs(out[i] - nxt) > spike:
                        out[i] = np.nan
        return out

    def _ema(self, values: np.ndarray) -> np.ndarray:
        alpha = self.settings.ema_alpha
        out = values.copy()
        for i in range(1, len(out)):
            if np.isfinite(out[i]) and np.isfinite(out[i - 1]):
                out[i] = alpha * out[i] + (1 - alpha) * out[i - 1]
        return out

    def display_curve(self, reference: NormalizedReference, curve: UserCurve) -> CurveComparison:
        """EMA-smoothed user curve on the unpadded reference grid."""
        smoothed = self._ema(curve.midi)
        start = curve.index_of(0.0)
        tolerance = self.settings.pitch_tolerance_semitones

        result = CurveComparison()
        for offset, sample in enumerate(reference.samples):
            value = smoothed[start + offset]
            user = float(value) if np.isfinite(value) else None
            result.beats.append(sample.beat)
            result.reference_midi.append(sample.midi)
            result.user_midi.append(user)
            result.incorrect_mask.append(
                sample.midi is not None and user is not None and abs(user - sample.midi) > tolerance
            )
        return result

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def compare_notes(
        self,
        reference: NormalizedReference,
        curve: UserCurve,
        onset_beats: list[float],
    ) -> list[NoteComparison]:
        notes = reference.notes
        order = sorted(range(len(notes)), key=lambda i: notes[i].start_beat)
        following: dict[int, Note | None] = {}
        for pos, i in enumerate(order):
            following[i] = notes[order[pos + 1]] if pos + 1 < len(order) else None

        gap_beats = reference.melody.seconds_to_beat(self.settings.onset_min_gap_seconds)
        return [
            self.compare_note(i, note, curve, onset_beats, following[i], gap_beats)
            for i, note in enumerate(notes)
        ]

    def compare_note(
        self,
        index: int,
        note: Note,
        curve: UserCurve,
        onset_beats: list[float],
        next_note: Note | None = None,
        gap_beats: float = 0.0,
    ) -> NoteComparison:
        start, end = note.start_beat, note.end_beat
        user_midi = self.estimate_pitch(note, curve)

        observed_start, observed_end = start, end
        if user_midi is not None:
            observed_start, observed_end = self.estimate_timing(
                note, curve, onset_beats, next_note, gap_beats
            )

        pitch_diff = None if user_midi is None else user_midi - note.midi
        start_diff = observed_start - start
        end_diff = observed_end - end
        duration_diff = (observed_end - observed_start) - note.duration_beats
        rhythm_tolerance = self.settings.rhythm_tolerance()

        return NoteComparison(
            index=index,
            reference=NoteBar(start_beat=start, end_beat=end, midi=note.midi),
            user=NoteBar(start_beat=observed_start, end_beat=observed_end, midi=user_midi),
            pitch_diff=pitch_diff,
            start_diff=start_diff,
            end_diff=end_diff,
            duration_diff=duration_diff,
            is_pitch_error=self.is_pitch_error(pitch_diff),
            is_rhythm_start_error=abs(start_diff) > rhythm_tolerance,
            is_rhythm_duration_error=abs(duration_diff) > rhythm_tolerance,
        )

    def is_pitch_error(self, pitch_diff: float | None) -> bool:
        """True when a pitch estimate exists and lies outside the tolerance."""
        if pitch_diff is None:
            return False
        return abs(pitch_diff) > self.settings.pitch_tolerance_semitones

    def estimate_pitch(self, note: Note, curve: UserCurve) -> float | None:
        """Median user pitch over the stable centre of a note.

        Falls back to the whole note span when the centre has no voiced
        samples; None when the note has none at all.
        """
        trim = (1.0 - self.settings.stable_region_fraction) / 2.0 * note.duration_beats
        for lo, hi in (
            (note.start_beat + trim, note.end_beat - trim),
            (note.start_beat, note.end_beat),
        ):
            values = self._window(curve, lo, hi)
            if len(values):
                return float(np.median(values))
        return None

    def _window(self, curve: UserCurve, lo: float, hi: float) -> np.ndarray:
        """Valid curve values on grid points in [lo, hi)."""
        mask = (curve.beats >= lo - _EPS) & (curve.beats < hi - _EPS)
        values = curve.midi[mask]
        return values[np.isfinite(values)]

    def estimate_timing(
        self,
        note: Note,
        curve: UserCurve,
        onset_beats: list[float],
        next_note: Note | None = None,
        gap_beats: float = 0.0,
    ) -> tuple[float, float]:
        """Observed (start, end) beats of a note that has voicing."""
        search = self.settings.timing_search_beats
        start, end = note.start_beat, note.end_beat

        nearby = [o for o in onset_beats if abs(o - start) <= search]
        if nearby:
            observed_start = min(nearby, key=lambda o: (abs(o - start), o))
        else:
            observed_start = start
            for k in range(curve.index_of(start), curve.index_of(end)):
                if curve.voiced(k):
                    observed_start = float(curve.beats[k])
                    break

        bound = end + search
        if next_note is not None and next_note.start_beat <= end + _EPS:
            bound = min(bound, max(next_note.start_beat, observed_start))
        later = [o for o in onset_beats if o > observed_start + gap_beats]
        if later:
            bound = min(bound, min(later))

        last_voiced = None
        for k in range(curve.index_of(observed_start), curve.index_of(bound)):
            if curve.voiced(k):
                last_voiced = k
            elif last_voiced is not None:
                break

        if last_voiced is None:
            return observed_start, end
        observed_end = min(float(curve.beats[last_voiced]) + curve.step, bound)
        return observed_start, max(observed_end, observed_start)
