"""Pitch tracking stage - frame-wise probabilistic YIN f0 estimation."""

from collections.abc import Iterator

import librosa
import numpy as np

from singing_coach.config import Settings
from singing_coach.models.analysis import PitchTrack
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.pipeline.base import PipelineStage


class PitchTrackingStage(PipelineStage):
    """Stage 3: Pitch Tracking.

    Runs librosa's pYIN on non-centered frames of the preprocessed signal.
    pYIN reports NaN for frames without clear periodicity; those frames are
    unvoiced (f0 = 0). Estimates are limited to
    [min_frequency_hz, max_frequency_hz], capped at Nyquist.

    Frame RMS, scaled by the loudest frame, is the confidence; frames below
    settings.min_confidence are forced unvoiced so that noise and silence do
    not produce pitch.

    Frames are processed in chunks of settings.chunk_frames through a
    generator, so callers driving a UI can interleave other work between
    chunks.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "pitch_tracking"

    def execute(self, session: AnalysisSession) -> StageResult:
        """Build the pitch track from the preprocessed samples."""
        warnings: list[str] = []

        if session.samples is None:
            return StageResult(
                success=False,
                stage_name=self.name,
                duration_seconds=0,
                error_message="No preprocessed audio available for pitch tracking",
            )

        track = self.track(session.samples, session.sample_rate)
        session.pitch_track = track

        voiced = int(track.voiced_mask().sum())
        warnings.append(f"{voiced}/{len(track)} frames voiced")
        if voiced == 0:
            warnings.append("No voiced frames detected; the recording will score 0")

        return self._ok(warnings)

    def track(self, samples: np.ndarray, sample_rate: int) -> PitchTrack:
        """Estimate f0, RMS and confidence for every frame."""
        n = self.settings.frame_size
        hop = self.settings.hop_size

        if len(samples) == 0:
            return PitchTrack.empty(sample_rate, n, hop)

        padded = self._pad(samples)
        rms = librosa.feature.rms(y=padded, frame_length=n, hop_length=hop, center=False)[0]

        f0 = np.concatenate(
            [chunk for _, chunk in self.iter_chunks(padded, sample_rate)]
        )
        times = (np.arange(len(f0)) * hop + n / 2) / sample_rate

        confidence = self._confidence(rms)
        f0[confidence < self.settings.min_confidence] = 0.0

        return PitchTrack(
            times=times,
            f0=f0,
            confidence=confidence,
            rms=rms.astype(np.float64),
            sample_rate=sample_rate,
            frame_size=n,
            hop_size=hop,
        )

    def iter_chunks(
        self, samples: np.ndarray, sample_rate: int
    ) -> Iterator[tuple[int, np.ndarray]]:
        """Yield (first_frame_index, f0) for consecutive chunks of frames.

        Each chunk is the sample block spanning exactly its frames, so the
        concatenated chunks line up with librosa's non-centered framing.
        """
        n = self.settings.frame_size
        hop = self.settings.hop_size
        padded = self._pad(samples)
        total = 1 + (len(padded) - n) // hop
        chunk = max(1, self.settings.chunk_frames)

        for start in range(0, total, chunk):
            count = min(chunk, total - start)
            block = padded[start * hop:(start + count - 1) * hop + n]
            yield start, self._pyin(block, sample_rate)

    def _pyin(self, block: np.ndarray, sample_rate: int) -> np.ndarray:
        f0, voiced_flag, _ = librosa.pyin(
            block,
            fmin=self.settings.min_frequency_hz,
            fmax=min(self.settings.max_frequency_hz, sample_rate / 2),
            sr=sample_rate,
            frame_length=self.settings.frame_size,
            hop_length=self.settings.hop_size,
            center=False,
        )
        return np.where(voiced_flag, np.nan_to_num(f0), 0.0)

    def _pad(self, samples: np.ndarray) -> np.ndarray:
        """Zero-pad signals shorter than one frame."""
        samples = np.ascontiguousarray(samples, dtype=np.float64)
        missing = self.settings.frame_size - len(samples)
        if missing > 0:
            samples = np.pad(samples, (0, missing))
        return samples

    def _confidence(self, rms: np.ndarray) -> np.ndarray:
        peak = float(rms.max()) if len(rms) else 0.0
        if peak <= 0:
            return np.zeros(len(rms))
        return np.clip(rms / peak, 0.0, 1.0)
