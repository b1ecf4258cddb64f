"""Preprocess stage - mono downmix, vocal band-limiting and peak normalization."""

import numpy as np
from scipy import signal

from singing_coach.config import Settings
from singing_coach.models.analysis import RawAudio
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.pipeline.base import PipelineStage


def downmix(audio: RawAudio) -> np.ndarray:
    """Average all channels into one float64 signal."""
    if audio.num_channels == 0 or audio.num_samples == 0:
        return np.zeros(0)
    stacked = np.vstack([np.asarray(ch, dtype=np.float64) for ch in audio.channels])
    return stacked.mean(axis=0)


class PreprocessStage(PipelineStage):
    """Stage 2: Signal Preprocessing.

    Produces the mono signal the pitch tracker works on:
    - Downmix: arithmetic mean across channels
    - High-pass at settings.highpass_hz (rumble, DC)
    - Low-pass at settings.lowpass_hz (noise, sibilance)
    - Peak normalization to settings.target_peak

    Both filters are Butterworth sections applied in cascade. A cutoff at or
    above Nyquist is skipped rather than rejected.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "preprocess"

    def execute(self, session: AnalysisSession) -> StageResult:
        warnings: list[str] = []

        samples = self.process(session.raw_audio, warnings)
        session.samples = samples

        if len(samples) and not np.any(samples):
            warnings.append("Recording is silent")

        return self._ok(warnings)

    def process(self, audio: RawAudio, warnings: list[str] | None = None) -> np.ndarray:
        """Downmix, band-limit and normalize a raw buffer."""
        warnings = warnings if warnings is not None else []

        mono = downmix(audio)
        if len(mono) == 0:
            return mono

        filtered = self._band_limit(mono, audio.sample_rate, warnings)
        return self._normalize(filtered)

    def _band_limit(self, x: np.ndarray, sample_rate: int, warnings: list[str]) -> np.ndarray:
        nyquist = sample_rate / 2.0
        order = self.settings.filter_order

        if 0 < self.settings.highpass_hz < nyquist:
            sos = signal.butter(
                order, self.settings.highpass_hz, btype="highpass", fs=sample_rate, output="sos"
            )
            x = signal.sosfilt(sos, x)
        else:
            warnings.append(f"High-pass at {self.settings.highpass_hz} Hz skipped")

        if 0 < self.settings.lowpass_hz < nyquist:
            sos = signal.butter(
                order, self.settings.lowpass_hz, btype="lowpass", fs=sample_rate, output="sos"
            )
            x = signal.sosfilt(sos, x)
        else:
            warnings.append(
                f"Low-pass at {self.settings.lowpass_hz} Hz skipped (Nyquist {nyquist:.0f} Hz)"
            )

        return x

    def _normalize(self, x: np.ndarray) -> np.ndarray:
        peak = float(np.max(np.abs(x)))
        if peak > 0:
            x = x * (self.settings.target_peak / peak)
        return x
