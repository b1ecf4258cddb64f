"""Ingest stage - decodes and validates the uploaded recording."""

from pathlib import Path

import numpy as np

from singing_coach.config import Settings
from singing_coach.errors import AudioDecodeError, AudioTooShortError, InvalidAudioError
from singing_coach.models.analysis import RawAudio
from singing_coach.models.pipeline import AnalysisSession, StageResult
from singing_coach.pipeline.base import PipelineStage

SUPPORTED_EXTENSIONS = {".mp3", ".flac", ".m4a", ".wav", ".ogg", ".opus", ".aac"}


def load_audio(path: Path) -> RawAudio:
    """Decode an audio file at its native sample rate and channel layout.

    Raises:
        AudioDecodeError: If the file is missing or cannot be decoded.
    """
    import librosa

    if not path.exists():
        raise AudioDecodeError(f"File not found: {path}")

    ext = path.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise AudioDecodeError(
            f"Unsupported format: {ext}. Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )

    try:
        y, sr = librosa.load(str(path), sr=None, mono=False)
    except Exception as e:
        raise AudioDecodeError(
            f"Could not decode {path.name}: {e}. Try converting it to wav or mp3."
        ) from e

    if y.ndim == 1:
        channels = [y]
    else:
        channels = [np.ascontiguousarray(ch) for ch in y]
    return RawAudio(channels=channels, sample_rate=int(sr))


class IngestStage(PipelineStage):
    """Stage 1: Ingest & Validate.

    - Checks the sample rate and channel layout of the decoded buffer
    - Rejects empty recordings and recordings shorter than
      settings.min_duration_seconds

    Any failure here aborts the run before analysis starts.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def name(self) -> str:
        return "ingest"

    def execute(self, session: AnalysisSession) -> StageResult:
        """Validate the session's raw audio."""
        warnings: list[str] = []
        audio = session.raw_audio

        self._validate(audio)

        if audio.num_channels > 1:
            warnings.append(f"Downmixing {audio.num_channels} channels to mono")
        if not session.reference.notes:
            warnings.append("Reference melody has no notes; scores will be 0")

        warnings.append(
            f"Recording: {audio.duration:.2f}s at {audio.sample_rate} Hz"
        )
        return self._ok(warnings)

    def _validate(self, audio: RawAudio) -> None:
        """Raise an input error if the buffer cannot be analyzed."""
        if audio.sample_rate <= 0:
            raise InvalidAudioError(f"Invalid sample rate: {audio.sample_rate}")

        if audio.num_channels == 0:
            raise InvalidAudioError("Audio has no channels")

        lengths = {len(ch) for ch in audio.channels}
        if len(lengths) > 1:
            raise InvalidAudioError(
                f"Channel lengths differ: {sorted(lengths)}"
            )

        if audio.num_samples == 0:
            raise InvalidAudioError("Audio is empty")

        if audio.duration < self.settings.min_duration_seconds:
            raise AudioTooShortError(
                f"Recording is too short ({audio.duration:.2f}s). "
                f"Please record at least {self.settings.min_duration_seconds:g}s."
            )
