"""Pytest fixtures for Singing Coach tests."""

from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest

from singing_coach.config import Settings
from singing_coach.models.analysis import NormalizedReference, PitchTrack, ReferenceMelody
from singing_coach.music import midi_to_freq
from singing_coach.reference import load_reference


@pytest.fixture
def settings() -> Settings:
    """Default settings with a shorter analysis frame to keep tests fast."""
    return Settings(frame_size=2048)


@pytest.fixture
def demo_reference() -> NormalizedReference:
    """The three-note demo melody (C4 C4 G4 at 120 BPM)."""
    return load_reference("demo")


@pytest.fixture
def make_track() -> Callable[..., PitchTrack]:
    """Build a PitchTrack that sings a melody at a given delay.

    Frames are 10 ms apart starting at t = 0. Each note is voiced from its
    start to gap_seconds before its end, at the note pitch plus any
    per-note shift (semitones).
    """

    def _make(
        melody: ReferenceMelody,
        offset_seconds: float = 0.0,
        gap_seconds: float = 0.05,
        tail_seconds: float = 0.5,
        pitch_shifts: dict[int, float] | None = None,
    ) -> PitchTrack:
        pitch_shifts = pitch_shifts or {}
        spb = melody.seconds_per_beat
        end = max((n.end_beat for n in melody.notes), default=0.0)
        count = int((offset_seconds + end * spb + tail_seconds) / 0.01) + 1
        times = np.arange(count) * 0.01
        f0 = np.zeros(count)
        for index, note in enumerate(melody.notes):
            start = offset_seconds + note.start_beat * spb
            stop = offset_seconds + note.end_beat * spb - gap_seconds
            f0[(times >= start) & (times < stop)] = midi_to_freq(
                note.midi + pitch_shifts.get(index, 0.0)
            )
        voiced = f0 > 0
        return PitchTrack(
            times=times,
            f0=f0,
            confidence=voiced.astype(float),
            rms=voiced * 0.5,
            sample_rate=1000,
            frame_size=20,
            hop_size=10,
        )

    return _make


@pytest.fixture
def temp_output_dir(tmp_path: Path) -> Path:
    """Return a temporary output directory."""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir
