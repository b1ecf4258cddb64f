"""Sine-tone renditions of reference melodies.

Used by the `demo` CLI command and by the tests as a stand-in for a singer.
"""

import numpy as np

from singing_coach.models.analysis import RawAudio, ReferenceMelody
from singing_coach.music import midi_to_freq

ATTACK_SECONDS = 0.02


def synthesize_melody(
    melody: ReferenceMelody,
    sample_rate: int = 22050,
    offset_seconds: float = 0.0,
    amplitude: float = 0.5,
    gap_seconds: float = 0.05,
    tail_seconds: float = 0.5,
    pitch_shifts: dict[int, float] | None = None,
    channels: int = 1,
) -> RawAudio:
    """Render each note as a sine tone.

    Args:
        melody: Melody to render.
        sample_rate: Output sample rate.
        offset_seconds: Leading silence before beat zero.
        amplitude: Peak amplitude of each tone.
        gap_seconds: Silence cut from the end of every note so consecutive
            notes are separately articulated.
        tail_seconds: Trailing silence after the last note.
        pitch_shifts: Semitone shifts per note index (e.g. {0: 12.0} sings
            the first note an octave high).
        channels: Number of identical output channels.

    Returns:
        RawAudio holding the rendition.
    """
    pitch_shifts = pitch_shifts or {}
    spb = melody.seconds_per_beat
    end = max((n.end_beat for n in melody.notes), default=0.0)
    total = offset_seconds + end * spb + tail_seconds
    signal = np.zeros(int(np.ceil(total * sample_rate)), dtype=np.float64)

    attack = max(1, int(ATTACK_SECONDS * sample_rate))
    for index, note in enumerate(melody.notes):
        start = int(round((offset_seconds + note.start_beat * spb) * sample_rate))
        length = int(round((note.duration_beats * spb - gap_seconds) * sample_rate))
        if length <= 0:
            continue
        freq = midi_to_freq(note.midi + pitch_shifts.get(index, 0.0))
        t = np.arange(length) / sample_rate
        envelope = np.ones(length)
        ramp = min(attack, length // 2)
        if ramp > 0:
            envelope[:ramp] = np.linspace(0.0, 1.0, ramp)
            envelope[-ramp:] = np.linspace(1.0, 0.0, ramp)
        signal[start:start + length] += amplitude * envelope * np.sin(2 * np.pi * freq * t)

    mono = signal.astype(np.float32)
    return RawAudio(channels=[mono.copy() for _ in range(channels)], sample_rate=sample_rate)


def silence(duration_seconds: float, sample_rate: int = 22050) -> RawAudio:
    return RawAudio.from_mono(np.zeros(int(duration_seconds * sample_rate)), sample_rate)
