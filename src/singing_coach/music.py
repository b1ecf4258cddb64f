"""Pitch and note helpers shared by the analysis stages."""

import math

import numpy as np

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# A4
REFERENCE_MIDI = 69
REFERENCE_FREQ = 440.0


def freq_to_midi(freq: float | None) -> float | None:
    """Convert a frequency in Hz to a continuous MIDI number.

    Returns None for unvoiced frames (zero), negative, NaN or infinite input.
    """
    if freq is None:
        return None
    freq = float(freq)
    if not math.isfinite(freq) or freq <= 0:
        return None
    return REFERENCE_MIDI + 12.0 * math.log2(freq / REFERENCE_FREQ)


def midi_to_freq(midi: float) -> float:
    """Convert a (possibly fractional) MIDI number to Hz."""
    return REFERENCE_FREQ * 2.0 ** ((midi - REFERENCE_MIDI) / 12.0)


def freq_array_to_midi(f0: np.ndarray) -> np.ndarray:
    """Vectorized freq_to_midi. Invalid frames become NaN."""
    f0 = np.asarray(f0, dtype=float)
    midi = np.full(f0.shape, np.nan)
    valid = np.isfinite(f0) & (f0 > 0)
    midi[valid] = REFERENCE_MIDI + 12.0 * np.log2(f0[valid] / REFERENCE_FREQ)
    return midi


def midi_to_note_name(midi: float) -> str:
    """Name of the nearest equal-tempered note, e.g. 60 -> 'C4'."""
    number = int(round(midi))
    return f"{NOTE_NAMES[number % 12]}{number // 12 - 1}"


def cents_to_semitones(cents: float) -> float:
    return cents / 100.0


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(math.floor(value + 0.5))
