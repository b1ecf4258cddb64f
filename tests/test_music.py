"""Tests for the pitch and note helpers."""

import math

import numpy as np
import pytest

from singing_coach.music import (
    cents_to_semitones,
    freq_array_to_midi,
    freq_to_midi,
    midi_to_freq,
    midi_to_note_name,
    round_half_up,
)


def test_a4_is_midi_69():
    """440 Hz maps to MIDI 69 and back."""
    assert freq_to_midi(440.0) == pytest.approx(69.0)
    assert midi_to_freq(69) == pytest.approx(440.0)


def test_octave_is_twelve_semitones():
    """Doubling the frequency adds 12 semitones."""
    assert freq_to_midi(880.0) - freq_to_midi(440.0) == pytest.approx(12.0)


@pytest.mark.parametrize("midi", [36.0, 60.0, 61.5, 77.0])
def test_midi_freq_round_trip(midi):
    """midi -> freq -> midi stays within 1e-6 semitones."""
    assert abs(freq_to_midi(midi_to_freq(midi)) - midi) < 1e-6


@pytest.mark.parametrize("freq", [0.0, -100.0, math.nan, math.inf, None])
def test_invalid_frequency_has_no_pitch(freq):
    """Non-positive and non-finite frequencies yield None."""
    assert freq_to_midi(freq) is None


def test_freq_array_to_midi_marks_invalid_as_nan():
    """Vectorized conversion keeps invalid frames as NaN."""
    midi = freq_array_to_midi(np.array([440.0, 0.0, -1.0, np.nan]))
    assert midi[0] == pytest.approx(69.0)
    assert np.isnan(midi[1:]).all()


def test_note_names():
    """Note names follow scientific pitch notation."""
    assert midi_to_note_name(60) == "C4"
    assert midi_to_note_name(69) == "A4"
    assert midi_to_note_name(61) == "C#4"
    assert midi_to_note_name(59.7) == "C4"


def test_cents_to_semitones():
    assert cents_to_semitones(100) == 1.0
    assert cents_to_semitones(50) == 0.5


def test_round_half_up():
    """Halves round towards +infinity."""
    assert round_half_up(2.5) == 3
    assert round_half_up(66.5) == 67
    assert round_half_up(66.49) == 66
    assert round_half_up(-2.5) == -2
