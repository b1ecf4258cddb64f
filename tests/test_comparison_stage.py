"""Tests for the ComparisonStage."""

import numpy as np
import pytest

from singing_coach.config import Settings
from singing_coach.models.analysis import RawAudio
from singing_coach.models.pipeline import AnalysisSession
from singing_coach.stages.comparison import ComparisonStage

ONSETS = [0.0, 1.0, 2.0]


def _compare(settings, reference, track, onsets=ONSETS):
    stage = ComparisonStage(settings)
    curve = stage.build_user_curve(track, reference, 0.0)
    stage.clean_curve(curve)
    return stage.compare_notes(reference, curve, onsets)


class TestComparisonStage:
    """Tests for ComparisonStage."""

    def test_stage_name(self, settings):
        assert ComparisonStage(settings).name == "comparison"

    def test_pitch_tolerance_boundary(self, settings):
        """Deviations up to the tolerance are correct, beyond it are errors."""
        stage = ComparisonStage(settings)
        assert stage.is_pitch_error(1.0) is False
        assert stage.is_pitch_error(-1.0) is False
        assert stage.is_pitch_error(1.0 + 1e-6) is True
        assert stage.is_pitch_error(-1.0 - 1e-6) is True
        assert stage.is_pitch_error(None) is False

    def test_custom_pitch_tolerance(self):
        stage = ComparisonStage(Settings(pitch_tolerance_cents=50))
        assert stage.is_pitch_error(0.6) is True

    @pytest.mark.parametrize(
        "midi, reference, expected",
        [(72.2, 60.0, 60.2), (47.9, 60.0, 59.9), (61.0, 60.0, 61.0), (84.0, 60.0, 60.0)],
    )
    def test_octave_correct(self, midi, reference, expected):
        """Whole-octave shifts towards the reference are undone."""
        assert ComparisonStage.octave_correct(midi, reference) == pytest.approx(expected)

    def test_perfect_performance(self, settings, demo_reference, make_track):
        """An exact rendition has no errors."""
        comparisons = _compare(settings, demo_reference, make_track(demo_reference.melody))

        assert len(comparisons) == 3
        for comparison in comparisons:
            assert comparison.is_correct
            assert comparison.pitch_diff == pytest.approx(0.0, abs=1e-6)
            assert comparison.start_diff == pytest.approx(0.0)

    def test_wrong_note(self, settings, demo_reference, make_track):
        """A note sung two semitones high is a pitch error."""
        track = make_track(demo_reference.melody, pitch_shifts={2: 2.0})

        comparisons = _compare(settings, demo_reference, track)

        assert [c.is_pitch_error for c in comparisons] == [False, False, True]
        assert comparisons[2].pitch_diff == pytest.approx(2.0, abs=1e-6)
        assert comparisons[2].user.midi == pytest.approx(69.0, abs=1e-6)

    @pytest.mark.parametrize("shift", [12.0, -12.0])
    def test_octave_errors_are_forgiven(self, settings, demo_reference, make_track, shift):
        """Singing a melody note an octave off still counts as the right pitch."""
        track = make_track(demo_reference.melody, pitch_shifts={2: shift})

        comparisons = _compare(settings, demo_reference, track)

        assert comparisons[2].is_pitch_error is False
        assert comparisons[2].pitch_diff == pytest.approx(0.0, abs=1e-6)

    def test_silence_gives_misses(self, settings, demo_reference, make_track):
        """Without voicing every note is a miss with reference timing."""
        track = make_track(demo_reference.melody)
        track.f0[:] = 0.0

        comparisons = _compare(settings, demo_reference, track, onsets=[])

        for comparison in comparisons:
            assert comparison.is_miss
            assert comparison.pitch_diff is None
            assert comparison.is_pitch_error is False
            assert comparison.start_diff == 0.0
            assert comparison.duration_diff == 0.0
            assert comparison.issue_kinds == ["miss"]

    def test_late_entry_is_a_rhythm_error(self, settings, demo_reference, make_track):
        """An onset 0.3 beat after the note start exceeds a sixteenth."""
        stage = ComparisonStage(settings)
        curve = stage.build_user_curve(make_track(demo_reference.melody), demo_reference, 0.0)
        stage.clean_curve(curve)
        note = demo_reference.notes[0]

        comparison = stage.compare_note(0, note, curve, [0.3])

        assert comparison.start_diff == pytest.approx(0.3)
        assert comparison.is_rhythm_start_error is True
        assert comparison.is_pitch_error is False

    def test_slightly_late_entry_is_tolerated(self, settings, demo_reference, make_track):
        stage = ComparisonStage(settings)
        curve = stage.build_user_curve(make_track(demo_reference.melody), demo_reference, 0.0)
        stage.clean_curve(curve)

        comparison = stage.compare_note(0, demo_reference.notes[0], curve, [0.2])

        assert comparison.is_rhythm_start_error is False

    def test_running_median_removes_outlier(self, settings):
        """A single octave blip inside a steady note is smoothed away."""
        values = np.full(20, 60.0)
        values[10] = 72.0
        smoothed = ComparisonStage(settings)._running_median(values, 9)
        assert smoothed[10] == 60.0

    def test_clamp_and_despike(self, settings):
        stage = ComparisonStage(settings)
        values = np.array([60.0, 60.0, 75.0, 60.0, 30.0, np.nan])

        cleaned = stage._clamp_and_despike(values)

        assert np.isnan(cleaned[2])
        assert cleaned[4] == settings.midi_clamp_low
        assert np.isnan(cleaned[5])

    def test_execute_builds_curve(self, settings, demo_reference, make_track):
        """Execute fills comparisons and a display curve on the reference grid."""
        session = AnalysisSession(
            raw_audio=RawAudio.from_mono(np.zeros(22050 * 3), 22050),
            reference=demo_reference,
        )
        session.pitch_track = make_track(demo_reference.melody)
        session.onsets = [0.0, 0.5, 1.0]

        result = ComparisonStage(settings).run(session)

        assert result.success is True
        assert len(session.comparisons) == 3
        assert session.curve is not None
        assert len(session.curve.beats) == len(demo_reference.samples)
        assert session.curve.user_midi[0] is not None
        assert session.curve.sample_accuracy > 0.9

    def test_execute_without_track_fails(self, settings, demo_reference):
        session = AnalysisSession(
            raw_audio=RawAudio.from_mono(np.zeros(22050), 22050),
            reference=demo_reference,
        )
        assert ComparisonStage(settings).run(session).success is False
