"""Tests for the JSON analysis report."""

import json
from pathlib import Path

from singing_coach.models.analysis import NoteBar, NoteComparison
from singing_coach.pipeline import analyze_recording
from singing_coach.report import build_report, mean_timing_error_ms, write_report
from singing_coach.synth import silence


class TestReport:
    """Tests for build_report and write_report."""

    def test_report_structure(self, settings, demo_reference):
        """Report has camelCase keys and plain JSON values."""
        session = analyze_recording(silence(2.0), demo_reference, settings)

        report = build_report(session)

        assert report["reference"]["id"] == "demo"
        assert report["reference"]["tempoBpm"] == 120.0
        assert report["reference"]["timeSignature"] == [4, 4]
        assert report["reference"]["lyrics"][0] == {"beat": 0, "text": "Twin"}
        assert report["scores"]["meanTimingErrorMs"] == 0
        assert report["alignment"]["offsetSeconds"] == 0.0
        assert report["scores"]["total"] == 0
        assert report["scores"]["verdict"] == "needs_practice"
        assert len(report["comparisons"]) == 3
        assert report["comparisons"][0]["pitchDiff"] is None
        assert report["issues"][0]["kinds"] == ["miss"]
        assert report["issues"][0]["noteName"] == "C4"
        assert len(report["curve"]["beats"]) == len(demo_reference.samples)
        assert report["tips"] == session.tips

        # Must be serializable as-is
        json.dumps(report)

    def test_write_report(self, settings, demo_reference, temp_output_dir: Path):
        session = analyze_recording(silence(2.0), demo_reference, settings)
        path = temp_output_dir / "nested" / "report.json"

        written = write_report(session, path)

        assert written == path
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["scores"]["verdictLabel"] == "Keep practicing"
        assert data["recording"]["sampleRate"] == 22050

    def test_mean_timing_error_skips_misses(self):
        """Start errors of sung notes are averaged in milliseconds."""
        comparisons = [
            _comparison(0, start_diff=0.1),
            _comparison(1, start_diff=-0.3),
            _comparison(2, start_diff=0.0, sung=False),
        ]

        # 0.5s per beat: 50ms and 150ms
        assert mean_timing_error_ms(comparisons, 0.5) == 100

    def test_mean_timing_error_without_sung_notes(self):
        assert mean_timing_error_ms([_comparison(0, 0.0, sung=False)], 0.5) == 0


def _comparison(index: int, start_diff: float, sung: bool = True) -> NoteComparison:
    return NoteComparison(
        index=index,
        reference=NoteBar(start_beat=float(index), end_beat=index + 1.0, midi=60.0),
        user=NoteBar(
            start_beat=index + start_diff,
            end_beat=index + 1.0,
            midi=60.0 if sung else None,
        ),
        pitch_diff=0.0 if sung else None,
        start_diff=start_diff,
        end_diff=0.0,
        duration_diff=0.0,
        is_pitch_error=False,
        is_rhythm_start_error=False,
        is_rhythm_duration_error=False,
    )
