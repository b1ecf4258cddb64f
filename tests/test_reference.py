"""Tests for reference melodies."""

import json
from pathlib import Path

import pytest

from singing_coach.errors import ReferenceParseError, UnknownReferenceError
from singing_coach.models.analysis import Note, ReferenceMelody
from singing_coach.reference import (
    FallbackPolicy,
    get_built_in_songs,
    load_reference,
    load_reference_file,
    melody_from_dict,
    normalize_reference,
    parse_reference_midi,
)


class TestBuiltInSongs:
    """Tests for the built-in reference melodies."""

    def test_songs_available(self):
        """Both twinkle and demo are built in."""
        ids = {melody.id for melody in get_built_in_songs()}
        assert ids == {"twinkle", "demo"}

    def test_twinkle_spans_forty_beats(self):
        reference = load_reference("twinkle")
        assert reference.total_beats == 40
        assert len(reference.notes) == 35
        assert reference.tempo_bpm == 120

    def test_unknown_song(self):
        """Unknown ids raise with the available ids in the message."""
        with pytest.raises(UnknownReferenceError, match="twinkle"):
            load_reference("does-not-exist")


class TestNormalizeReference:
    """Tests for beat-grid sampling of a melody."""

    def test_sample_count_and_values(self, demo_reference):
        """Demo melody is sampled every 0.05 beat over [0, 4]."""
        samples = demo_reference.samples
        assert len(samples) == 81
        assert samples[0].midi == 60
        assert samples[20].beat == pytest.approx(1.0)
        assert samples[20].midi == 60
        assert samples[40].midi == 67
        assert samples[79].midi == 67

    def test_note_end_is_exclusive(self, demo_reference):
        """The grid point at a note's end belongs to the next note or nothing."""
        assert demo_reference.samples[80].beat == pytest.approx(4.0)
        assert demo_reference.samples[80].midi is None

    def test_rest_is_none(self):
        melody = ReferenceMelody(
            id="rest",
            title="rest",
            tempo_bpm=60.0,
            notes=[Note(0, 1, 60), Note(2, 1, 62)],
        )
        reference = normalize_reference(melody, beat_step=0.5)
        assert [s.midi for s in reference.samples] == [60, 60, None, None, 62, 62, None]

    def test_empty_melody(self):
        """An empty melody has zero length and one silent sample."""
        melody = ReferenceMelody(id="empty", title="empty", tempo_bpm=120.0)
        reference = normalize_reference(melody)
        assert reference.total_beats == 0
        assert len(reference.samples) == 1
        assert reference.samples[0].midi is None

    def test_invalid_step(self, demo_reference):
        with pytest.raises(ValueError):
            normalize_reference(demo_reference.melody, beat_step=0)


class TestReferenceFiles:
    """Tests for loading references from files."""

    def _write_json(self, path: Path, data) -> Path:
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_load_json(self, tmp_path: Path):
        path = self._write_json(
            tmp_path / "scale.json",
            {
                "title": "Scale",
                "tempo_bpm": 90,
                "notes": [
                    {"start_beat": 0, "duration_beats": 1, "midi": 60},
                    {"start_beat": 1, "duration_beats": 1, "midi": 62},
                ],
                "lyrics": [{"beat": 0, "text": "do"}],
            },
        )

        loaded = load_reference_file(path)

        assert loaded.ok
        assert not loaded.used_fallback
        assert loaded.melody.id == "scale"
        assert loaded.melody.title == "Scale"
        assert [n.midi for n in loaded.melody.notes] == [60, 62]
        assert loaded.melody.lyrics[0].text == "do"

    def test_malformed_json_falls_back_to_demo(self, tmp_path: Path):
        """A broken file yields the demo melody and an explicit error."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        loaded = load_reference_file(path)

        assert loaded.used_fallback
        assert not loaded.ok
        assert isinstance(loaded.error, ReferenceParseError)
        assert loaded.melody.id == "demo"

    @pytest.mark.parametrize(
        "text",
        [
            '{"tempo_bpm": 120, "notes": [], "time_signature": ["x", 4]}',
            '{"tempo_bpm": Infinity, "notes": []}',
        ],
    )
    def test_invalid_values_fall_back_to_demo(self, tmp_path: Path, text):
        """Bad values in well-formed JSON take the same fallback path."""
        path = tmp_path / "bad.json"
        path.write_text(text, encoding="utf-8")

        loaded = load_reference_file(path)

        assert loaded.used_fallback
        assert isinstance(loaded.error, ReferenceParseError)
        assert loaded.melody.id == "demo"

    def test_malformed_json_raises_with_raise_policy(self, tmp_path: Path):
        path = self._write_json(tmp_path / "nonotes.json", {"tempo_bpm": 120})
        with pytest.raises(ReferenceParseError):
            load_reference_file(path, fallback=FallbackPolicy.RAISE)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ReferenceParseError):
            load_reference_file(tmp_path / "missing.json", fallback=FallbackPolicy.RAISE)

    def test_unsupported_suffix(self, tmp_path: Path):
        path = tmp_path / "melody.txt"
        path.write_text("C C G", encoding="utf-8")
        loaded = load_reference_file(path)
        assert loaded.used_fallback
        assert "unsupported" in str(loaded.error).lower()

    @pytest.mark.parametrize(
        "data",
        [
            {"tempo_bpm": 0, "notes": []},
            {"tempo_bpm": 120, "notes": [{"start_beat": -1, "duration_beats": 1, "midi": 60}]},
            {"tempo_bpm": 120, "notes": [{"start_beat": 0, "duration_beats": 0, "midi": 60}]},
            {"tempo_bpm": "fast", "notes": []},
            {"tempo_bpm": float("inf"), "notes": []},
            {"tempo_bpm": float("nan"), "notes": []},
            {"tempo_bpm": 120, "notes": [], "time_signature": ["x", 4]},
            {"tempo_bpm": 120, "notes": [], "time_signature": [0, 4]},
            {"tempo_bpm": 120, "notes": [], "time_signature": "4/4"},
            {
                "tempo_bpm": 120,
                "notes": [{"start_beat": float("nan"), "duration_beats": 1, "midi": 60}],
            },
        ],
    )
    def test_invalid_melody_data(self, data):
        """Invalid tempo, time signature or note values are parse errors."""
        with pytest.raises(ReferenceParseError):
            melody_from_dict(data)

    def test_load_midi(self, tmp_path: Path):
        """MIDI notes are converted to beats through the file resolution."""
        import pretty_midi

        midi = pretty_midi.PrettyMIDI(initial_tempo=120.0)
        voice = pretty_midi.Instrument(program=0)
        voice.notes.append(pretty_midi.Note(velocity=100, pitch=60, start=0.0, end=0.5))
        voice.notes.append(pretty_midi.Note(velocity=100, pitch=64, start=0.5, end=1.5))
        midi.instruments.append(voice)
        path = tmp_path / "song.mid"
        midi.write(str(path))

        melody = parse_reference_midi(path)

        assert melody.tempo_bpm == pytest.approx(120.0)
        assert [n.midi for n in melody.notes] == [60, 64]
        assert melody.notes[0].start_beat == pytest.approx(0.0)
        assert melody.notes[1].start_beat == pytest.approx(1.0)
        assert melody.notes[1].duration_beats == pytest.approx(2.0)

    def test_midi_without_notes(self, tmp_path: Path):
        import pretty_midi

        path = tmp_path / "empty.mid"
        pretty_midi.PrettyMIDI(initial_tempo=100.0).write(str(path))

        with pytest.raises(ReferenceParseError, match="no notes"):
            parse_reference_midi(path)
