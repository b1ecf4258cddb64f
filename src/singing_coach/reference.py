"""Reference melodies: built-in songs, file parsing and beat sampling."""

import json
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from singing_coach.errors import ReferenceParseError, UnknownReferenceError
from singing_coach.models.analysis import (
    LyricEvent,
    NormalizedReference,
    Note,
    ReferenceMelody,
    ReferenceSample,
)

DEFAULT_BEAT_STEP = 0.05


def _notes(rows: list[tuple[float, float, float]]) -> list[Note]:
    return [Note(start_beat=s, duration_beats=d, midi=m) for s, d, m in rows]


def _lyrics(rows: list[tuple[float, str]]) -> list[LyricEvent]:
    return [LyricEvent(beat=b, text=t) for b, t in rows]


# Twinkle Twinkle Little Star, 10 measures of 4/4 in C major
_TWINKLE_NOTES = [
    # C C G G | A A G-
    (0, 1, 60), (1, 1, 60), (2, 1, 67), (3, 1, 67),
    (4, 1, 69), (5, 1, 69), (6, 2, 67),
    # F F E E | D D C-
    (8, 1, 65), (9, 1, 65), (10, 1, 64), (11, 1, 64),
    (12, 1, 62), (13, 1, 62), (14, 2, 60),
    # G G F F | E E D-
    (16, 1, 67), (17, 1, 67), (18, 1, 65), (19, 1, 65),
    (20, 1, 64), (21, 1, 64), (22, 2, 62),
    # G G F F | E E D-
    (24, 1, 67), (25, 1, 67), (26, 1, 65), (27, 1, 65),
    (28, 1, 64), (29, 1, 64), (30, 2, 62),
    # C C G G | A A G-
    (32, 1, 60), (33, 1, 60), (34, 1, 67), (35, 1, 67),
    (36, 1, 69), (37, 1, 69), (38, 2, 67),
]

_TWINKLE_LYRICS = [
    (0, "Twin"), (1, "kle"), (2, "twin"), (3, "kle"), (4, "lit"), (5, "tle"), (6, "star"),
    (8, "How"), (9, "I"), (10, "won"), (11, "der"), (12, "what"), (13, "you"), (14, "are"),
    (16, "Up"), (17, "a"), (18, "bove"), (19, "the"), (20, "world"), (21, "so"), (22, "high"),
    (24, "Like"), (25, "a"), (26, "dia"), (27, "mond"), (28, "in"), (29, "the"), (30, "sky"),
    (32, "Twin"), (33, "kle"), (34, "twin"), (35, "kle"), (36, "lit"), (37, "tle"), (38, "star"),
]


def demo_melody() -> ReferenceMelody:
    """The short fixed melody used when a reference cannot be loaded."""
    return ReferenceMelody(
        id="demo",
        title="Demo (C C G, 4/4, 120 BPM)",
        tempo_bpm=120.0,
        notes=_notes([(0, 1, 60), (1, 1, 60), (2, 2, 67)]),
        lyrics=_lyrics([(0, "Twin"), (1, "kle"), (2, "twin-kle")]),
        key="C",
    )


def twinkle_melody() -> ReferenceMelody:
    return ReferenceMelody(
        id="twinkle",
        title="Twinkle Twinkle Little Star (4/4, C major, 120 BPM)",
        tempo_bpm=120.0,
        notes=_notes(_TWINKLE_NOTES),
        lyrics=_lyrics(_TWINKLE_LYRICS),
        key="C",
    )


_BUILT_IN = {
    "twinkle": twinkle_melody,
    "demo": demo_melody,
}


def get_built_in_songs() -> list[ReferenceMelody]:
    """All built-in reference melodies."""
    return [factory() for factory in _BUILT_IN.values()]


def load_reference(song_id: str, beat_step: float = DEFAULT_BEAT_STEP) -> NormalizedReference:
    """Load and normalize a built-in reference melody.

    Raises:
        UnknownReferenceError: If no built-in song has this id.
    """
    factory = _BUILT_IN.get(song_id)
    if factory is None:
        raise UnknownReferenceError(
            f"Unknown song id: {song_id!r}. Available: {', '.join(sorted(_BUILT_IN))}"
        )
    return normalize_reference(factory(), beat_step)


def normalize_reference(
    melody: ReferenceMelody, beat_step: float = DEFAULT_BEAT_STEP
) -> NormalizedReference:
    """Sample a melody on a fixed beat grid.

    Each grid point takes the pitch of a note covering it (half-open
    [start, end) interval) or None. The grid spans [0, total_beats].
    """
    if beat_step <= 0:
        raise ValueError("beat_step must be > 0")

    total_beats = max((n.end_beat for n in melody.notes), default=0.0)

    samples: list[ReferenceSample] = []
    count = int(total_beats / beat_step + 1e-9) + 1
    for i in range(count):
        beat = i * beat_step
        active = next(
            (n for n in melody.notes if n.start_beat <= beat < n.end_beat),
            None,
        )
        samples.append(ReferenceSample(beat=beat, midi=active.midi if active else None))

    return NormalizedReference(
        melody=melody,
        samples=samples,
        total_beats=float(total_beats),
        beat_step=beat_step,
    )


# ---------------------------------------------------------------------------
# Reference files
# ---------------------------------------------------------------------------


def melody_from_dict(data: dict, default_id: str = "custom") -> ReferenceMelody:
    """Build a ReferenceMelody from a JSON-style dict.

    Raises:
        ReferenceParseError: If required fields are missing or invalid.
    """
    try:
        tempo = float(data["tempo_bpm"])
        notes = [
            Note(
                start_beat=float(n["start_beat"]),
                duration_beats=float(n["duration_beats"]),
                midi=float(n["midi"]),
            )
            for n in data["notes"]
        ]
        lyrics = [
            LyricEvent(beat=float(item["beat"]), text=str(item["text"]))
            for item in data.get("lyrics", [])
        ]
        numerator, denominator = data.get("time_signature", (4, 4))
        time_signature = (int(numerator), int(denominator))
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        raise ReferenceParseError(f"Invalid reference data: {e!r}") from e

    if not math.isfinite(tempo) or tempo <= 0:
        raise ReferenceParseError(f"tempo_bpm must be a finite number > 0, got {tempo}")
    if time_signature[0] <= 0 or time_signature[1] <= 0:
        raise ReferenceParseError(f"time_signature must be positive, got {time_signature}")
    for note in notes:
        values = (note.start_beat, note.duration_beats, note.midi)
        if not all(math.isfinite(v) for v in values):
            raise ReferenceParseError(f"Non-finite value in note {values}")
        if note.start_beat < 0 or note.duration_beats <= 0:
            raise ReferenceParseError(
                f"Invalid note at beat {note.start_beat}: "
                f"start must be >= 0 and duration > 0"
            )

    return ReferenceMelody(
        id=str(data.get("id", default_id)),
        title=str(data.get("title", default_id)),
        tempo_bpm=tempo,
        notes=notes,
        lyrics=lyrics,
        time_signature=time_signature,
        key=data.get("key"),
    )


def parse_reference_json(path: Path) -> ReferenceMelody:
    """Parse a reference melody from a JSON file.

    Raises:
        ReferenceParseError: If the file cannot be read or is malformed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ReferenceParseError(f"Could not read reference {path}: {e}") from e

    if not isinstance(data, dict):
        raise ReferenceParseError(f"Reference {path} must contain a JSON object")
    return melody_from_dict(data, default_id=path.stem)


def parse_reference_midi(path: Path) -> ReferenceMelody:
    """Parse a reference melody from a standard MIDI file using pretty_midi.

    Takes the first instrument that has notes, the first tempo, and converts
    ticks to beats through the file resolution.

    Raises:
        ReferenceParseError: If the file cannot be parsed or has no notes.
    """
    import pretty_midi

    try:
        midi = pretty_midi.PrettyMIDI(str(path))
    except Exception as e:
        raise ReferenceParseError(f"Could not parse MIDI file {path}: {e}") from e

    instrument = next((inst for inst in midi.instruments if inst.notes), None)
    if instrument is None:
        raise ReferenceParseError(f"MIDI file {path} contains no notes")

    _, tempi = midi.get_tempo_changes()
    tempo = float(tempi[0]) if len(tempi) else 120.0
    ppq = midi.resolution

    notes = [
        Note(
            start_beat=midi.time_to_tick(n.start) / ppq,
            duration_beats=(midi.time_to_tick(n.end) - midi.time_to_tick(n.start)) / ppq,
            midi=float(n.pitch),
        )
        for n in instrument.notes
        if n.end > n.start
    ]
    notes.sort(key=lambda n: (n.start_beat, n.midi))

    lyrics = [
        LyricEvent(beat=midi.time_to_tick(lyric.time) / ppq, text=lyric.text)
        for lyric in midi.lyrics
    ]

    time_signature = (4, 4)
    if midi.time_signature_changes:
        ts = midi.time_signature_changes[0]
        time_signature = (ts.numerator, ts.denominator)

    return ReferenceMelody(
        id=path.stem,
        title=path.stem,
        tempo_bpm=tempo,
        notes=notes,
        lyrics=lyrics,
        time_signature=time_signature,
    )


class FallbackPolicy(str, Enum):
    """What to do when a reference file cannot be parsed."""

    DEMO_MELODY = "demo_melody"
    RAISE = "raise"


@dataclass(frozen=True)
class ReferenceLoadResult:
    """Outcome of loading a reference file.

    On failure with the DEMO_MELODY policy, melody is the demo melody,
    error carries the parse failure and used_fallback is True.
    """

    melody: ReferenceMelody
    error: ReferenceParseError | None = None
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def load_reference_file(
    path: Path,
    fallback: FallbackPolicy = FallbackPolicy.DEMO_MELODY,
) -> ReferenceLoadResult:
    """Load a reference melody from a .json or .mid/.midi file.

    Raises:
        ReferenceParseError: Only with FallbackPolicy.RAISE.
    """
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            melody = parse_reference_json(path)
        elif suffix in (".mid", ".midi"):
            melody = parse_reference_midi(path)
        else:
            raise ReferenceParseError(
                f"Unsupported reference format: {suffix}. Supported: .json, .mid, .midi"
            )
    except ReferenceParseError as e:
        if fallback is FallbackPolicy.RAISE:
            raise
        return ReferenceLoadResult(melody=demo_melody(), error=e, used_fallback=True)

    return ReferenceLoadResult(melody=melody)
