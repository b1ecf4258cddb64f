"""JSON report of an analysis session."""

import json
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import numpy as np

from singing_coach import __version__
from singing_coach.models.analysis import NoteComparison
from singing_coach.models.pipeline import AnalysisSession
from singing_coach.music import midi_to_note_name, round_half_up


def build_report(session: AnalysisSession) -> dict:
    """Collect the results of a finished session into plain data.

    Keys are camelCase so the report can be consumed directly by a web
    front end.

    Args:
        session: Session after the pipeline ran

    Returns:
        JSON-serializable dictionary
    """
    reference = session.reference
    melody = reference.melody

    report = {
        "generator_version": __version__,
        "created": datetime.now(timezone.utc).isoformat(),
        "reference": {
            "id": melody.id,
            "title": melody.title,
            "tempo_bpm": melody.tempo_bpm,
            "time_signature": melody.time_signature,
            "key": melody.key,
            "total_beats": reference.total_beats,
            "note_count": len(melody.notes),
            "lyrics": [asdict(lyric) for lyric in melody.lyrics],
        },
        "recording": {
            "duration": session.raw_audio.duration,
            "sample_rate": session.sample_rate,
            "channels": session.raw_audio.num_channels,
        },
        "alignment": {
            "singing_onset": session.singing_onset,
            "coarse_offset": session.coarse_offset,
            "fine_offset": session.fine_offset,
            "detected_offset": session.detected_offset,
            "manual_offset": session.manual_offset,
            "offset_seconds": session.offset_seconds,
        },
        "scores": None,
        "comparisons": [asdict(c) for c in session.comparisons],
        "issues": [],
        "tips": list(session.tips),
        "curve": asdict(session.curve) if session.curve is not None else None,
    }

    if session.result is not None:
        result = session.result
        report["scores"] = {
            "pitch": result.pitch_score,
            "rhythm": result.rhythm_score,
            "total": result.total_score,
            "verdict": result.verdict,
            "verdict_label": result.verdict.label,
            "mean_timing_error_ms": mean_timing_error_ms(
                session.comparisons, melody.seconds_per_beat
            ),
        }
        report["issues"] = [
            {**asdict(issue), "note_name": midi_to_note_name(issue.midi)}
            for issue in result.issues
        ]

    return _convert_dict_keys(report)


def write_report(session: AnalysisSession, path: Path) -> Path:
    """Write the session report as JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(build_report(session), f, indent=2, ensure_ascii=False)
    return path


def mean_timing_error_ms(comparisons: list[NoteComparison], seconds_per_beat: float) -> int:
    """Mean absolute start error of the sung notes, in whole milliseconds.

    Missed notes are left out; without any sung note the result is 0.
    """
    errors = [abs(c.start_diff) * seconds_per_beat * 1000.0 for c in comparisons if not c.is_miss]
    return round_half_up(sum(errors) / max(1, len(errors)))


def _convert_dict_keys(d: dict) -> dict:
    """Recursively convert dict keys from snake_case to camelCase."""
    result = {}
    for key, value in d.items():
        if isinstance(key, str) and "_" in key:
            key = _to_camel_case(key)
        result[key] = _process_value(value)
    return result


def _process_value(value):
    if isinstance(value, dict):
        return _convert_dict_keys(value)
    elif isinstance(value, (list, tuple)):
        return [_process_value(item) for item in value]
    elif isinstance(value, Enum):
        return value.value
    elif isinstance(value, np.generic):
        return value.item()
    elif isinstance(value, Path):
        return str(value)
    else:
        return value


def _to_camel_case(snake_str: str) -> str:
    components = snake_str.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
