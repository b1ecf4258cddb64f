"""Main CLI entry point for Singing Coach."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from singing_coach import __version__
from singing_coach.config import get_settings
from singing_coach.errors import SingingCoachError

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="singing-coach")
def main() -> None:
    """Singing Coach - pitch and rhythm feedback for sung recordings.

    Compares a recording of a singer against a reference melody and reports
    per-note pitch and timing errors, scores and practice tips.
    """
    pass


@main.command()
@click.argument("audio_file", type=click.Path(path_type=Path))
@click.option(
    "--song",
    type=str,
    help="Built-in reference melody id (see `singing-coach songs`)",
)
@click.option(
    "--reference",
    "reference_path",
    type=click.Path(path_type=Path),
    help="Reference melody file (.json, .mid, .midi)",
)
@click.option(
    "--strict-reference",
    is_flag=True,
    help="Fail instead of falling back to the demo melody on a bad reference file",
)
@click.option(
    "--manual-offset",
    type=float,
    default=0.0,
    show_default=True,
    help="Manual timing correction in seconds (positive = singer was late)",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Write the JSON report to this path (default: <output_dir>/<name>.json)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Do not render per-stage progress",
)
def analyze(
    audio_file: Path,
    song: str | None,
    reference_path: Path | None,
    strict_reference: bool,
    manual_offset: float,
    output: Path | None,
    no_progress: bool,
) -> None:
    """Analyze a recording of AUDIO_FILE against a reference melody.

    \b
    1. Decode & validate the recording
    2. Band-limit and normalize
    3. Track pitch and detect onsets
    4. Align the recording to the reference
    5. Compare note by note, score and suggest tips
    """
    from singing_coach.models.pipeline import AnalysisSession
    from singing_coach.pipeline import create_default_pipeline
    from singing_coach.reference import (
        FallbackPolicy,
        load_reference,
        load_reference_file,
        normalize_reference,
    )
    from singing_coach.report import write_report
    from singing_coach.stages.ingest import load_audio

    if song and reference_path:
        console.print("[red]Error: use either --song or --reference, not both[/red]")
        raise SystemExit(1)

    settings = get_settings()

    console.print(f"[bold blue]Singing Coach[/bold blue] v{__version__}")

    try:
        if reference_path is not None:
            policy = FallbackPolicy.RAISE if strict_reference else FallbackPolicy.DEMO_MELODY
            loaded = load_reference_file(reference_path, fallback=policy)
            if loaded.used_fallback:
                console.print(
                    f"[yellow]Warning: {loaded.error}. Using the demo melody instead.[/yellow]"
                )
            reference = normalize_reference(loaded.melody, settings.beat_step)
        else:
            reference = load_reference(song or settings.default_song, settings.beat_step)

        raw_audio = load_audio(audio_file)
    except SingingCoachError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    melody = reference.melody
    console.print(f"Recording: [green]{audio_file}[/green]")
    console.print(
        f"Reference: [green]{melody.title}[/green] "
        f"({len(melody.notes)} notes, {melody.tempo_bpm:g} BPM)"
    )
    console.print()

    session = AnalysisSession(
        raw_audio=raw_audio,
        reference=reference,
        manual_offset=manual_offset,
    )
    pipeline = create_default_pipeline(settings, show_progress=not no_progress)
    result = pipeline.run(session)

    if not result.success:
        console.print("[bold red]Analysis failed![/bold red]")
        for error in result.errors:
            console.print(f"[red]Error: {error}[/red]")
        raise SystemExit(1)

    _print_session(session)

    # Determine report path
    if output is None:
        output = settings.output_dir / f"{audio_file.stem}.json"
    write_report(session, output)
    console.print(f"Report: [green]{output}[/green]")


def _print_session(session) -> None:
    """Print scores, offset, issues and tips of a finished session."""
    from singing_coach.music import midi_to_note_name

    scores = session.result
    console.print()
    console.print(f"[bold]{scores.verdict.label}[/bold]")
    console.print(f"  Total:  {scores.total_score}")
    console.print(f"  Pitch:  {scores.pitch_score}")
    console.print(f"  Rhythm: {scores.rhythm_score}")
    console.print(
        f"  Offset: {session.offset_seconds:+.2f}s "
        f"(detected {session.detected_offset:+.2f}s, manual {session.manual_offset:+.2f}s)"
    )

    if scores.issues:
        table = Table(title="Notes to work on")
        table.add_column("#", justify="right")
        table.add_column("Beat", justify="right")
        table.add_column("Note")
        table.add_column("Issues")
        table.add_column("Pitch", justify="right")
        table.add_column("Start", justify="right")
        for issue in scores.issues:
            pitch = "-" if issue.pitch_diff is None else f"{issue.pitch_diff:+.2f} st"
            table.add_row(
                str(issue.note_index + 1),
                f"{issue.beat:g}",
                midi_to_note_name(issue.midi),
                ", ".join(issue.kinds),
                pitch,
                f"{issue.start_diff:+.2f} b",
            )
        console.print()
        console.print(table)

    if session.tips:
        console.print()
        console.print("[bold]Tips[/bold]")
        for tip in session.tips:
            console.print(f"  - {tip}")


@main.command()
def songs() -> None:
    """List the built-in reference melodies."""
    from singing_coach.reference import get_built_in_songs

    for melody in get_built_in_songs():
        console.print(
            f"  [green]{melody.id}[/green]: {melody.title} "
            f"({len(melody.notes)} notes, {melody.tempo_bpm:g} BPM)"
        )


@main.command()
@click.argument("output_wav", type=click.Path(path_type=Path))
@click.option("--song", type=str, help="Built-in reference melody id")
@click.option(
    "--offset-beats",
    type=float,
    default=0.0,
    show_default=True,
    help="Leading silence in beats before the first note",
)
@click.option(
    "--sample-rate",
    type=int,
    default=22050,
    show_default=True,
    help="Sample rate of the written file",
)
def demo(output_wav: Path, song: str | None, offset_beats: float, sample_rate: int) -> None:
    """Write a sine-tone rendition of a reference melody to OUTPUT_WAV.

    Useful for trying `singing-coach analyze` without a microphone.
    """
    import soundfile as sf

    from singing_coach.reference import load_reference
    from singing_coach.synth import synthesize_melody

    settings = get_settings()
    try:
        reference = load_reference(song or settings.default_song, settings.beat_step)
    except SingingCoachError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    melody = reference.melody
    audio = synthesize_melody(
        melody,
        sample_rate=sample_rate,
        offset_seconds=melody.beat_to_seconds(offset_beats),
    )

    output_wav.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(output_wav), audio.channels[0], audio.sample_rate)
    console.print(f"Wrote [green]{output_wav}[/green] ({audio.duration:.1f}s, {melody.title})")


@main.command()
def info() -> None:
    """Show current configuration."""
    settings = get_settings()

    console.print("[bold]Configuration[/bold]")
    console.print(f"  Output directory: {settings.output_dir}")
    console.print(f"  Default song: {settings.default_song}")
    console.print(f"  Minimum duration: {settings.min_duration_seconds}s")
    console.print(f"  Band: {settings.highpass_hz:g}-{settings.lowpass_hz:g} Hz")
    console.print(
        f"  Pitch tracking: frame {settings.frame_size}, hop {settings.hop_size}, "
        f"{settings.min_frequency_hz:g}-{settings.max_frequency_hz:g} Hz"
    )
    console.print(f"  Pitch tolerance: {settings.pitch_tolerance_cents:g} cents")
    console.print(f"  Rhythm tolerance: {settings.rhythm_tolerance():g} beats")
    console.print(
        f"  Score weights: pitch {settings.pitch_weight:g}, rhythm {settings.rhythm_weight:g}"
    )
    console.print(f"  Verdict thresholds: {settings.verdict_thresholds}")


if __name__ == "__main__":
    main()
